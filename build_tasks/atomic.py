"""
Atomic file operations.

Build outputs and the project configuration are written through a temp
file in the target directory and moved into place with os.replace(), so a
watcher or the dev process never sees a half-written file.
"""

import os
import json
import shutil
import tempfile
from pathlib import Path
from typing import Any


class AtomicFileWriter:
    """
    Atomic file writer using temp file + atomic replace.
    """

    @staticmethod
    def _replace_with(filepath: Path, mode: str, write) -> None:
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode=mode,
                dir=filepath.parent,
                prefix=f".{filepath.name}.",
                suffix='.tmp',
                delete=False
            ) as tmp_file:
                temp_path = Path(tmp_file.name)
                write(tmp_file)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            os.replace(temp_path, filepath)

        except Exception:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise

    @staticmethod
    def write_text(filepath: Path, content: str) -> None:
        """
        Atomically write text to a file.

        Args:
            filepath: Target file path
            content: Text to write (UTF-8)
        """
        AtomicFileWriter._replace_with(filepath, 'w', lambda f: f.write(content))

    @staticmethod
    def copy(src: Path, dest: Path) -> None:
        """
        Atomically copy a file, preserving its metadata.

        Args:
            src: Source file
            dest: Destination file (parents are created)
        """
        def _copy(tmp_file):
            with open(src, 'rb') as source:
                shutil.copyfileobj(source, tmp_file)

        AtomicFileWriter._replace_with(dest, 'wb', _copy)
        shutil.copystat(src, dest)

    @staticmethod
    def write_json(filepath: Path, data: Any, indent: int = 2) -> None:
        """
        Atomically write JSON data to a file.

        Args:
            filepath: Target file path
            data: Data to serialize as JSON
            indent: JSON indentation level
        """
        AtomicFileWriter._replace_with(
            filepath, 'w', lambda f: json.dump(data, f, indent=indent, default=str)
        )

    @staticmethod
    def read_json(filepath: Path, default: Any = None) -> Any:
        """
        Read JSON file.

        Args:
            filepath: File to read
            default: Value returned when the file does not exist

        Returns:
            Parsed JSON data or default value

        Raises:
            json.JSONDecodeError: If the file exists but is not valid JSON
        """
        filepath = Path(filepath)

        if not filepath.exists():
            return default

        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
