"""
File set resolver.

Turns named glob groups into concrete, ordered file lists.
"""

import logging
from pathlib import Path
from typing import List, Dict, Iterable

from build_tasks.models import FileSet


logger = logging.getLogger(__name__)


class FileSetResolver:
    """
    Resolves FileSets against the file system.

    Nothing is cached: every call re-reads the directory tree, so files
    added between calls show up on the next resolve.
    """

    def resolve(self, fileset: FileSet) -> List[Path]:
        """
        Resolve a single FileSet.

        Args:
            fileset: File set to resolve

        Returns:
            Absolute file paths, sorted by their POSIX path relative to
            the file set's base path
        """
        base = Path(fileset.base_path)
        if not base.is_dir():
            logger.debug(f"[{fileset.name}] Base path does not exist: {base}")
            return []

        found: Dict[str, Path] = {}
        for pattern in fileset.include_patterns:
            for filepath in self._glob(base, pattern):
                rel = fileset.relative(filepath)
                if rel is None or rel in found:
                    continue
                if fileset.matches(filepath):
                    found[rel] = filepath.resolve()

        resolved = [found[rel] for rel in sorted(found)]
        logger.debug(f"[{fileset.name}] Resolved {len(resolved)} file(s)")
        return resolved

    def resolve_many(self, filesets: Iterable[FileSet]) -> Dict[str, List[Path]]:
        """
        Resolve several FileSets.

        Args:
            filesets: File sets to resolve

        Returns:
            Mapping of file set name to its resolved files
        """
        return {fileset.name: self.resolve(fileset) for fileset in filesets}

    def _glob(self, base: Path, pattern: str) -> List[Path]:
        """Glob a relative pattern below base, files only."""
        return [p for p in base.glob(pattern) if p.is_file()]
