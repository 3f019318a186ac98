"""
Transforms: the file-processing steps invoked by leaf tasks.

Each transform is a thin wrapper around an external tool (eslint, babel,
terser, sass, exiftool, ...) run as an asyncio subprocess. A transform
takes the resolved input files plus the BuildConfig and returns the files
it wrote, or raises TransformError.
"""

import asyncio
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from build_tasks.atomic import AtomicFileWriter
from build_tasks.errors import TransformError, TransformErrorKind
from build_tasks.models import BuildConfig


logger = logging.getLogger(__name__)


VERSION_STAMP_TEMPLATE = """/**
 * Do not modify.
 * This file is auto-generated by build-tasks on {generated_at}
 * Changes will be overwritten.
 */
export default class Hash {{
    static short() {{
        return '{short}';
    }}

    static long() {{
        return '{long}';
    }}
}}
"""


async def run_tool(
    argv: Sequence[str],
    kind: TransformErrorKind,
    cwd: Optional[Path] = None
) -> str:
    """
    Run an external tool and wait for it.

    Args:
        argv: Command line
        kind: Failure kind reported when the tool exits non-zero
        cwd: Working directory

    Returns:
        Captured stdout

    Raises:
        TransformError: If the tool cannot be started or exits non-zero
    """
    argv = [str(a) for a in argv]
    logger.debug(f"Running: {' '.join(argv)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        raise TransformError(TransformErrorKind.IO, f"Cannot start {argv[0]}: {e}") from e

    stdout, stderr = await process.communicate()
    out = stdout.decode(errors="replace")
    err = stderr.decode(errors="replace")

    if process.returncode != 0:
        raise TransformError(
            kind,
            f"{Path(argv[0]).name} exited with code {process.returncode}",
            output=(out + err).strip() or None
        )
    return out


def mirror_path(src: Path, source_root: Path, dest_root: Path, suffix: Optional[str] = None) -> Path:
    """
    Map a source file to its location under the output root.

    Raises:
        TransformError: If src is not below source_root
    """
    try:
        rel = Path(src).resolve().relative_to(Path(source_root).resolve())
    except ValueError as e:
        raise TransformError(
            TransformErrorKind.IO, f"{src} is not below source root {source_root}"
        ) from e
    dest = Path(dest_root) / rel
    if suffix is not None:
        dest = dest.with_suffix(suffix)
    return dest


def version_suffixed(path: Path, short_tag: str) -> Path:
    """`app.js` -> `app-<short_tag>.min.js`"""
    return path.with_name(f"{path.stem}-{short_tag}.min{path.suffix}")


class Transform:
    """
    Base class for transforms.

    Subclasses implement apply(); the scheduler awaits it and treats a
    raised TransformError as the task's failure.
    """

    name = "transform"

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CleanTransform(Transform):
    """Delete the build output root."""

    name = "clean"

    def __init__(self, target: Optional[Path] = None):
        self.target = Path(target) if target else None

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        target = self.target or config.output_dir
        if target.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, target)
            except OSError as e:
                raise TransformError(TransformErrorKind.IO, f"Cannot remove {target}: {e}") from e
            logger.info(f"Removed {target}")
        return []


class CopyTransform(Transform):
    """Copy files into the output root, mirroring their path below source_root."""

    name = "copy"

    def __init__(self, source_root: Path):
        self.source_root = Path(source_root)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        outputs = []
        for src in inputs:
            dest = mirror_path(src, self.source_root, config.output_dir)
            try:
                await asyncio.to_thread(AtomicFileWriter.copy, src, dest)
            except OSError as e:
                raise TransformError(TransformErrorKind.IO, f"Cannot copy {src}: {e}") from e
            outputs.append(dest)
        return outputs


class LintTransform(Transform):
    """Run a linter over the inputs. Produces no files."""

    name = "lint"

    def __init__(self, command: Sequence[str]):
        self.command = list(command)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        if not inputs:
            logger.debug("Nothing to lint")
            return []
        output = await run_tool(
            self.command + [str(p) for p in inputs],
            TransformErrorKind.LINT,
            cwd=Path(config.project_root)
        )
        if output.strip():
            logger.info(output.rstrip())
        return []


class HtmlTransform(Transform):
    """Copy HTML in debug builds, minify it in release builds."""

    name = "minify-html"

    def __init__(self, source_root: Path, command: Sequence[str]):
        self.source_root = Path(source_root)
        self.command = list(command)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        outputs = []
        for src in inputs:
            dest = mirror_path(src, self.source_root, config.output_dir)
            if config.debug:
                await asyncio.to_thread(AtomicFileWriter.copy, src, dest)
            else:
                dest.parent.mkdir(parents=True, exist_ok=True)
                await run_tool(
                    self.command + [str(src), "-o", str(dest)],
                    TransformErrorKind.COMPILE,
                    cwd=Path(config.project_root)
                )
            outputs.append(dest)
        return outputs


class ScriptTransform(Transform):
    """
    Transpile client scripts.

    Writes the transpiled file under its canonical name. With version
    renaming on, a `-<short>.min` copy is written next to it. Release
    builds minify (and optionally obfuscate) that copy, or the canonical
    file when renaming is off.
    """

    name = "minify-js"

    def __init__(
        self,
        source_root: Path,
        transpile: Sequence[str],
        minify: Sequence[str],
        obfuscate: Sequence[str]
    ):
        self.source_root = Path(source_root)
        self.transpile = list(transpile)
        self.minify = list(minify)
        self.obfuscate = list(obfuscate)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        cwd = Path(config.project_root)
        outputs = []
        for src in inputs:
            dest = mirror_path(src, self.source_root, config.output_dir)
            dest.parent.mkdir(parents=True, exist_ok=True)
            await run_tool(
                self.transpile + [str(src), "--out-file", str(dest)],
                TransformErrorKind.COMPILE,
                cwd=cwd
            )
            outputs.append(dest)

            target = version_suffixed(dest, config.short_version_tag) if config.rename_with_version_suffix else dest
            if config.debug:
                if target != dest:
                    await asyncio.to_thread(AtomicFileWriter.copy, dest, target)
            else:
                await run_tool(
                    self.minify + [str(dest), "-o", str(target)],
                    TransformErrorKind.COMPILE,
                    cwd=cwd
                )
                if config.obfuscate:
                    await run_tool(
                        self.obfuscate + [str(target), "--output", str(target)],
                        TransformErrorKind.COMPILE,
                        cwd=cwd
                    )
            if target != dest:
                outputs.append(target)
        return outputs


class StyleTransform(Transform):
    """
    Compile SCSS to CSS.

    Debug builds keep expanded output with embedded source maps. Release
    builds minify. Partials (`_name.scss`) are only compiled through the
    files that import them.
    """

    name = "styles"

    def __init__(
        self,
        source_root: Path,
        sass: Sequence[str],
        minify: Sequence[str],
        prefix: Sequence[str] = ()
    ):
        self.source_root = Path(source_root)
        self.sass = list(sass)
        self.minify = list(minify)
        self.prefix = list(prefix)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        cwd = Path(config.project_root)
        outputs = []
        for src in inputs:
            if src.name.startswith("_"):
                continue
            dest = mirror_path(src, self.source_root, config.output_dir, suffix=".css")
            dest.parent.mkdir(parents=True, exist_ok=True)
            source_map = "--embed-source-map" if config.debug else "--no-source-map"
            await run_tool(
                self.sass + ["--style=expanded", source_map, str(src), str(dest)],
                TransformErrorKind.COMPILE,
                cwd=cwd
            )
            if self.prefix:
                await run_tool(
                    self.prefix + [str(dest), "--replace"],
                    TransformErrorKind.COMPILE,
                    cwd=cwd
                )
            outputs.append(dest)

            target = version_suffixed(dest, config.short_version_tag) if config.rename_with_version_suffix else dest
            if not config.debug:
                await run_tool(
                    self.minify + ["-o", str(target), str(dest)],
                    TransformErrorKind.COMPILE,
                    cwd=cwd
                )
            elif target != dest:
                await asyncio.to_thread(AtomicFileWriter.copy, dest, target)
            if target != dest:
                outputs.append(target)
        return outputs


class VersionStampTransform(Transform):
    """Generate the version stamp module from the current revision."""

    name = "git-hash"

    def __init__(self, target: Path):
        self.target = Path(target)

    def render(self, config: BuildConfig) -> str:
        return VERSION_STAMP_TEMPLATE.format(
            generated_at=datetime.now().isoformat(timespec="seconds"),
            short=config.short_version_tag,
            long=config.version_tag
        )

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        try:
            await asyncio.to_thread(AtomicFileWriter.write_text, self.target, self.render(config))
        except OSError as e:
            raise TransformError(TransformErrorKind.IO, f"Cannot write {self.target}: {e}") from e
        logger.info(f"Version stamp {config.short_version_tag} written to {self.target}")
        return [self.target]


class MetadataStripTransform(Transform):
    """
    Strip metadata from already-copied images.

    Best-effort: a failing strip is logged and skipped, never raised.
    Disabled unless BuildConfig.strip_metadata is set.
    """

    name = "strip-metadata"

    def __init__(self, command: Sequence[str]):
        self.command = list(command)

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        if not config.strip_metadata:
            logger.debug("Metadata stripping disabled")
            return []

        stripped = []
        for image in inputs:
            try:
                await run_tool(
                    self.command + [str(image)],
                    TransformErrorKind.IO,
                    cwd=Path(config.project_root)
                )
            except TransformError as e:
                logger.warning(f"Metadata strip skipped for {image.name}: {e}")
                continue
            stripped.append(image)
        return stripped


class ClearConsoleTransform(Transform):
    """Clear the terminal before a watch-triggered rebuild."""

    name = "clear-console"

    async def apply(self, inputs: List[Path], config: BuildConfig) -> List[Path]:
        print("\033[2J\033[H", end="", flush=True)
        return []
