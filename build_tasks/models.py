"""
Data models for the build task orchestrator.

Defines Pydantic models for file sets, build policy, task definitions,
task runs, and watch configuration.
"""

import re
from functools import lru_cache
from enum import Enum
from pathlib import Path, PurePosixPath
from datetime import datetime
from typing import Optional, List, Tuple, Any, Dict
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from build_tasks.revision import short_revision


class TaskKind(str, Enum):
    """Shape of a registered task."""
    LEAF = "leaf"
    SERIES = "series"
    PARALLEL = "parallel"


class TaskStatus(str, Enum):
    """Task run status."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ChangeKind(str, Enum):
    """File system change type."""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@lru_cache(maxsize=256)
def _glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a glob pattern into a regex over POSIX relative paths.

    `**` spans directories (including none), `*` and `?` stay within one
    path segment, `[...]` is a character class.
    """
    i, n = 0, len(pattern)
    out = []
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern[i:i + 3] == "**/":
                out.append("(?:.*/)?")
                i += 3
                continue
            if pattern[i:i + 2] == "**":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:j]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = j
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


class FileSet(BaseModel):
    """
    A named group of glob patterns rooted at a base path.

    A file is a member when it matches any include pattern and no
    exclude pattern. Patterns are relative to base_path.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="File set name")
    include_patterns: Tuple[str, ...] = Field(default_factory=tuple, description="Glob patterns to include")
    exclude_patterns: Tuple[str, ...] = Field(default_factory=tuple, description="Glob patterns to exclude")
    base_path: str = Field(default=".", description="Directory the patterns are relative to")

    @field_validator("include_patterns", "exclude_patterns")
    @classmethod
    def validate_patterns(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Patterns must be non-empty and relative to base_path."""
        for pattern in v:
            if not pattern or pattern.startswith("/"):
                raise ValueError(f"Pattern must be a non-empty relative glob: {pattern!r}")
        return v

    @field_validator("base_path")
    @classmethod
    def validate_base_path(cls, v: str) -> str:
        """Resolve base path to an absolute path."""
        return str(Path(v).expanduser().resolve())

    @classmethod
    def from_globs(cls, name: str, globs: List[str], base_path: str = ".") -> "FileSet":
        """
        Build a FileSet from gulp-style globs.

        Globs prefixed with `!` become exclude patterns.
        """
        include = [g for g in globs if not g.startswith("!")]
        exclude = [g[1:] for g in globs if g.startswith("!")]
        return cls(
            name=name,
            include_patterns=tuple(include),
            exclude_patterns=tuple(exclude),
            base_path=base_path,
        )

    def relative(self, path: Path) -> Optional[str]:
        """Return path relative to base_path in POSIX form, or None if outside."""
        try:
            rel = Path(path).resolve().relative_to(self.base_path)
        except ValueError:
            return None
        return PurePosixPath(*rel.parts).as_posix()

    def matches(self, path: Path) -> bool:
        """Check whether a path belongs to this file set."""
        rel = self.relative(path)
        if rel is None or rel == ".":
            return False
        if not any(_glob_to_regex(p).match(rel) for p in self.include_patterns):
            return False
        return not any(_glob_to_regex(p).match(rel) for p in self.exclude_patterns)


class BuildConfig(BaseModel):
    """
    Process-wide build policy.

    Resolved once at startup and passed read-only into every transform.
    """

    model_config = ConfigDict(frozen=True)

    debug: bool = True
    obfuscate: bool = True
    rename_with_version_suffix: bool = True
    strip_metadata: bool = False
    version_tag: str = Field(..., description="Full source revision identifier")
    project_root: str = Field(default=".", description="Project root directory")
    output_root: str = Field(default="build", description="Build output root, relative to project root")

    @field_validator("version_tag")
    @classmethod
    def validate_version_tag(cls, v: str) -> str:
        """Reject empty revisions."""
        v = v.strip()
        if not v:
            raise ValueError("version_tag must not be empty")
        return v

    @property
    def short_version_tag(self) -> str:
        """Abbreviated revision identifier (7 characters)."""
        return short_revision(self.version_tag)

    @property
    def output_dir(self) -> Path:
        """Absolute build output root."""
        return Path(self.project_root).resolve() / self.output_root


class TaskDefinition(BaseModel):
    """
    Definition of a unit of work before it is registered under a name.

    Leaf definitions carry a transform (and optionally the file set feeding
    it); Series and Parallel definitions carry ordered child task names.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: TaskKind
    transform: Optional[Any] = None
    fileset: Optional[FileSet] = None
    children: Tuple[str, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def check_shape(self) -> "TaskDefinition":
        """Leaf needs a transform and no children; compositions need children."""
        if self.kind == TaskKind.LEAF:
            if self.transform is None:
                raise ValueError("Leaf task requires a transform")
            if self.children:
                raise ValueError("Leaf task cannot have children")
        else:
            if self.transform is not None or self.fileset is not None:
                raise ValueError(f"{self.kind.value} task cannot have a transform")
            if not self.children:
                raise ValueError(f"{self.kind.value} task requires at least one child")
        return self


def leaf(transform: Any, fileset: Optional[FileSet] = None) -> TaskDefinition:
    """Define a leaf task invoking a single transform."""
    return TaskDefinition(kind=TaskKind.LEAF, transform=transform, fileset=fileset)


def series(*children: str) -> TaskDefinition:
    """Define a task running children strictly in order."""
    return TaskDefinition(kind=TaskKind.SERIES, children=tuple(children))


def parallel(*children: str) -> TaskDefinition:
    """Define a task running children concurrently."""
    return TaskDefinition(kind=TaskKind.PARALLEL, children=tuple(children))


class Task(BaseModel):
    """A registered, named task."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    definition: TaskDefinition

    @property
    def kind(self) -> TaskKind:
        return self.definition.kind

    @property
    def children(self) -> Tuple[str, ...]:
        return self.definition.children

    @property
    def transform(self) -> Any:
        return self.definition.transform

    @property
    def fileset(self) -> Optional[FileSet]:
        return self.definition.fileset


class TaskRun(BaseModel):
    """
    One execution of a task.

    Created when the scheduler starts the task and discarded once reported.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task_name: str
    started_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    completed_at: Optional[str] = None
    status: TaskStatus = TaskStatus.RUNNING
    error: Optional[Exception] = None
    outputs: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_error(self) -> "TaskRun":
        """Error is present iff the run failed."""
        if self.status == TaskStatus.FAILED and self.error is None:
            raise ValueError("Failed run requires an error")
        if self.status != TaskStatus.FAILED and self.error is not None:
            raise ValueError("Only failed runs carry an error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        end = datetime.fromisoformat(self.completed_at)
        return (end - datetime.fromisoformat(self.started_at)).total_seconds()


class FileChangeEvent(BaseModel):
    """A file system change delivered to the watch engine."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: ChangeKind = ChangeKind.MODIFIED
    observed_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class WatchBinding(BaseModel):
    """Standing subscription from a file set's changes to a task re-run."""

    model_config = ConfigDict(frozen=True)

    fileset: FileSet
    task_name: str
    restarts_dev_process: bool = Field(
        default=False,
        description="Restart the dev process after a successful run of this binding"
    )


class FileSetConfig(BaseModel):
    """File set as written in the project configuration file."""

    globs: List[str] = Field(..., description="Globs, `!` prefix excludes")
    base_path: str = Field(default=".", description="Base path relative to the project root")


class ToolCommands(BaseModel):
    """External tool command lines used by the transforms."""

    lint: List[str] = Field(default_factory=lambda: ["npx", "eslint"])
    transpile: List[str] = Field(default_factory=lambda: ["npx", "babel", "--source-maps", "inline"])
    minify_js: List[str] = Field(default_factory=lambda: ["npx", "terser", "--compress", "--mangle"])
    obfuscate_js: List[str] = Field(default_factory=lambda: ["npx", "javascript-obfuscator"])
    minify_html: List[str] = Field(default_factory=lambda: [
        "npx", "html-minifier-terser",
        "--collapse-whitespace", "--remove-comments", "--minify-js", "true", "--minify-css", "true",
    ])
    sass: List[str] = Field(default_factory=lambda: ["npx", "sass"])
    prefix_css: List[str] = Field(default_factory=list)
    minify_css: List[str] = Field(default_factory=lambda: ["npx", "cleancss"])
    strip_metadata: List[str] = Field(default_factory=lambda: ["exiftool", "-overwrite_original", "-all="])


class WatchSettings(BaseModel):
    """Watch mode settings."""

    debounce_ms: int = Field(default=200, description="Debounce window in milliseconds")
    enabled: bool = Field(default=True, description="Start the watch engine in the default pipeline")

    @field_validator("debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        if v < 0:
            raise ValueError("debounce_ms must not be negative")
        return v


def _default_filesets() -> Dict[str, FileSetConfig]:
    return {
        "server": FileSetConfig(globs=["src/**/*.js", "!src/public/**/*.js", "!src/public/**/vendor/*.js"]),
        "client": FileSetConfig(globs=["src/public/**/*.js", "!src/public/**/vendor/*.js"]),
        "client_vendor": FileSetConfig(globs=["src/public/**/vendor/*.js"]),
        "html": FileSetConfig(globs=["src/public/**/*.html"]),
        "styles": FileSetConfig(globs=["src/public/**/*.scss"]),
        "images": FileSetConfig(globs=["src/public/images/**/*"]),
        "built_images": FileSetConfig(globs=["build/public/images/**/*", "!build/public/images/**/*.ico"]),
        "self": FileSetConfig(globs=["*.js"]),
    }


class ProjectConfig(BaseModel):
    """
    Complete project build configuration.

    Persisted as JSON in the project root.
    """

    version: str = "1.0"

    # Policy flags
    debug: bool = Field(default=True, description="Skip minification and obfuscation")
    obfuscate: bool = Field(default=True, description="Obfuscate minified scripts")
    rename_with_version_suffix: bool = Field(default=True, description="Emit revision-suffixed copies")
    strip_metadata: bool = Field(default=False, description="Strip metadata from copied images")

    # Layout
    source_root: str = Field(default="src", description="Source root mirrored into the output root")
    public_dir: str = Field(default="public", description="Public subdirectory under source and output roots")
    output_root: str = Field(default="build", description="Build output root")
    version_stamp_file: str = Field(default="src/utils/hash.js", description="Generated version stamp path")

    filesets: Dict[str, FileSetConfig] = Field(default_factory=_default_filesets)
    tools: ToolCommands = Field(default_factory=ToolCommands)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    # Dev process
    dev_command: List[str] = Field(default_factory=lambda: ["node", "server.js"])

    # Metadata
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    def get_fileset(self, name: str, project_root: Path) -> FileSet:
        """Resolve a configured file set against the project root."""
        if name not in self.filesets:
            raise KeyError(f"Unknown file set: {name}")
        entry = self.filesets[name]
        return FileSet.from_globs(name, entry.globs, str(Path(project_root) / entry.base_path))
