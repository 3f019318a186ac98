"""Test fixtures for build-tasks tests."""

import asyncio
import json
import sys
import tempfile
import shutil
from pathlib import Path
from typing import List, Optional

import pytest

from build_tasks.config import DEFAULT_CONFIG_FILE
from build_tasks.errors import TransformError, TransformErrorKind
from build_tasks.models import BuildConfig
from build_tasks.transforms import Transform


# Command lines for stand-in external tools
SUCCEED_COMMAND = [sys.executable, "-c", "import sys; sys.exit(0)"]
FAIL_COMMAND = [sys.executable, "-c", "import sys; print('boom'); sys.exit(1)"]
# `<cmd> src --out-file dest` and `<cmd> src -o dest`
COPY_FIRST_TO_THIRD = [sys.executable, "-c", "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[3])"]
# `<cmd> ... src dest`
COPY_LAST_TWO = [sys.executable, "-c", "import shutil, sys; shutil.copyfile(sys.argv[-2], sys.argv[-1])"]
MISSING_TOOL = ["build-tasks-no-such-tool-xyz"]


def write_tools(project_root, **overrides):
    """Write a project configuration that points every tool at a local stand-in."""
    tools = {
        "lint": SUCCEED_COMMAND,
        "transpile": COPY_FIRST_TO_THIRD,
        "minify_js": FAIL_COMMAND,
        "obfuscate_js": FAIL_COMMAND,
        "minify_html": FAIL_COMMAND,
        "sass": COPY_LAST_TWO,
        "minify_css": FAIL_COMMAND,
        "strip_metadata": FAIL_COMMAND,
    }
    tools.update(overrides)
    (project_root / DEFAULT_CONFIG_FILE).write_text(json.dumps({"tools": tools}))


class RecordingTransform(Transform):
    """Transform that records when it starts and ends."""

    def __init__(
        self,
        name: str,
        log: list,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        outputs: Optional[List[Path]] = None
    ):
        self.name = name
        self.log = log
        self.delay = delay
        self.error = error
        self.outputs = outputs or []
        self.calls = 0
        self.seen_inputs: List[List[Path]] = []

    async def apply(self, inputs, config):
        self.calls += 1
        self.seen_inputs.append(list(inputs))
        self.log.append(("start", self.name))
        await asyncio.sleep(self.delay)
        if self.error is not None:
            self.log.append(("fail", self.name))
            raise self.error
        for output in self.outputs:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(self.name)
        self.log.append(("end", self.name))
        return list(self.outputs)


class Recorder:
    """Shared event log plus a factory for recording transforms."""

    def __init__(self):
        self.log = []
        self.transforms = {}

    def transform(self, name: str, **kwargs) -> RecordingTransform:
        transform = RecordingTransform(name, self.log, **kwargs)
        self.transforms[name] = transform
        return transform

    def failing(self, name: str, kind=TransformErrorKind.COMPILE, **kwargs) -> RecordingTransform:
        return self.transform(name, error=TransformError(kind, f"{name} failed"), **kwargs)

    def index(self, event: str, name: str) -> int:
        return self.log.index((event, name))

    def started(self, name: str) -> bool:
        return ("start", name) in self.log


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path.resolve()
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def project_root(temp_dir):
    """Create a small web project laid out like the default configuration."""
    files = {
        "gulpfile.js": "// build file\n",
        "server.js": "require('./src/app');\n",
        "src/app.js": "module.exports = {};\n",
        "src/controller/home.js": "module.exports = {};\n",
        "src/public/index.html": "<html><body>hi</body></html>\n",
        "src/public/js/main.js": "console.log('main');\n",
        "src/public/js/vendor/lib.js": "var lib = 1;\n",
        "src/public/css/site.scss": "body { color: red; }\n",
        "src/public/css/_vars.scss": "$c: red;\n",
        "src/public/images/logo.png": "png",
        "src/public/images/favicon.ico": "ico",
    }
    for rel, content in files.items():
        path = temp_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return temp_dir


@pytest.fixture
def build_config(project_root):
    """Debug BuildConfig rooted at the sample project."""
    return BuildConfig(
        debug=True,
        obfuscate=False,
        rename_with_version_suffix=True,
        strip_metadata=False,
        version_tag="0123456789abcdef0123456789abcdef01234567",
        project_root=str(project_root),
    )


@pytest.fixture
def recorder():
    """Create a Recorder for ordering assertions."""
    return Recorder()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep BUILD_TASKS_* variables (including ones loaded from .env) out of other tests."""
    for name in (
        "BUILD_TASKS_DEBUG",
        "BUILD_TASKS_OBFUSCATE",
        "BUILD_TASKS_RENAME",
        "BUILD_TASKS_STRIP_METADATA",
        "BUILD_TASKS_LOG_LEVEL",
        "BUILD_TASKS_REVISION",
    ):
        monkeypatch.delenv(name, raising=False)
