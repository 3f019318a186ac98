"""Tests for build_tasks.transforms module."""

import sys
from pathlib import Path

import pytest

from build_tasks.errors import TransformError, TransformErrorKind
from build_tasks.models import BuildConfig
from build_tasks.transforms import (
    run_tool, mirror_path, version_suffixed,
    CleanTransform, CopyTransform, LintTransform, HtmlTransform, ScriptTransform,
    StyleTransform, VersionStampTransform, MetadataStripTransform,
)

from conftest import SUCCEED_COMMAND, FAIL_COMMAND, COPY_FIRST_TO_THIRD, COPY_LAST_TWO, MISSING_TOOL


class TestRunTool:
    """Tests for run_tool helper."""

    @pytest.mark.asyncio
    async def test_returns_stdout(self):
        output = await run_tool([sys.executable, "-c", "print('ok')"], TransformErrorKind.COMPILE)
        assert output.strip() == "ok"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_kind_and_output(self):
        with pytest.raises(TransformError) as exc_info:
            await run_tool(FAIL_COMMAND, TransformErrorKind.LINT)
        assert exc_info.value.kind == TransformErrorKind.LINT
        assert "exited with code 1" in exc_info.value.message
        assert exc_info.value.output == "boom"

    @pytest.mark.asyncio
    async def test_missing_tool_is_io_failure(self):
        with pytest.raises(TransformError) as exc_info:
            await run_tool(MISSING_TOOL, TransformErrorKind.COMPILE)
        assert exc_info.value.kind == TransformErrorKind.IO


class TestPathHelpers:
    """Tests for output path mapping."""

    def test_mirror_path(self, temp_dir):
        src = temp_dir / "src" / "public" / "js" / "main.js"
        dest = mirror_path(src, temp_dir / "src", temp_dir / "build")
        assert dest == temp_dir / "build" / "public" / "js" / "main.js"

    def test_mirror_path_with_suffix(self, temp_dir):
        src = temp_dir / "src" / "public" / "css" / "site.scss"
        dest = mirror_path(src, temp_dir / "src", temp_dir / "build", suffix=".css")
        assert dest.name == "site.css"

    def test_mirror_path_outside_source_root(self, temp_dir):
        with pytest.raises(TransformError):
            mirror_path(temp_dir / "other" / "a.js", temp_dir / "src", temp_dir / "build")

    def test_version_suffixed(self):
        assert version_suffixed(Path("/b/app.js"), "abc1234") == Path("/b/app-abc1234.min.js")
        assert version_suffixed(Path("/b/site.css"), "abc1234").name == "site-abc1234.min.css"


class TestCleanTransform:
    """Tests for CleanTransform."""

    @pytest.mark.asyncio
    async def test_removes_output_root(self, build_config):
        out = build_config.output_dir / "public" / "a.js"
        out.parent.mkdir(parents=True)
        out.write_text("x")

        assert await CleanTransform().apply([], build_config) == []
        assert not build_config.output_dir.exists()

    @pytest.mark.asyncio
    async def test_missing_output_root_is_fine(self, build_config):
        assert await CleanTransform().apply([], build_config) == []


class TestCopyTransform:
    """Tests for CopyTransform."""

    @pytest.mark.asyncio
    async def test_copies_mirrored(self, project_root, build_config):
        src = project_root / "src" / "public" / "js" / "vendor" / "lib.js"

        outputs = await CopyTransform(project_root / "src").apply([src], build_config)

        dest = project_root / "build" / "public" / "js" / "vendor" / "lib.js"
        assert outputs == [dest]
        assert dest.read_text() == src.read_text()


class TestLintTransform:
    """Tests for LintTransform."""

    @pytest.mark.asyncio
    async def test_clean_lint_produces_nothing(self, project_root, build_config):
        inputs = [project_root / "src" / "app.js"]
        assert await LintTransform(SUCCEED_COMMAND).apply(inputs, build_config) == []

    @pytest.mark.asyncio
    async def test_lint_failure(self, project_root, build_config):
        with pytest.raises(TransformError) as exc_info:
            await LintTransform(FAIL_COMMAND).apply([project_root / "src" / "app.js"], build_config)
        assert exc_info.value.kind == TransformErrorKind.LINT

    @pytest.mark.asyncio
    async def test_no_inputs_skips_tool(self, build_config):
        assert await LintTransform(MISSING_TOOL).apply([], build_config) == []


class TestHtmlTransform:
    """Tests for HtmlTransform."""

    @pytest.mark.asyncio
    async def test_debug_copies(self, project_root, build_config):
        src = project_root / "src" / "public" / "index.html"

        outputs = await HtmlTransform(project_root / "src", MISSING_TOOL).apply([src], build_config)

        assert outputs == [project_root / "build" / "public" / "index.html"]
        assert outputs[0].read_text() == src.read_text()

    @pytest.mark.asyncio
    async def test_release_runs_minifier(self, project_root, build_config):
        config = build_config.model_copy(update={"debug": False})
        src = project_root / "src" / "public" / "index.html"

        outputs = await HtmlTransform(project_root / "src", COPY_FIRST_TO_THIRD).apply([src], config)

        assert outputs[0].exists()

    @pytest.mark.asyncio
    async def test_release_minifier_failure(self, project_root, build_config):
        config = build_config.model_copy(update={"debug": False})
        src = project_root / "src" / "public" / "index.html"

        with pytest.raises(TransformError) as exc_info:
            await HtmlTransform(project_root / "src", FAIL_COMMAND).apply([src], config)
        assert exc_info.value.kind == TransformErrorKind.COMPILE


class TestScriptTransform:
    """Tests for ScriptTransform."""

    @pytest.mark.asyncio
    async def test_debug_writes_canonical_and_suffixed(self, project_root, build_config):
        src = project_root / "src" / "public" / "js" / "main.js"
        transform = ScriptTransform(project_root / "src", COPY_FIRST_TO_THIRD, MISSING_TOOL, MISSING_TOOL)

        outputs = await transform.apply([src], build_config)

        dest = project_root / "build" / "public" / "js" / "main.js"
        suffixed = project_root / "build" / "public" / "js" / "main-0123456.min.js"
        assert outputs == [dest, suffixed]
        assert suffixed.read_text() == src.read_text()

    @pytest.mark.asyncio
    async def test_no_rename(self, project_root, build_config):
        config = build_config.model_copy(update={"rename_with_version_suffix": False})
        src = project_root / "src" / "public" / "js" / "main.js"
        transform = ScriptTransform(project_root / "src", COPY_FIRST_TO_THIRD, MISSING_TOOL, MISSING_TOOL)

        outputs = await transform.apply([src], config)

        assert outputs == [project_root / "build" / "public" / "js" / "main.js"]

    @pytest.mark.asyncio
    async def test_release_minifies_without_obfuscation(self, project_root, build_config):
        config = build_config.model_copy(update={"debug": False, "obfuscate": False})
        src = project_root / "src" / "public" / "js" / "main.js"
        transform = ScriptTransform(project_root / "src", COPY_FIRST_TO_THIRD, COPY_FIRST_TO_THIRD, FAIL_COMMAND)

        outputs = await transform.apply([src], config)

        assert outputs[-1].name == "main-0123456.min.js"
        assert outputs[-1].exists()

    @pytest.mark.asyncio
    async def test_release_obfuscates_when_enabled(self, project_root, build_config):
        config = build_config.model_copy(update={"debug": False, "obfuscate": True})
        src = project_root / "src" / "public" / "js" / "main.js"
        transform = ScriptTransform(project_root / "src", COPY_FIRST_TO_THIRD, COPY_FIRST_TO_THIRD, FAIL_COMMAND)

        with pytest.raises(TransformError):
            await transform.apply([src], config)

    @pytest.mark.asyncio
    async def test_transpile_failure(self, project_root, build_config):
        src = project_root / "src" / "public" / "js" / "main.js"
        transform = ScriptTransform(project_root / "src", FAIL_COMMAND, MISSING_TOOL, MISSING_TOOL)

        with pytest.raises(TransformError) as exc_info:
            await transform.apply([src], build_config)
        assert exc_info.value.kind == TransformErrorKind.COMPILE


class TestStyleTransform:
    """Tests for StyleTransform."""

    @pytest.mark.asyncio
    async def test_partials_skipped(self, project_root, build_config):
        css = project_root / "src" / "public" / "css"
        transform = StyleTransform(project_root / "src", COPY_LAST_TWO, MISSING_TOOL)

        outputs = await transform.apply([css / "_vars.scss", css / "site.scss"], build_config)

        out = project_root / "build" / "public" / "css"
        assert outputs == [out / "site.css", out / "site-0123456.min.css"]
        assert not (out / "_vars.css").exists()

    @pytest.mark.asyncio
    async def test_compile_failure(self, project_root, build_config):
        css = project_root / "src" / "public" / "css"
        transform = StyleTransform(project_root / "src", FAIL_COMMAND, MISSING_TOOL)

        with pytest.raises(TransformError) as exc_info:
            await transform.apply([css / "site.scss"], build_config)
        assert exc_info.value.kind == TransformErrorKind.COMPILE


class TestVersionStampTransform:
    """Tests for VersionStampTransform."""

    @pytest.mark.asyncio
    async def test_writes_short_and_long_revision(self, project_root, build_config):
        target = project_root / "src" / "utils" / "hash.js"

        outputs = await VersionStampTransform(target).apply([], build_config)

        assert outputs == [target]
        content = target.read_text()
        assert "return '0123456';" in content
        assert f"return '{build_config.version_tag}';" in content
        assert "Do not modify." in content

    @pytest.mark.asyncio
    async def test_overwrites_existing(self, project_root, build_config):
        target = project_root / "hash.js"
        target.write_text("old")

        await VersionStampTransform(target).apply([], build_config)

        assert "old" not in target.read_text()


class TestMetadataStripTransform:
    """Tests for MetadataStripTransform."""

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, project_root, build_config):
        image = project_root / "src" / "public" / "images" / "logo.png"
        assert await MetadataStripTransform(FAIL_COMMAND).apply([image], build_config) == []

    @pytest.mark.asyncio
    async def test_strips_when_enabled(self, project_root):
        config = BuildConfig(version_tag="abc", strip_metadata=True, project_root=str(project_root))
        image = project_root / "src" / "public" / "images" / "logo.png"

        assert await MetadataStripTransform(SUCCEED_COMMAND).apply([image], config) == [image]

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, project_root):
        config = BuildConfig(version_tag="abc", strip_metadata=True, project_root=str(project_root))
        image = project_root / "src" / "public" / "images" / "logo.png"

        assert await MetadataStripTransform(FAIL_COMMAND).apply([image], config) == []
        assert await MetadataStripTransform(MISSING_TOOL).apply([image], config) == []
