"""
The project's task graph.

Registers every named build step, the compositions built from them, and
the watch bindings that re-run subsets of the graph when sources change.
"""

from typing import List, Optional

from build_tasks.config import ConfigManager
from build_tasks.models import WatchBinding, leaf, series, parallel
from build_tasks.registry import TaskRegistry
from build_tasks.transforms import (
    Transform,
    CleanTransform,
    CopyTransform,
    LintTransform,
    HtmlTransform,
    ScriptTransform,
    StyleTransform,
    VersionStampTransform,
    MetadataStripTransform,
    ClearConsoleTransform,
)


# Task names
DEFAULT_TASK = "default"
BUILD_TASK = "build"
WATCH_TASK = "watch"
SERVE_TASK = "nodemon"


def build_registry(
    manager: ConfigManager,
    watch_hook: Optional[Transform] = None,
    serve_hook: Optional[Transform] = None
) -> TaskRegistry:
    """
    Build the registry for a project.

    Args:
        manager: Loaded project configuration
        watch_hook: Transform behind the `watch` task; starts the watch engine
        serve_hook: Transform behind the `nodemon` task; starts the dev process

    Returns:
        Registry holding the full graph. Without hooks, `default` is the
        same as `build`.
    """
    config = manager.config
    tools = config.tools
    source_root = manager.project_root / config.source_root

    registry = TaskRegistry()

    # Leaves
    registry.register("clean", leaf(CleanTransform()))
    registry.register(
        "minify-html",
        leaf(HtmlTransform(source_root, tools.minify_html), manager.fileset("html"))
    )
    registry.register("vendor-js", leaf(CopyTransform(source_root), manager.fileset("client_vendor")))
    registry.register("js-self-lint", leaf(LintTransform(tools.lint), manager.fileset("self")))
    registry.register(
        "styles",
        leaf(
            StyleTransform(source_root, tools.sass, tools.minify_css, tools.prefix_css),
            manager.fileset("styles")
        )
    )
    registry.register(
        "git-hash",
        leaf(VersionStampTransform(manager.project_root / config.version_stamp_file))
    )
    registry.register("eslintSrc", leaf(LintTransform(tools.lint), manager.fileset("server")))
    registry.register("eslintClient", leaf(LintTransform(tools.lint), manager.fileset("client")))
    registry.register(
        "minify-js",
        leaf(
            ScriptTransform(source_root, tools.transpile, tools.minify_js, tools.obfuscate_js),
            manager.fileset("client")
        )
    )
    registry.register("images", leaf(CopyTransform(source_root), manager.fileset("images")))
    registry.register(
        "strip-metadata",
        leaf(MetadataStripTransform(tools.strip_metadata), manager.fileset("built_images"))
    )
    registry.register("clearConsole", leaf(ClearConsoleTransform()))

    # Compositions
    registry.register("eslint", series("eslintSrc", "eslintClient"))
    registry.register("scripts", series("git-hash", "eslint", "minify-js"))
    registry.register("image-assets", series("images", "strip-metadata"))
    registry.register(
        "assets",
        parallel("minify-html", "vendor-js", "js-self-lint", "styles", "scripts", "image-assets")
    )
    registry.register(BUILD_TASK, series("clean", "assets"))

    # Watch-triggered rebuilds
    registry.register("server-changed", parallel("clearConsole", "eslintSrc"))
    registry.register("client-rebuild", series("eslintClient", "minify-js"))
    registry.register("client-changed", parallel("clearConsole", "client-rebuild"))

    if watch_hook is not None and serve_hook is not None:
        registry.register(WATCH_TASK, leaf(watch_hook))
        registry.register(SERVE_TASK, leaf(serve_hook))
        registry.register(DEFAULT_TASK, series("clean", "assets", WATCH_TASK, SERVE_TASK))
    else:
        registry.register(DEFAULT_TASK, series("clean", "assets"))

    return registry


def watch_bindings(manager: ConfigManager) -> List[WatchBinding]:
    """
    Watch bindings for a project.

    Server source changes also restart the dev process.
    """
    return [
        WatchBinding(fileset=manager.fileset("server"), task_name="server-changed", restarts_dev_process=True),
        WatchBinding(fileset=manager.fileset("client"), task_name="client-changed"),
        WatchBinding(fileset=manager.fileset("client_vendor"), task_name="vendor-js"),
        WatchBinding(fileset=manager.fileset("html"), task_name="minify-html"),
        WatchBinding(fileset=manager.fileset("styles"), task_name="styles"),
        WatchBinding(fileset=manager.fileset("images"), task_name="images"),
        WatchBinding(fileset=manager.fileset("built_images"), task_name="strip-metadata"),
    ]
