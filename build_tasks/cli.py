"""
Command-line interface for build-tasks.

    build-tasks              run the default pipeline (build, watch, serve)
    build-tasks build        run one named task
    build-tasks --list       list registered tasks
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from build_tasks.config import ConfigManager, ENV_LOG_LEVEL
from build_tasks.daemon import BuildDaemon, StartWatchTransform, ServeTransform, configure_logging
from build_tasks.errors import ConfigError, RevisionError, TaskGraphError
from build_tasks.pipeline import build_registry, DEFAULT_TASK
from build_tasks.registry import TaskRegistry


# Exit codes
EXIT_OK = 0
EXIT_TASK_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="build-tasks",
        description="Run build tasks and rebuild on change"
    )
    parser.add_argument(
        "task",
        nargs="?",
        default=DEFAULT_TASK,
        help=f"Task to run (default: {DEFAULT_TASK})"
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project root directory (default: current directory)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: <project-root>/build-tasks.json)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--debug",
        dest="debug",
        action="store_true",
        default=None,
        help="Skip minification and obfuscation"
    )
    mode.add_argument(
        "--release",
        dest="debug",
        action="store_false",
        help="Minify and obfuscate outputs"
    )
    parser.add_argument(
        "--revision",
        default=None,
        help="Revision identifier to stamp (default: git HEAD)"
    )
    parser.add_argument(
        "--no-watch",
        action="store_true",
        help="Do not start the watch engine"
    )
    parser.add_argument(
        "--no-serve",
        action="store_true",
        help="Do not start the dev process"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List registered tasks and exit"
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write the default configuration file and exit"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help=f"Log level (default: ${ENV_LOG_LEVEL} or INFO)"
    )
    return parser


def cmd_list(registry: TaskRegistry) -> int:
    """Print registered tasks with their composition."""
    for name in registry.names():
        task = registry.resolve(name)
        if task.children:
            print(f"  {name:<16} {task.kind.value}({', '.join(task.children)})")
        else:
            print(f"  {name:<16} {type(task.transform).__name__}")
    return EXIT_OK


def cmd_init_config(manager: ConfigManager) -> int:
    """Write the default configuration file."""
    if manager.config_file.exists():
        print(f"Configuration already exists: {manager.config_file}", file=sys.stderr)
        return EXIT_USAGE
    manager.save_config()
    print(f"Configuration written: {manager.config_file}")
    return EXIT_OK


def main(argv=None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or os.environ.get(ENV_LOG_LEVEL, "INFO"))

    try:
        manager = ConfigManager(project_root=args.project_root, config_file=args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.init_config:
        return cmd_init_config(manager)

    if args.list:
        return cmd_list(build_registry(
            manager,
            watch_hook=StartWatchTransform(None),
            serve_hook=ServeTransform(None)
        ))

    try:
        build_config = manager.build_config(debug=args.debug, revision=args.revision)
        daemon = BuildDaemon(
            manager,
            build_config,
            watch=not args.no_watch,
            serve=not args.no_serve
        )
        daemon.registry.resolve(args.task)
    except (ConfigError, RevisionError, TaskGraphError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        run = asyncio.run(daemon.run(args.task))
    except KeyboardInterrupt:
        # Signal handlers take over SIGINT once the run has completed
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    if not run.succeeded:
        print(f"Build failed: {run.error}", file=sys.stderr)
        return EXIT_TASK_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
