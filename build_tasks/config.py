"""
Configuration management for build-tasks.

Handles loading and saving the project build configuration and resolving
the process-wide BuildConfig from it, the environment, and CLI overrides.
"""

import json
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from build_tasks.atomic import AtomicFileWriter
from build_tasks.errors import ConfigError
from build_tasks.models import BuildConfig, FileSet, ProjectConfig
from build_tasks.revision import current_revision


# Default configuration file, relative to the project root
DEFAULT_CONFIG_FILE = "build-tasks.json"

# .env file with environment overrides, relative to the project root
ENV_FILE = ".env"

# Environment variable names for policy overrides
ENV_DEBUG = "BUILD_TASKS_DEBUG"
ENV_OBFUSCATE = "BUILD_TASKS_OBFUSCATE"
ENV_RENAME = "BUILD_TASKS_RENAME"
ENV_STRIP_METADATA = "BUILD_TASKS_STRIP_METADATA"
ENV_LOG_LEVEL = "BUILD_TASKS_LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_flag(name: str) -> Optional[bool]:
    """
    Read a boolean environment variable.

    Returns:
        True/False, or None if unset

    Raises:
        ConfigError: If the value is not a recognizable boolean
    """
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


class ConfigManager:
    """
    Manages the project build configuration.

    Loads build-tasks.json from the project root (defaults when absent)
    and turns it into the immutable BuildConfig used by every transform.
    """

    def __init__(self, project_root: Optional[Path] = None, config_file: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            project_root: Project root directory. Defaults to the current directory
            config_file: Path to configuration file. Defaults to <project_root>/build-tasks.json
        """
        self.project_root = Path(project_root or Path.cwd()).resolve()
        self.config_file = Path(config_file) if config_file else self.project_root / DEFAULT_CONFIG_FILE
        self.env_file = self.project_root / ENV_FILE

        self.config = self._load_config()

    def _load_config(self) -> ProjectConfig:
        """Load configuration from file or create default."""
        try:
            data = AtomicFileWriter.read_json(self.config_file)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {self.config_file}: {e}") from e

        if data is None:
            return ProjectConfig()

        try:
            return ProjectConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_file}:\n{e}") from e

    def save_config(self) -> None:
        """Save configuration atomically."""
        AtomicFileWriter.write_json(self.config_file, self.config.model_dump(mode="json"), indent=2)

    def reload(self) -> None:
        """Reload configuration from disk."""
        self.config = self._load_config()

    def load_env(self) -> None:
        """Load .env overrides from the project root, without clobbering the real environment."""
        if self.env_file.exists():
            load_dotenv(self.env_file, override=False)

    def build_config(
        self,
        debug: Optional[bool] = None,
        revision: Optional[str] = None
    ) -> BuildConfig:
        """
        Resolve the BuildConfig for this process.

        Precedence: explicit arguments, then environment (.env included),
        then the configuration file.

        Args:
            debug: Force debug (True) or release (False) mode
            revision: Explicit revision identifier

        Returns:
            Frozen BuildConfig

        Raises:
            ConfigError: If an environment override or the resulting policy is invalid
            RevisionError: If no revision can be determined
        """
        self.load_env()
        config = self.config

        def pick(explicit: Optional[bool], env_name: str, configured: bool) -> bool:
            if explicit is not None:
                return explicit
            from_env = env_flag(env_name)
            return configured if from_env is None else from_env

        try:
            return BuildConfig(
                debug=pick(debug, ENV_DEBUG, config.debug),
                obfuscate=pick(None, ENV_OBFUSCATE, config.obfuscate),
                rename_with_version_suffix=pick(None, ENV_RENAME, config.rename_with_version_suffix),
                strip_metadata=pick(None, ENV_STRIP_METADATA, config.strip_metadata),
                version_tag=current_revision(self.project_root, revision),
                project_root=str(self.project_root),
                output_root=config.output_root,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid build configuration:\n{e}") from e

    def fileset(self, name: str) -> FileSet:
        """
        Get a configured FileSet resolved against the project root.

        Raises:
            ConfigError: If no file set has this name
        """
        try:
            return self.config.get_fileset(name, self.project_root)
        except KeyError as e:
            raise ConfigError(str(e.args[0])) from e
