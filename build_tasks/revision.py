"""
Source revision lookup.
"""

import os
import subprocess
from pathlib import Path
from typing import Optional

from build_tasks.errors import RevisionError


# Environment variable that overrides the git lookup (CI checkouts, tarballs)
REVISION_ENV_VAR = "BUILD_TASKS_REVISION"


def current_revision(project_root: Path, override: Optional[str] = None) -> str:
    """
    Get the full revision identifier of the project's checkout.

    Args:
        project_root: Directory inside the git work tree
        override: Explicit revision; wins over everything else

    Returns:
        Full revision identifier

    Raises:
        RevisionError: If no revision can be determined
    """
    if override is not None:
        if not override.strip():
            raise RevisionError("Revision must not be empty")
        return override.strip()

    env_revision = os.environ.get(REVISION_ENV_VAR)
    if env_revision:
        if not env_revision.strip():
            raise RevisionError(f"{REVISION_ENV_VAR} must not be blank")
        return env_revision.strip()

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(project_root),
            check=True,
            capture_output=True,
            text=True
        )
    except FileNotFoundError as e:
        raise RevisionError("git is not installed") from e
    except subprocess.CalledProcessError as e:
        detail = e.stderr.strip() if e.stderr else str(e)
        raise RevisionError(f"Cannot read revision in {project_root}: {detail}") from e

    revision = result.stdout.strip()
    if not revision:
        raise RevisionError(f"Empty revision reported in {project_root}")
    return revision


def short_revision(revision: str) -> str:
    """Abbreviated form used in file names and the version stamp."""
    return revision[:7]
