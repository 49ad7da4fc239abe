"""Environment loading for the signal correlator.

Settings read every tunable from the process environment. For local runs the
environment can be seeded from dotenv files; real environment variables always
win over file values.

Files, in order:
- $SIGNALS_ENV_FILE, when set (e.g. a mounted secrets file)
- .env in the project root
- .env.dev, only when DJANGO_ENV is dev/development/local
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEV_ENVIRONMENTS = {"dev", "development", "local"}


def env_files(base_dir: Path) -> list[Path]:
    """Candidate dotenv files for this process, highest priority first."""
    files = []
    explicit = os.environ.get("SIGNALS_ENV_FILE")
    if explicit:
        files.append(Path(explicit))
    files.append(base_dir / ".env")
    if os.environ.get("DJANGO_ENV", "").lower() in DEV_ENVIRONMENTS:
        files.append(base_dir / ".env.dev")
    return files


def load_env(base_dir: Path | None = None) -> list[Path]:
    """Load dotenv files into os.environ without overriding existing values.

    Safe to call more than once (settings and the Celery app both call it).

    Returns:
        The files that existed and were loaded.
    """
    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    loaded = []
    for path in env_files(base_dir):
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
    if loaded:
        logger.debug("Loaded environment from %s", ", ".join(str(p) for p in loaded))
    return loaded
