from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from feedserver.domain.models import FeedOptions

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "FEED_DATA_DIR"
OPTIONS_FILE_NAME = "feed.json"

# Resolve repository root (project root, not the Python package root)
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable FEED_DATA_DIR
    2. '<project root>/data'
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        data_dir = Path(env_path).expanduser()
    else:
        data_dir = _DEFAULT_DATA_DIR
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


class FeedOptionsProvider:
    """
    Serves FeedOptions snapshots loaded from feed.json.

    The file is re-read whenever its modification time changes, so edits
    take effect on the next request without a restart. A document that
    cannot be parsed is logged and the last good snapshot stays in effect.
    """

    def __init__(self, path: Path):
        self._path = path
        self._options: FeedOptions = FeedOptions()
        self._mtime_ns: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> FeedOptions:
        """
        Write a defaults document if none exists, then load it.
        """
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(FeedOptions().model_dump_json(indent=2), encoding="utf-8")
            logger.info(f"Wrote default feed options to {self._path}")
        return self.snapshot()

    def snapshot(self) -> FeedOptions:
        try:
            mtime_ns = self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return self._options

        with self._lock:
            if mtime_ns != self._mtime_ns:
                self._reload(mtime_ns)
            return self._options

    def _reload(self, mtime_ns: int) -> None:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            options = FeedOptions(**raw)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            # Remember the mtime so a broken file is reported once, not per request.
            self._mtime_ns = mtime_ns
            logger.error(f"Failed to load feed options from {self._path}, keeping previous options: {e}")
            return

        if options.max_versions_per_package is not None:
            logger.error(
                "max_versions_per_package is deprecated and ignored. Use the retention "
                "max_major_versions, max_minor_versions, max_patch_versions and "
                "max_prerelease_versions settings instead."
            )

        self._options = options
        self._mtime_ns = mtime_ns
        logger.info(f"Loaded feed options from {self._path}")
