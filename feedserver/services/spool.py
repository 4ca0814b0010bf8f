"""
Disk-backed temporary streams scoped to one ingestion attempt.

Entries inside a package archive can only be read forward, once. The spool
copies such streams into files under a private temporary directory and hands
back re-readable handles. Everything the spool created is released together
when it is closed, whichever way the attempt ends.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Optional

import aiofiles

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class TemporarySpool:
    def __init__(self, prefix: str = "feed-spool-"):
        self._prefix = prefix
        self._tmpdir: Optional[tempfile.TemporaryDirectory] = None
        self._streams: List[BinaryIO] = []

    async def __aenter__(self) -> "TemporarySpool":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._tmpdir is None:
            self._tmpdir = tempfile.TemporaryDirectory(prefix=self._prefix)

    @property
    def directory(self) -> Optional[Path]:
        if self._tmpdir is None:
            return None
        return Path(self._tmpdir.name)

    @property
    def is_open(self) -> bool:
        return self._tmpdir is not None

    @property
    def stream_count(self) -> int:
        return len(self._streams)

    async def spool(self, source: BinaryIO, name: str = "stream") -> BinaryIO:
        """
        Copy the remainder of ``source`` to a temporary file.

        Returns a read handle on the copy positioned at the start. The handle
        is owned by the spool and must not outlive it.
        """
        if self._tmpdir is None:
            raise RuntimeError("The spool is closed")

        path = Path(self._tmpdir.name) / f"{len(self._streams):03d}-{name}"
        async with aiofiles.open(path, "wb") as f:
            # Reading may inflate zip data, so keep it off the event loop.
            while True:
                chunk = await asyncio.to_thread(source.read, CHUNK_SIZE)
                if not chunk:
                    break
                await f.write(chunk)

        stream = path.open("rb")
        self._streams.append(stream)
        return stream

    def close(self) -> None:
        """Close every spooled stream and delete the directory. Safe to call twice."""
        streams, self._streams = self._streams, []
        for stream in streams:
            stream.close()

        if self._tmpdir is not None:
            logger.debug(f"Releasing spool directory {self._tmpdir.name}")
            self._tmpdir.cleanup()
            self._tmpdir = None
