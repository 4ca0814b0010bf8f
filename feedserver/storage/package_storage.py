"""
Content store for package archives and the resources extracted from them.

Layout under the data directory:

    packages/<id>/<version>/<id>.<version>.nupkg
    packages/<id>/<version>/<id>.nuspec
    packages/<id>/<version>/readme
    packages/<id>/<version>/icon

Ids and versions are lower-cased; versions are normalized.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import shutil
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Optional

import aiofiles
import aiofiles.os

from feedserver.domain.exceptions import StorageConflictError
from feedserver.domain.models import Package, StoragePutResult
from feedserver.domain.versioning import NuGetVersion

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class PackageStorageService(ABC):
    """
    Abstract base class for persisting package content keyed by id and version.
    """

    @abstractmethod
    async def save_package_content(
        self,
        package: Package,
        package_stream: BinaryIO,
        nuspec_stream: BinaryIO,
        readme_stream: Optional[BinaryIO] = None,
        icon_stream: Optional[BinaryIO] = None,
    ) -> None:
        """
        Persist the package archive and its extracted resources.

        Raises StorageConflictError when different content is already stored
        for the same id and version.
        """
        pass

    @abstractmethod
    async def delete(self, package_id: str, version: str) -> None:
        """Remove all content stored for the package version, if any."""
        pass

    @abstractmethod
    async def open_package(self, package_id: str, version: str) -> Optional[BinaryIO]:
        pass

    @abstractmethod
    async def open_nuspec(self, package_id: str, version: str) -> Optional[BinaryIO]:
        pass

    @abstractmethod
    async def open_readme(self, package_id: str, version: str) -> Optional[BinaryIO]:
        pass

    @abstractmethod
    async def open_icon(self, package_id: str, version: str) -> Optional[BinaryIO]:
        pass


class FilePackageStorageService(PackageStorageService):
    def __init__(self, data_dir: Path):
        self._root = data_dir / "packages"

    def version_dir(self, package_id: str, version: str) -> Path:
        normalized = NuGetVersion.parse(version).normalized.lower()
        return self._root / package_id.lower() / normalized

    def package_path(self, package_id: str, version: str) -> Path:
        normalized = NuGetVersion.parse(version).normalized.lower()
        lower_id = package_id.lower()
        return self.version_dir(package_id, version) / f"{lower_id}.{normalized}.nupkg"

    def nuspec_path(self, package_id: str, version: str) -> Path:
        return self.version_dir(package_id, version) / f"{package_id.lower()}.nuspec"

    def readme_path(self, package_id: str, version: str) -> Path:
        return self.version_dir(package_id, version) / "readme"

    def icon_path(self, package_id: str, version: str) -> Path:
        return self.version_dir(package_id, version) / "icon"

    async def save_package_content(
        self,
        package: Package,
        package_stream: BinaryIO,
        nuspec_stream: BinaryIO,
        readme_stream: Optional[BinaryIO] = None,
        icon_stream: Optional[BinaryIO] = None,
    ) -> None:
        logger.info(f"Storing package {package.id} {package.version} in {self.version_dir(package.id, package.version)}")

        targets = [
            (self.package_path(package.id, package.version), package_stream),
            (self.nuspec_path(package.id, package.version), nuspec_stream),
        ]
        if readme_stream is not None:
            targets.append((self.readme_path(package.id, package.version), readme_stream))
        if icon_stream is not None:
            targets.append((self.icon_path(package.id, package.version), icon_stream))

        for path, stream in targets:
            result = await self._put(path, stream)
            if result == StoragePutResult.CONFLICT:
                raise StorageConflictError(str(path))

    async def delete(self, package_id: str, version: str) -> None:
        version_dir = self.version_dir(package_id, version)
        if await aiofiles.os.path.isdir(version_dir):
            await asyncio.to_thread(shutil.rmtree, version_dir)
            logger.info(f"Deleted stored content for {package_id} {version}")

    async def open_package(self, package_id: str, version: str) -> Optional[BinaryIO]:
        return await self._open(self.package_path(package_id, version))

    async def open_nuspec(self, package_id: str, version: str) -> Optional[BinaryIO]:
        return await self._open(self.nuspec_path(package_id, version))

    async def open_readme(self, package_id: str, version: str) -> Optional[BinaryIO]:
        return await self._open(self.readme_path(package_id, version))

    async def open_icon(self, package_id: str, version: str) -> Optional[BinaryIO]:
        return await self._open(self.icon_path(package_id, version))

    async def _open(self, path: Path) -> Optional[BinaryIO]:
        if not await aiofiles.os.path.isfile(path):
            return None
        return path.open("rb")

    async def _put(self, path: Path, stream: BinaryIO) -> StoragePutResult:
        """
        Write a stream to path without ever exposing a partially written file.

        The content is written to a temporary sibling and hard-linked into
        place; if a file already exists there, its hash decides between
        ALREADY_EXISTS (same bytes) and CONFLICT.
        """
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")

        if stream.seekable():
            stream.seek(0)

        hasher = hashlib.sha256()
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                while True:
                    chunk = await asyncio.to_thread(stream.read, CHUNK_SIZE)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    await f.write(chunk)

            try:
                await aiofiles.os.link(tmp_path, path)
                return StoragePutResult.SUCCESS
            except FileExistsError:
                existing_hash = await self._hash_file(path)
                if existing_hash == hasher.hexdigest():
                    return StoragePutResult.ALREADY_EXISTS
                logger.warning(f"Refusing to overwrite {path} with different content")
                return StoragePutResult.CONFLICT
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)

    async def _hash_file(self, path: Path) -> str:
        h = hashlib.sha256()
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                h.update(chunk)
        return h.hexdigest()
