import json
import logging
import uuid
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from feedserver.domain.models import Package, PackageAddResult
from feedserver.domain.versioning import NuGetVersion
from feedserver.storage.db_manager import PackageDatabase

logger = logging.getLogger(__name__)


class JsonPackageDatabase(PackageDatabase):
    """
    Metadata store keeping one JSON document per package version:

        <data_dir>/metadata/<lower id>/<lower normalized version>.json
    """

    def __init__(self, data_dir: Path):
        self._data_dir = data_dir
        self._root = data_dir / "metadata"

    async def initialize(self) -> None:
        await aiofiles.os.makedirs(self._root, exist_ok=True)

    def _package_dir(self, package_id: str) -> Path:
        return self._root / package_id.lower()

    def _version_path(self, package_id: str, version: str) -> Path:
        normalized = NuGetVersion.parse(version).normalized.lower()
        return self._package_dir(package_id) / f"{normalized}.json"

    async def exists(self, package_id: str, version: str) -> bool:
        return await aiofiles.os.path.isfile(self._version_path(package_id, version))

    async def add(self, package: Package) -> PackageAddResult:
        path = self._version_path(package.id, package.version)
        tmp_path = path.with_name(f".{path.stem}.{uuid.uuid4().hex}.tmp")

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(package.model_dump_json(indent=2))

            # Linking fails if the target exists, so only one concurrent writer wins.
            await aiofiles.os.link(tmp_path, path)
        except FileExistsError:
            return PackageAddResult.ALREADY_EXISTS
        except OSError:
            logger.error(f"Failed to save metadata for {package.id} {package.version}", exc_info=True)
            return PackageAddResult.FAILED
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)

        return PackageAddResult.SUCCESS

    async def hard_delete(self, package_id: str, version: str) -> bool:
        path = self._version_path(package_id, version)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    async def get(self, package_id: str, version: str) -> Optional[Package]:
        return await self._read(self._version_path(package_id, version))

    async def find(self, package_id: str) -> List[Package]:
        pkg_dir = self._package_dir(package_id)
        if not await aiofiles.os.path.isdir(pkg_dir):
            return []
        packages = await self._read_dir(pkg_dir)
        packages.sort(key=lambda p: p.nuget_version)
        return packages

    async def get_all(self) -> List[Package]:
        if not await aiofiles.os.path.isdir(self._root):
            return []
        packages: List[Package] = []
        for entry in await aiofiles.os.scandir(self._root):
            if entry.is_dir():
                packages.extend(await self._read_dir(Path(entry.path)))
        return packages

    async def _read_dir(self, pkg_dir: Path) -> List[Package]:
        packages: List[Package] = []
        for entry in await aiofiles.os.scandir(pkg_dir):
            # Skip in-flight temporary files.
            if not entry.name.endswith(".json") or entry.name.startswith("."):
                continue
            package = await self._read(Path(entry.path))
            if package is not None:
                packages.append(package)
        return packages

    async def _read(self, path: Path) -> Optional[Package]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return None

        try:
            return Package(**json.loads(content))
        except (ValueError, TypeError, ValidationError):
            logger.warning(f"Ignoring unreadable package metadata at {path}", exc_info=True)
            return None
