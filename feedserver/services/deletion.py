from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from feedserver.domain.models import Package
from feedserver.domain.versioning import NuGetVersion
from feedserver.services.search import SearchIndexer
from feedserver.storage.db_manager import PackageDatabase
from feedserver.storage.package_storage import PackageStorageService

logger = logging.getLogger(__name__)


def _newest_groups(
    versions: Iterable[NuGetVersion],
    key: Callable[[NuGetVersion], int],
    limit: Optional[int],
) -> Dict[int, List[NuGetVersion]]:
    groups: Dict[int, List[NuGetVersion]] = {}
    for v in versions:
        groups.setdefault(key(v), []).append(v)
    kept = sorted(groups, reverse=True)
    if limit is not None:
        kept = kept[:limit]
    return {k: groups[k] for k in kept}


def select_versions_to_keep(
    versions: Iterable[NuGetVersion],
    max_major: Optional[int] = None,
    max_minor: Optional[int] = None,
    max_patch: Optional[int] = None,
    max_prerelease: Optional[int] = None,
) -> Set[NuGetVersion]:
    """
    Apply the retention limits tier by tier.

    The newest ``max_major`` majors are kept; inside each of them the newest
    ``max_minor`` minors; inside each of those the newest ``max_patch``
    patches. Inside a kept patch every stable version survives along with the
    newest ``max_prerelease`` prereleases. A limit of None keeps the whole tier.
    """
    keep: Set[NuGetVersion] = set()
    for major_group in _newest_groups(versions, lambda v: v.major, max_major).values():
        for minor_group in _newest_groups(major_group, lambda v: v.minor, max_minor).values():
            for patch_group in _newest_groups(minor_group, lambda v: v.patch, max_patch).values():
                keep.update(v for v in patch_group if not v.is_prerelease)
                prereleases = sorted((v for v in patch_group if v.is_prerelease), reverse=True)
                if max_prerelease is not None:
                    prereleases = prereleases[:max_prerelease]
                keep.update(prereleases)
    return keep


class PackageDeletionService:
    """
    Removes package versions from the metadata store, the content store and
    the search index.
    """

    def __init__(
        self,
        packages: PackageDatabase,
        storage: PackageStorageService,
        search: SearchIndexer,
    ):
        self._packages = packages
        self._storage = storage
        self._search = search

    async def hard_delete_package(self, package_id: str, version: str) -> bool:
        """
        Permanently delete one package version. Returns False if it did not exist.
        """
        found = await self._packages.hard_delete(package_id, version)
        if not found:
            return False

        await self._storage.delete(package_id, version)
        await self._search.remove(package_id, version)
        return True

    async def delete_old_versions(
        self,
        package: Package,
        max_major: Optional[int] = None,
        max_minor: Optional[int] = None,
        max_patch: Optional[int] = None,
        max_prerelease: Optional[int] = None,
    ) -> int:
        """
        Delete the versions of ``package.id`` that fall outside the retention
        limits. The given package version itself is always kept.

        Returns the number of versions deleted.
        """
        existing = await self._packages.find(package.id)
        if not existing:
            return 0

        by_version = {p.nuget_version: p for p in existing}
        keep = select_versions_to_keep(by_version, max_major, max_minor, max_patch, max_prerelease)
        keep.add(package.nuget_version)

        deleted = 0
        for version in sorted(by_version):
            if version in keep:
                continue
            old = by_version[version]
            logger.info(f"Deleting {old.id} {old.version} as it exceeds the retention limits")
            if await self.hard_delete_package(old.id, old.version):
                deleted += 1
        return deleted
