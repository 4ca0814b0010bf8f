from __future__ import annotations

import logging
from enum import Enum

from feedserver.domain.models import OverwritePolicy, Package
from feedserver.services.search import SearchIndexer
from feedserver.storage.db_manager import PackageDatabase
from feedserver.storage.package_storage import PackageStorageService

logger = logging.getLogger(__name__)


class OverwriteDecision(str, Enum):
    PROCEED = "proceed"
    REJECT = "reject"
    PROCEED_AFTER_PURGE = "proceed_after_purge"


def decide_overwrite(exists: bool, is_prerelease: bool, policy: OverwritePolicy) -> OverwriteDecision:
    """
    Decide what to do with a push given whether the id/version already exists.
    """
    if not exists:
        return OverwriteDecision.PROCEED
    if policy == OverwritePolicy.DISALLOW:
        return OverwriteDecision.REJECT
    if policy == OverwritePolicy.ALLOW_PRERELEASE_ONLY and not is_prerelease:
        return OverwriteDecision.REJECT
    return OverwriteDecision.PROCEED_AFTER_PURGE


class OverwriteResolver:
    """
    Checks a pushed package against the metadata store and, when the policy
    allows replacing an existing version, purges the old version from the
    metadata store, the content store and the search index first.
    """

    def __init__(self, packages: PackageDatabase, storage: PackageStorageService, search: SearchIndexer):
        self._packages = packages
        self._storage = storage
        self._search = search

    async def resolve(self, package: Package, policy: OverwritePolicy) -> OverwriteDecision:
        exists = await self._packages.exists(package.id, package.version)
        decision = decide_overwrite(exists, package.is_prerelease, policy)

        if decision == OverwriteDecision.REJECT:
            logger.warning(
                f"Package {package.id} {package.version} already exists and "
                f"overwrite policy '{policy.value}' does not allow replacing it"
            )
        elif decision == OverwriteDecision.PROCEED_AFTER_PURGE:
            logger.info(f"Replacing existing package {package.id} {package.version}")
            # Metadata first: the old content is never reachable without its metadata.
            await self._packages.hard_delete(package.id, package.version)
            await self._storage.delete(package.id, package.version)
            await self._search.remove(package.id, package.version)

        return decision
