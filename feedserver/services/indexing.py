"""
The package ingestion pipeline.

One call to ``PackageIndexingService.index`` takes an uploaded .nupkg through:

    extract -> resolve overwrite (-> purge) -> store content
            -> commit metadata -> index in search -> prune old versions

Each step starts only after the previous one finished. Malformed uploads and
duplicates end in a soft PackageIndexingResult; infrastructure failures up
to and including search indexing raise PackageIngestionError; failures while
pruning old versions are logged and never change the result.
"""

from __future__ import annotations

import logging
from typing import BinaryIO

from feedserver.core.clock import SystemTime
from feedserver.data.options import FeedOptionsProvider
from feedserver.domain.exceptions import (
    IngestionStage,
    InvalidPackageError,
    PackageIngestionError,
)
from feedserver.domain.models import (
    FeedOptions,
    Package,
    PackageAddResult,
    PackageIndexingResult,
    RetentionOptions,
)
from feedserver.services.archive import read_package
from feedserver.services.deletion import PackageDeletionService
from feedserver.services.overwrite import OverwriteDecision, OverwriteResolver
from feedserver.services.search import SearchIndexer
from feedserver.services.spool import TemporarySpool
from feedserver.storage.db_manager import PackageDatabase
from feedserver.storage.package_storage import PackageStorageService

logger = logging.getLogger(__name__)


class PackageIndexingService:
    def __init__(
        self,
        packages: PackageDatabase,
        storage: PackageStorageService,
        deletion: PackageDeletionService,
        search: SearchIndexer,
        time: SystemTime,
        options: FeedOptionsProvider,
    ):
        self._packages = packages
        self._storage = storage
        self._deletion = deletion
        self._search = search
        self._time = time
        self._options = options
        self._resolver = OverwriteResolver(packages, storage, search)

    async def index(self, package_stream: BinaryIO) -> PackageIndexingResult:
        """
        Ingest one uploaded package.

        Configuration is read once per call so a reload never splits an
        attempt across two configurations. All temporary files created for
        the attempt are removed before this returns or raises, including on
        task cancellation.
        """
        options = self._options.snapshot()
        async with TemporarySpool() as spool:
            return await self._index(package_stream, spool, options)

    async def _index(
        self,
        package_stream: BinaryIO,
        spool: TemporarySpool,
        options: FeedOptions,
    ) -> PackageIndexingResult:
        # Try to extract all the necessary information from the package.
        try:
            package, bundle = await read_package(package_stream, spool)
        except InvalidPackageError as e:
            logger.error(f"Uploaded package is invalid: {e.message}", exc_info=True)
            return PackageIndexingResult.INVALID_PACKAGE

        package.published = self._time.utc_now()

        # The package is well-formed. Ensure this is a new package.
        try:
            decision = await self._resolver.resolve(package, options.allow_package_overwrites)
        except Exception as e:
            raise self._fatal(
                package,
                IngestionStage.RESOLVE,
                f"Failed to check for an existing package {package.id} {package.version}",
            ) from e

        if decision == OverwriteDecision.REJECT:
            return PackageIndexingResult.PACKAGE_ALREADY_EXISTS

        logger.info(f"Validated package {package.id} {package.version}, persisting content to storage...")

        try:
            await self._storage.save_package_content(
                package,
                bundle.package_stream,
                bundle.nuspec_stream,
                bundle.readme_stream,
                bundle.icon_stream,
            )
        except Exception as e:
            # Concurrent pushes of the same package can end up here.
            raise self._fatal(
                package,
                IngestionStage.STORAGE,
                f"Failed to persist package {package.id} {package.version} content to storage",
            ) from e

        logger.info(f"Persisted package {package.id} {package.version} content to storage, saving metadata to database...")

        try:
            result = await self._packages.add(package)
        except Exception as e:
            raise self._fatal(
                package,
                IngestionStage.DATABASE,
                f"Failed to save package {package.id} {package.version} metadata to database",
            ) from e

        if result == PackageAddResult.ALREADY_EXISTS:
            logger.warning(f"Package {package.id} {package.version} metadata already exists in database")
            return PackageIndexingResult.PACKAGE_ALREADY_EXISTS

        if result != PackageAddResult.SUCCESS:
            logger.error(f"Unexpected result '{result.value}' saving package {package.id} {package.version} metadata")
            raise PackageIngestionError(
                f"Unexpected metadata store result: {result.value}",
                IngestionStage.DATABASE,
                package.id,
                package.version,
            )

        logger.info(f"Successfully persisted package {package.id} {package.version} metadata to database. Indexing in search...")

        try:
            await self._search.index(package)
        except Exception as e:
            raise self._fatal(
                package,
                IngestionStage.SEARCH,
                f"Failed to index package {package.id} {package.version} in search",
            ) from e

        if options.retention.is_enabled:
            await self._delete_old_versions(package, options.retention)

        logger.info(f"Successfully indexed package {package.id} {package.version} in search")
        return PackageIndexingResult.SUCCESS

    async def _delete_old_versions(self, package: Package, retention: RetentionOptions) -> None:
        # The package is already committed; pruning must never fail the push.
        try:
            logger.info(f"Deleting older packages for package {package.id} {package.version}")
            deleted = await self._deletion.delete_old_versions(
                package,
                retention.max_major_versions,
                retention.max_minor_versions,
                retention.max_patch_versions,
                retention.max_prerelease_versions,
            )
            if deleted > 0:
                logger.info(f"Deleted {deleted} older packages for package {package.id} {package.version}")
        except Exception:
            logger.error(
                f"Failed to cleanup older versions of package {package.id} {package.version}",
                exc_info=True,
            )

    @staticmethod
    def _fatal(package: Package, stage: IngestionStage, message: str) -> PackageIngestionError:
        logger.error(message, exc_info=True)
        return PackageIngestionError(message, stage, package.id, package.version)
