from pathlib import Path
from typing import Optional

from feedserver.core.clock import SystemTime
from feedserver.data.options import OPTIONS_FILE_NAME, FeedOptionsProvider, get_data_dir
from feedserver.services.deletion import PackageDeletionService
from feedserver.services.indexing import PackageIndexingService
from feedserver.services.search import InMemorySearchIndex
from feedserver.storage.db_manager import PackageDatabase
from feedserver.storage.json_db_manager import JsonPackageDatabase
from feedserver.storage.package_storage import FilePackageStorageService, PackageStorageService

_options_provider: Optional[FeedOptionsProvider] = None
_package_database: Optional[PackageDatabase] = None
_storage_service: Optional[PackageStorageService] = None
_search_index: Optional[InMemorySearchIndex] = None
_deletion_service: Optional[PackageDeletionService] = None
_indexing_service: Optional[PackageIndexingService] = None
_system_time = SystemTime()


def get_options_provider() -> FeedOptionsProvider:
    global _options_provider
    if _options_provider is None:
        _options_provider = FeedOptionsProvider(get_data_dir() / OPTIONS_FILE_NAME)
    return _options_provider


def get_package_database() -> PackageDatabase:
    global _package_database
    if _package_database is None:
        _package_database = JsonPackageDatabase(get_data_dir())
    return _package_database


def get_storage_service() -> PackageStorageService:
    global _storage_service
    if _storage_service is None:
        _storage_service = FilePackageStorageService(get_data_dir())
    return _storage_service


def get_search_index() -> InMemorySearchIndex:
    global _search_index
    if _search_index is None:
        _search_index = InMemorySearchIndex()
    return _search_index


def get_deletion_service() -> PackageDeletionService:
    global _deletion_service
    if _deletion_service is None:
        _deletion_service = PackageDeletionService(
            get_package_database(),
            get_storage_service(),
            get_search_index(),
        )
    return _deletion_service


def get_indexing_service() -> PackageIndexingService:
    global _indexing_service
    if _indexing_service is None:
        _indexing_service = PackageIndexingService(
            packages=get_package_database(),
            storage=get_storage_service(),
            deletion=get_deletion_service(),
            search=get_search_index(),
            time=_system_time,
            options=get_options_provider(),
        )
    return _indexing_service


async def initialize_feed() -> Path:
    """
    Called by FastAPI on startup.

    * Resolve and create the data directory.
    * Load feed.json, writing defaults when it does not exist yet.
    * Initialize the metadata store and build the search index from it.
    """
    data_dir = get_data_dir()
    get_options_provider().initialize()
    packages = get_package_database()
    await packages.initialize()
    await get_search_index().rebuild(packages)
    return data_dir
