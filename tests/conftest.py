"""
Shared Test Fixtures for the feed server
==========================================

Fixtures are organized by layer:

    1. Clock and configuration (fixed clock, writable feed.json)
    2. Package archives (nupkg factory)
    3. Storage (metadata store, content store)
    4. Services (search index, deletion service, indexing service)
"""

from __future__ import annotations

import io
import json
import os
import zipfile
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from feedserver.data.options import OPTIONS_FILE_NAME, FeedOptionsProvider
from feedserver.services import indexing as indexing_module
from feedserver.services.deletion import PackageDeletionService
from feedserver.services.indexing import PackageIndexingService
from feedserver.services.search import InMemorySearchIndex
from feedserver.services.spool import TemporarySpool
from feedserver.storage.json_db_manager import JsonPackageDatabase
from feedserver.storage.package_storage import FilePackageStorageService

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Clock and configuration
# =============================================================================
class FixedClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def utc_now(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def options_provider(data_dir):
    return FeedOptionsProvider(data_dir / OPTIONS_FILE_NAME)


@pytest.fixture
def write_options(options_provider):
    """
    Write feed.json. Each write gets a strictly later mtime so the provider
    always notices the change, regardless of filesystem timestamp resolution.
    """
    state = {"mtime_ns": 1_700_000_000_000_000_000}

    def _write(**options) -> None:
        path = options_provider.path
        path.write_text(json.dumps(options), encoding="utf-8")
        state["mtime_ns"] += 1_000_000_000
        os.utime(path, ns=(state["mtime_ns"], state["mtime_ns"]))

    return _write


# =============================================================================
# Package archives
# =============================================================================
def build_nuspec(
    package_id: str,
    version: str,
    readme: Optional[str] = None,
    icon: Optional[str] = None,
    authors: str = "Test Author",
    description: str = "A package used in tests",
    tags: Optional[str] = None,
    dependencies: Optional[Dict[str, List[tuple]]] = None,
) -> str:
    parts = [
        f"<id>{package_id}</id>",
        f"<version>{version}</version>",
        f"<authors>{authors}</authors>",
        f"<description>{description}</description>",
    ]
    if tags:
        parts.append(f"<tags>{tags}</tags>")
    if readme:
        parts.append(f"<readme>{readme}</readme>")
    if icon:
        parts.append(f"<icon>{icon}</icon>")
    if dependencies:
        groups = []
        for framework, deps in dependencies.items():
            entries = "".join(f'<dependency id="{d_id}" version="{d_ver}" />' for d_id, d_ver in deps)
            groups.append(f'<group targetFramework="{framework}">{entries}</group>')
        parts.append(f"<dependencies>{''.join(groups)}</dependencies>")

    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">'
        f"<metadata>{''.join(parts)}</metadata>"
        "</package>"
    )


def build_nupkg(
    package_id: str = "Test.Package",
    version: str = "1.0.0",
    readme_content: Optional[bytes] = None,
    icon_content: Optional[bytes] = None,
    nuspec: Optional[str] = None,
    extra_entries: Optional[Dict[str, bytes]] = None,
    **nuspec_kwargs,
) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        if nuspec is None:
            nuspec = build_nuspec(
                package_id,
                version,
                readme="README.md" if readme_content is not None else None,
                icon="images/icon.png" if icon_content is not None else None,
                **nuspec_kwargs,
            )
        zf.writestr(f"{package_id}.nuspec", nuspec)
        if readme_content is not None:
            zf.writestr("README.md", readme_content)
        if icon_content is not None:
            zf.writestr("images/icon.png", icon_content)
        zf.writestr("lib/net8.0/Test.dll", b"\x4d\x5a" + package_id.encode() + version.encode())
        for name, content in (extra_entries or {}).items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def nupkg_factory():
    return build_nupkg


# =============================================================================
# Storage
# =============================================================================
@pytest.fixture
async def database(data_dir):
    db = JsonPackageDatabase(data_dir)
    await db.initialize()
    return db


@pytest.fixture
def storage(data_dir):
    return FilePackageStorageService(data_dir)


# =============================================================================
# Services
# =============================================================================
@pytest.fixture
def search_index():
    return InMemorySearchIndex()


@pytest.fixture
def deletion_service(database, storage, search_index):
    return PackageDeletionService(database, storage, search_index)


@pytest.fixture
def indexing_service(database, storage, deletion_service, search_index, clock, options_provider):
    return PackageIndexingService(
        packages=database,
        storage=storage,
        deletion=deletion_service,
        search=search_index,
        time=clock,
        options=options_provider,
    )


class RecordingSpool(TemporarySpool):
    """Spool that remembers every instance created, for cleanup assertions."""

    instances: List["RecordingSpool"] = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.opened_directory = None
        RecordingSpool.instances.append(self)

    def open(self) -> None:
        super().open()
        self.opened_directory = self.directory


@pytest.fixture
def spool_tracker(monkeypatch):
    RecordingSpool.instances = []
    monkeypatch.setattr(indexing_module, "TemporarySpool", RecordingSpool)
    return RecordingSpool.instances
