"""
Search indexing for pushed packages.

The in-memory index holds one document per package id with every indexed
version. It is rebuilt from the metadata store on startup and updated as
packages are pushed or pruned.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from feedserver.domain.feed_utils import match_text
from feedserver.domain.models import Package
from feedserver.storage.db_manager import PackageDatabase

logger = logging.getLogger(__name__)


class SearchIndexer(ABC):
    @abstractmethod
    async def index(self, package: Package) -> None:
        """Make a package version visible in search."""
        pass

    @abstractmethod
    async def remove(self, package_id: str, version: str) -> None:
        """Remove a package version from search, if present."""
        pass


class SearchDocument(BaseModel):
    """
    All indexed versions of one package, keyed by lower-cased normalized version.
    """

    id: str
    versions: Dict[str, Package] = Field(default_factory=dict)

    def listed_versions(self, include_prerelease: bool) -> List[Package]:
        selected = [
            p for p in self.versions.values()
            if p.listed and (include_prerelease or not p.is_prerelease)
        ]
        selected.sort(key=lambda p: p.nuget_version)
        return selected


class SearchResult(BaseModel):
    id: str
    version: str
    versions: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class InMemorySearchIndex(SearchIndexer):
    def __init__(self):
        self._documents: Dict[str, SearchDocument] = {}
        self.last_built_at: Optional[datetime] = None

    async def rebuild(self, packages: PackageDatabase) -> None:
        documents: Dict[str, SearchDocument] = {}
        for package in await packages.get_all():
            self._add(documents, package)
        self._documents = documents
        self.last_built_at = datetime.now(timezone.utc)
        logger.info(f"Search index rebuilt with {len(documents)} packages")

    async def index(self, package: Package) -> None:
        self._add(self._documents, package)
        logger.debug(f"Indexed {package.id} {package.version} in search")

    async def remove(self, package_id: str, version: str) -> None:
        document = self._documents.get(package_id.lower())
        if document is None:
            return
        document.versions.pop(version.lower(), None)
        if not document.versions:
            del self._documents[package_id.lower()]

    @staticmethod
    def _add(documents: Dict[str, SearchDocument], package: Package) -> None:
        document = documents.get(package.lower_id)
        if document is None:
            document = SearchDocument(id=package.id)
            documents[package.lower_id] = document
        document.versions[package.version.lower()] = package

    def contains(self, package_id: str, version: str) -> bool:
        document = self._documents.get(package_id.lower())
        return document is not None and version.lower() in document.versions

    def search(
        self,
        query: Optional[str] = None,
        include_prerelease: bool = False,
        skip: int = 0,
        take: int = 20,
        match_type: Optional[str] = None,
    ) -> List[SearchResult]:
        results: List[SearchResult] = []
        for key in sorted(self._documents):
            document = self._documents[key]
            versions = document.listed_versions(include_prerelease)
            if not versions:
                continue

            latest = versions[-1]
            if query and not self._matches(latest, query, match_type):
                continue

            results.append(
                SearchResult(
                    id=latest.id,
                    version=latest.version,
                    versions=[p.version for p in versions],
                    title=latest.title,
                    description=latest.description,
                    authors=latest.authors,
                    tags=latest.tags,
                )
            )
        return results[skip:skip + take]

    @staticmethod
    def _matches(package: Package, query: str, match_type: Optional[str]) -> bool:
        candidates = [
            package.id,
            package.title or "",
            *package.tags,
            *package.authors,
        ]
        return any(match_text(value, query, match_type) for value in candidates)
