from abc import ABC, abstractmethod
from typing import List, Optional

from feedserver.domain.models import Package, PackageAddResult


class PackageDatabase(ABC):
    """
    Abstract base class for the package metadata store.

    The store is the source of truth for whether an (id, version) exists.
    Ids compare case-insensitively; versions are compared in their
    normalized form.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage subsystem."""
        pass

    @abstractmethod
    async def exists(self, package_id: str, version: str) -> bool:
        """Check whether metadata for the package version is stored."""
        pass

    @abstractmethod
    async def add(self, package: Package) -> PackageAddResult:
        """
        Insert package metadata.

        Exactly one of several concurrent inserts of the same id/version
        returns SUCCESS; the others return ALREADY_EXISTS.
        """
        pass

    @abstractmethod
    async def hard_delete(self, package_id: str, version: str) -> bool:
        """Permanently remove the metadata. Returns False if nothing was stored."""
        pass

    @abstractmethod
    async def get(self, package_id: str, version: str) -> Optional[Package]:
        """Get the metadata for one package version."""
        pass

    @abstractmethod
    async def find(self, package_id: str) -> List[Package]:
        """Get all stored versions of a package, oldest first."""
        pass

    @abstractmethod
    async def get_all(self) -> List[Package]:
        """Get every stored package version."""
        pass
