"""
Pydantic models for the NuGet feed.

This module defines the data models used throughout the application, including:
- Feed configuration (overwrite policy, retention, authentication)
- Package metadata as extracted from an uploaded .nupkg
- Result values exchanged between the indexing pipeline and its collaborators

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedserver.domain.versioning import NuGetVersion


# ---------------------------------------------------------------------------
# Feed Configuration Models
# ---------------------------------------------------------------------------


class OverwritePolicy(str, Enum):
    """
    Whether a push may replace a package that already exists at the same
    id and version.
    """

    DISALLOW = "disallow"
    ALLOW_PRERELEASE_ONLY = "prerelease_only"
    ALLOW_ANY = "allow_any"


_LEGACY_OVERWRITE_VALUES = {
    "false": OverwritePolicy.DISALLOW,
    "true": OverwritePolicy.ALLOW_ANY,
    "prereleaseonly": OverwritePolicy.ALLOW_PRERELEASE_ONLY,
}


class RetentionOptions(BaseModel):
    """
    Per-tier limits on how many versions of a package are kept.

    Unset limits mean "keep everything at this tier". Retention is only
    enforced when at least one limit is set.
    """

    model_config = ConfigDict(frozen=True)

    max_major_versions: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of distinct major versions to keep.",
    )
    max_minor_versions: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of distinct minor versions to keep within each kept major version.",
    )
    max_patch_versions: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of distinct patch versions to keep within each kept minor version.",
    )
    max_prerelease_versions: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of prerelease versions to keep within each kept patch version.",
    )

    @property
    def is_enabled(self) -> bool:
        return any(
            limit is not None
            for limit in (
                self.max_major_versions,
                self.max_minor_versions,
                self.max_patch_versions,
                self.max_prerelease_versions,
            )
        )


class ApiKey(BaseModel):
    """A key that is allowed to push packages into the feed."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(
        min_length=1,
        description="The API key value clients send in the X-NuGet-ApiKey header.",
    )


class AuthenticationOptions(BaseModel):
    """
    Push authentication. An empty key list means pushes are not authenticated.
    """

    model_config = ConfigDict(frozen=True)

    api_keys: List[ApiKey] = Field(
        default_factory=list,
        description="API keys accepted for pushing packages.",
    )


class FeedOptions(BaseModel):
    """
    Top-level configuration for the feed.

    Persisted at: <DATA_DIR>/feed.json. Snapshots are frozen so that one
    ingestion attempt always sees a consistent configuration.
    """

    model_config = ConfigDict(frozen=True)

    allow_package_overwrites: OverwritePolicy = Field(
        default=OverwritePolicy.DISALLOW,
        description="Whether pushing an existing id/version replaces it.",
    )
    retention: RetentionOptions = Field(
        default_factory=RetentionOptions,
        description="Version retention limits applied after each successful push.",
    )
    authentication: AuthenticationOptions = Field(
        default_factory=AuthenticationOptions,
        description="Push authentication settings.",
    )
    max_package_size_bytes: int = Field(
        default=8 * 1024 * 1024 * 1024,
        gt=0,
        description="Largest accepted upload, in bytes.",
    )
    max_versions_per_package: Optional[int] = Field(
        default=None,
        description="Deprecated and ignored. Use the retention limits instead.",
    )

    @field_validator("allow_package_overwrites", mode="before")
    @classmethod
    def _coerce_legacy_overwrite_values(cls, value):
        if isinstance(value, bool):
            return OverwritePolicy.ALLOW_ANY if value else OverwritePolicy.DISALLOW
        if isinstance(value, str):
            legacy = _LEGACY_OVERWRITE_VALUES.get(value.strip().lower())
            if legacy is not None:
                return legacy
        return value


# ---------------------------------------------------------------------------
# Package Metadata Models
# ---------------------------------------------------------------------------


class PackageDependency(BaseModel):
    """
    A dependency declared in the .nuspec.

    A dependency group without any dependencies is recorded with ``id`` set
    to None so the target framework is still known.
    """

    id: Optional[str] = Field(
        default=None,
        description="Identifier of the package depended upon.",
    )
    version_range: Optional[str] = Field(
        default=None,
        description="Allowed version range, verbatim from the .nuspec.",
    )
    target_framework: Optional[str] = Field(
        default=None,
        description="Target framework of the dependency group, if any.",
    )


class PackageType(BaseModel):
    name: str
    version: Optional[str] = None


class Package(BaseModel):
    """
    Metadata for one version of a package.

    Identity is (id, version): the id compares case-insensitively and the
    version compares by NuGet version precedence. ``version`` holds the
    normalized version string; ``original_version`` keeps what the
    uploader wrote.

    Persisted in: <DATA_DIR>/metadata/<id>/<version>.json
    """

    # Identity
    id: str = Field(
        description="Package identifier, original casing preserved.",
    )
    version: str = Field(
        description="Normalized version string (metadata stripped).",
    )
    original_version: Optional[str] = Field(
        default=None,
        description="Version string as written in the .nuspec.",
    )

    # Descriptive metadata
    authors: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    language: Optional[str] = None
    release_notes: Optional[str] = None
    project_url: Optional[str] = None
    license_url: Optional[str] = None
    icon_url: Optional[str] = None
    repository_url: Optional[str] = None
    repository_type: Optional[str] = None
    require_license_acceptance: bool = False
    min_client_version: Optional[str] = None

    # Embedded resources
    has_readme: bool = Field(
        default=False,
        description="True when the .nuspec declares a readme file.",
    )
    has_embedded_icon: bool = Field(
        default=False,
        description="True when the .nuspec declares an embedded icon file.",
    )

    # Registry state
    listed: bool = True
    published: Optional[datetime] = Field(
        default=None,
        description="Set by the feed when the package is ingested; never taken from the archive.",
    )

    dependencies: List[PackageDependency] = Field(default_factory=list)
    package_types: List[PackageType] = Field(default_factory=list)
    target_frameworks: List[str] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _normalize_version(cls, value):
        if isinstance(value, NuGetVersion):
            return value.normalized
        return NuGetVersion.parse(value).normalized

    @property
    def nuget_version(self) -> NuGetVersion:
        return NuGetVersion.parse(self.version)

    @property
    def is_prerelease(self) -> bool:
        return self.nuget_version.is_prerelease

    @property
    def lower_id(self) -> str:
        return self.id.lower()

    @property
    def normalized_version(self) -> str:
        return self.version


# ---------------------------------------------------------------------------
# Pipeline Result Models
# ---------------------------------------------------------------------------


class PackageIndexingResult(str, Enum):
    """Terminal outcome of one ingestion attempt."""

    SUCCESS = "success"
    INVALID_PACKAGE = "invalid_package"
    PACKAGE_ALREADY_EXISTS = "package_already_exists"


class PackageAddResult(str, Enum):
    """Result of inserting package metadata into the metadata store."""

    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class StoragePutResult(str, Enum):
    """Result of writing a single file into the content store."""

    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"
