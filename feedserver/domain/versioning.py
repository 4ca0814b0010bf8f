"""
NuGet-flavoured semantic versions.

Versions look like ``major[.minor[.patch[.revision]]][-label(.label)*][+metadata]``.
Ordering follows SemVer 2.0 precedence extended with the legacy fourth
``revision`` part; build metadata never participates in ordering or equality.
"""

from __future__ import annotations

import re
from functools import total_ordering
from typing import Optional, Tuple

_VERSION_RE = re.compile(
    r"^(?P<major>\d+)"
    r"(?:\.(?P<minor>\d+))?"
    r"(?:\.(?P<patch>\d+))?"
    r"(?:\.(?P<revision>\d+))?"
    r"(?:-(?P<release>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def _label_key(label: str) -> tuple:
    # Numeric labels sort below alphanumeric ones.
    if label.isdigit():
        return (0, int(label), "")
    return (1, 0, label.lower())


@total_ordering
class NuGetVersion:
    """Immutable parsed version."""

    __slots__ = ("major", "minor", "patch", "revision", "release_labels", "metadata", "original")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        revision: int = 0,
        release_labels: Tuple[str, ...] = (),
        metadata: Optional[str] = None,
        original: Optional[str] = None,
    ):
        self.major = major
        self.minor = minor
        self.patch = patch
        self.revision = revision
        self.release_labels = tuple(release_labels)
        self.metadata = metadata
        self.original = original

    @classmethod
    def parse(cls, value: str) -> "NuGetVersion":
        if value is None:
            raise ValueError("Version is required")
        text = value.strip()
        match = _VERSION_RE.match(text)
        if not match:
            raise ValueError(f"'{value}' is not a valid version string")

        release = match.group("release")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            revision=int(match.group("revision") or 0),
            release_labels=tuple(release.split(".")) if release else (),
            metadata=match.group("metadata"),
            original=text,
        )

    @classmethod
    def try_parse(cls, value: Optional[str]) -> Optional["NuGetVersion"]:
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.release_labels)

    @property
    def release(self) -> str:
        return ".".join(self.release_labels)

    @property
    def normalized(self) -> str:
        """
        Canonical string used for identity: always three numeric parts, the
        revision only when non-zero, release labels kept, metadata dropped.
        """
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.release_labels:
            text += f"-{self.release}"
        return text

    @property
    def full(self) -> str:
        if self.metadata:
            return f"{self.normalized}+{self.metadata}"
        return self.normalized

    def sort_key(self) -> tuple:
        # Stable releases rank above any prerelease of the same numbers.
        labels = tuple(_label_key(label) for label in self.release_labels)
        return (
            self.major,
            self.minor,
            self.patch,
            self.revision,
            0 if self.release_labels else 1,
            labels,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __lt__(self, other: "NuGetVersion") -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __str__(self) -> str:
        return self.normalized

    def __repr__(self) -> str:
        return f"NuGetVersion('{self.full}')"
