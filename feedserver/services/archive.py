"""
Read uploaded .nupkg archives.

A .nupkg is a zip file with a single ``<id>.nuspec`` XML manifest at its
root. The reader turns the manifest into a Package and exposes the manifest,
readme and icon entries as streams. Any problem with the archive surfaces as
InvalidPackageError.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Tuple

from feedserver.domain.exceptions import InvalidPackageError
from feedserver.domain.feed_utils import split_authors, split_tags
from feedserver.domain.models import Package, PackageDependency, PackageType
from feedserver.domain.versioning import NuGetVersion
from feedserver.services.spool import TemporarySpool

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 100
_ID_RE = re.compile(r"^\w+(?:[_.-]\w+)*$")


@dataclass
class ArtifactBundle:
    """
    The uploaded archive plus the resources extracted from it.

    Every stream except ``package_stream`` is owned by the spool it was
    created in.
    """

    package_stream: BinaryIO
    nuspec_stream: BinaryIO
    readme_stream: Optional[BinaryIO] = None
    icon_stream: Optional[BinaryIO] = None


def _local_name(tag: str) -> str:
    # Strip the XML namespace: "{http://...}metadata" -> "metadata"
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    matches = _children(element, name)
    return matches[0] if matches else None


def _normalize_entry_path(path: str) -> str:
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


class PackageArchiveReader:
    """
    Reads metadata and entries from a .nupkg.

    The archive stream is left open when the reader is closed.
    """

    def __init__(self, stream: BinaryIO):
        try:
            self._zip = zipfile.ZipFile(stream)
        except (zipfile.BadZipFile, ValueError) as e:
            raise InvalidPackageError(f"Package is not a valid zip archive: {e}") from e

        self._entries: Dict[str, str] = {}
        for name in self._zip.namelist():
            self._entries.setdefault(name.lower(), name)

        try:
            self._nuspec_name = self._find_nuspec()
            self._metadata = self._read_metadata_element()
        except BaseException:
            self._zip.close()
            raise

    def __enter__(self) -> "PackageArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    @property
    def nuspec_name(self) -> str:
        return self._nuspec_name

    def _find_nuspec(self) -> str:
        candidates = [
            name
            for name in self._zip.namelist()
            if "/" not in name and name.lower().endswith(".nuspec")
        ]
        if not candidates:
            raise InvalidPackageError("Package does not contain a .nuspec manifest")
        if len(candidates) > 1:
            raise InvalidPackageError(f"Package contains multiple .nuspec manifests: {candidates}")
        return candidates[0]

    def _read_metadata_element(self) -> ET.Element:
        try:
            root = ET.fromstring(self._zip.read(self._nuspec_name))
        except ET.ParseError as e:
            raise InvalidPackageError(f"The .nuspec manifest is not valid XML: {e}") from e

        if _local_name(root.tag) != "package":
            raise InvalidPackageError("The .nuspec root element must be <package>")

        metadata = _child(root, "metadata")
        if metadata is None:
            raise InvalidPackageError("The .nuspec manifest has no <metadata> element")
        return metadata

    def _text(self, name: str) -> Optional[str]:
        element = _child(self._metadata, name)
        if element is None or element.text is None:
            return None
        return element.text.strip() or None

    def _resolve_entry(self, declared: Optional[str]) -> Optional[str]:
        if not declared:
            return None
        path = _normalize_entry_path(declared)
        if path in self._zip.NameToInfo:
            return path
        return self._entries.get(path.lower())

    def _read_dependencies(self) -> List[PackageDependency]:
        element = _child(self._metadata, "dependencies")
        if element is None:
            return []

        dependencies: List[PackageDependency] = []
        groups = _children(element, "group")
        if not groups:
            groups_with_framework = [(None, element)]
        else:
            groups_with_framework = [(g.get("targetFramework"), g) for g in groups]

        for framework, group in groups_with_framework:
            entries = _children(group, "dependency")
            if not entries and framework:
                # Empty group: still records the supported framework.
                dependencies.append(PackageDependency(target_framework=framework))
            for dep in entries:
                dep_id = dep.get("id")
                if not dep_id:
                    raise InvalidPackageError("A dependency in the .nuspec manifest has no id")
                dependencies.append(
                    PackageDependency(
                        id=dep_id,
                        version_range=dep.get("version"),
                        target_framework=framework,
                    )
                )
        return dependencies

    def _read_package_types(self) -> List[PackageType]:
        element = _child(self._metadata, "packageTypes")
        if element is None:
            return []
        types: List[PackageType] = []
        for entry in _children(element, "packageType"):
            name = entry.get("name")
            if name:
                types.append(PackageType(name=name, version=entry.get("version")))
        return types

    def _read_target_frameworks(self, dependencies: List[PackageDependency]) -> List[str]:
        frameworks: List[str] = []
        for dep in dependencies:
            if dep.target_framework and dep.target_framework not in frameworks:
                frameworks.append(dep.target_framework)
        for name in self._zip.namelist():
            parts = name.split("/")
            # lib/<tfm>/<file>
            if len(parts) >= 3 and parts[0].lower() == "lib" and parts[1]:
                if parts[1] not in frameworks:
                    frameworks.append(parts[1])
        return frameworks

    def get_package_metadata(self) -> Package:
        package_id = self._text("id")
        if not package_id:
            raise InvalidPackageError("The .nuspec manifest has no package id")
        if len(package_id) > MAX_ID_LENGTH or not _ID_RE.match(package_id):
            raise InvalidPackageError(f"'{package_id}' is not a valid package id")

        raw_version = self._text("version")
        if not raw_version:
            raise InvalidPackageError(f"Package {package_id} has no version")
        try:
            version = NuGetVersion.parse(raw_version)
        except ValueError as e:
            raise InvalidPackageError(str(e)) from e

        repository = _child(self._metadata, "repository")
        dependencies = self._read_dependencies()

        return Package(
            id=package_id,
            version=version.normalized,
            original_version=version.original,
            authors=split_authors(self._text("authors")),
            description=self._text("description"),
            title=self._text("title"),
            summary=self._text("summary"),
            tags=split_tags(self._text("tags")),
            language=self._text("language"),
            release_notes=self._text("releaseNotes"),
            project_url=self._text("projectUrl"),
            license_url=self._text("licenseUrl"),
            icon_url=self._text("iconUrl"),
            repository_url=repository.get("url") if repository is not None else None,
            repository_type=repository.get("type") if repository is not None else None,
            require_license_acceptance=(self._text("requireLicenseAcceptance") or "").lower() == "true",
            min_client_version=self._metadata.get("minClientVersion"),
            has_readme=self._text("readme") is not None,
            has_embedded_icon=self._text("icon") is not None,
            dependencies=dependencies,
            package_types=self._read_package_types(),
            target_frameworks=self._read_target_frameworks(dependencies),
        )

    def open_nuspec(self) -> BinaryIO:
        return self._zip.open(self._nuspec_name)

    def open_readme(self) -> BinaryIO:
        return self._open_declared("readme")

    def open_icon(self) -> BinaryIO:
        return self._open_declared("icon")

    def _open_declared(self, element_name: str) -> BinaryIO:
        declared = self._text(element_name)
        entry = self._resolve_entry(declared)
        if entry is None:
            raise InvalidPackageError(f"The {element_name} file '{declared}' is missing from the package")
        return self._zip.open(entry)


async def read_package(stream: BinaryIO, spool: TemporarySpool) -> Tuple[Package, ArtifactBundle]:
    """
    Extract the package metadata and its resources from an uploaded archive.

    The manifest, readme and icon are copied into ``spool`` because zip
    entries cannot be re-read independently once the reader is closed. The
    upload itself is spooled too when it cannot seek.
    """
    if not stream.seekable():
        stream = await spool.spool(stream, "package.nupkg")
    stream.seek(0)

    try:
        with PackageArchiveReader(stream) as reader:
            package = reader.get_package_metadata()

            with reader.open_nuspec() as entry:
                nuspec_stream = await spool.spool(entry, "nuspec")

            readme_stream = None
            if package.has_readme:
                with reader.open_readme() as entry:
                    readme_stream = await spool.spool(entry, "readme")

            icon_stream = None
            if package.has_embedded_icon:
                with reader.open_icon() as entry:
                    icon_stream = await spool.spool(entry, "icon")
    except InvalidPackageError:
        raise
    except Exception as e:
        # Corrupt, encrypted or unsupported entries only show up while they are being read.
        raise InvalidPackageError(f"Package archive could not be read: {e}") from e

    stream.seek(0)
    return package, ArtifactBundle(
        package_stream=stream,
        nuspec_stream=nuspec_stream,
        readme_stream=readme_stream,
        icon_stream=icon_stream,
    )
