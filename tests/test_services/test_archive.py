"""
Tests for feedserver.services.archive
=======================================

What's Being Tested:
    - Metadata extraction from the .nuspec manifest
    - Readme and icon extraction into the spool
    - Malformed archives surface as InvalidPackageError
    - Uploads that cannot seek are spooled before reading
"""

import io
import zipfile

import pytest

from feedserver.domain.exceptions import InvalidPackageError
from feedserver.services.archive import PackageArchiveReader, read_package
from feedserver.services.spool import TemporarySpool


class NonSeekableStream(io.RawIOBase):
    """A forward-only stream, like a socket-backed request body."""

    def __init__(self, content: bytes):
        self._inner = io.BytesIO(content)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, buffer) -> int:
        data = self._inner.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)


def _zip(entries) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class TestPackageMetadata:
    def test_reads_core_fields(self, nupkg_factory) -> None:
        content = nupkg_factory(
            "My.Library",
            "1.2.3.0-Beta.1+build",
            tags="json, parsing  fast",
            authors="Alice, Bob",
            dependencies={"net8.0": [("Other.Lib", "[1.0.0, )")], "netstandard2.0": []},
        )
        with PackageArchiveReader(io.BytesIO(content)) as reader:
            package = reader.get_package_metadata()

        assert package.id == "My.Library"
        assert package.version == "1.2.3-Beta.1"
        assert package.original_version == "1.2.3.0-Beta.1+build"
        assert package.is_prerelease
        assert package.authors == ["Alice", "Bob"]
        assert package.tags == ["json", "parsing", "fast"]
        assert package.description == "A package used in tests"
        assert package.published is None

        dep = package.dependencies[0]
        assert (dep.id, dep.version_range, dep.target_framework) == ("Other.Lib", "[1.0.0, )", "net8.0")
        assert package.dependencies[1].id is None
        assert package.dependencies[1].target_framework == "netstandard2.0"
        assert package.target_frameworks == ["net8.0", "netstandard2.0"]

    def test_target_frameworks_from_lib_folders(self, nupkg_factory) -> None:
        content = nupkg_factory(extra_entries={"lib/net472/Legacy.dll": b"MZ"})
        with PackageArchiveReader(io.BytesIO(content)) as reader:
            package = reader.get_package_metadata()
        assert package.target_frameworks == ["net8.0", "net472"]

    @pytest.mark.parametrize("package_id", ["bad id", "-leading", "a" * 101])
    def test_rejects_invalid_ids(self, nupkg_factory, package_id: str) -> None:
        content = nupkg_factory(package_id, "1.0.0")
        with PackageArchiveReader(io.BytesIO(content)) as reader:
            with pytest.raises(InvalidPackageError):
                reader.get_package_metadata()

    def test_rejects_invalid_version(self, nupkg_factory) -> None:
        content = nupkg_factory("Test.Package", "not.a.version")
        with PackageArchiveReader(io.BytesIO(content)) as reader:
            with pytest.raises(InvalidPackageError):
                reader.get_package_metadata()


class TestMalformedArchives:
    def test_not_a_zip(self) -> None:
        with pytest.raises(InvalidPackageError):
            PackageArchiveReader(io.BytesIO(b"definitely not a zip"))

    def test_missing_nuspec(self) -> None:
        with pytest.raises(InvalidPackageError, match="nuspec"):
            PackageArchiveReader(io.BytesIO(_zip({"lib/net8.0/A.dll": b"MZ"})))

    def test_nested_nuspec_does_not_count(self) -> None:
        with pytest.raises(InvalidPackageError):
            PackageArchiveReader(io.BytesIO(_zip({"content/A.nuspec": b"<package/>"})))

    def test_multiple_nuspecs(self) -> None:
        with pytest.raises(InvalidPackageError, match="multiple"):
            PackageArchiveReader(io.BytesIO(_zip({"a.nuspec": b"<package/>", "b.nuspec": b"<package/>"})))

    def test_invalid_xml(self) -> None:
        with pytest.raises(InvalidPackageError):
            PackageArchiveReader(io.BytesIO(_zip({"a.nuspec": b"<package><metadata>"})))

    def test_missing_metadata_element(self) -> None:
        with pytest.raises(InvalidPackageError, match="metadata"):
            PackageArchiveReader(io.BytesIO(_zip({"a.nuspec": b"<package></package>"})))


class TestReadPackage:
    async def test_extracts_resources(self, nupkg_factory) -> None:
        content = nupkg_factory(readme_content=b"# Hello", icon_content=b"\x89PNG")
        async with TemporarySpool() as spool:
            package, bundle = await read_package(io.BytesIO(content), spool)

            assert package.has_readme
            assert package.has_embedded_icon
            assert bundle.readme_stream.read() == b"# Hello"
            assert bundle.icon_stream.read() == b"\x89PNG"
            assert b"<id>Test.Package</id>" in bundle.nuspec_stream.read()
            assert bundle.package_stream.read() == content

    async def test_no_optional_resources(self, nupkg_factory) -> None:
        async with TemporarySpool() as spool:
            package, bundle = await read_package(io.BytesIO(nupkg_factory()), spool)
            assert not package.has_readme
            assert bundle.readme_stream is None
            assert bundle.icon_stream is None
            assert spool.stream_count == 1

    async def test_readme_path_is_resolved_case_insensitively(self, nupkg_factory) -> None:
        nuspec = (
            "<package><metadata>"
            "<id>Test.Package</id><version>1.0.0</version>"
            "<authors>a</authors><description>d</description>"
            "<readme>docs\\ReadMe.MD</readme>"
            "</metadata></package>"
        )
        content = nupkg_factory(nuspec=nuspec, extra_entries={"docs/readme.md": b"docs"})
        async with TemporarySpool() as spool:
            _, bundle = await read_package(io.BytesIO(content), spool)
            assert bundle.readme_stream.read() == b"docs"

    async def test_declared_readme_missing_from_archive(self, nupkg_factory) -> None:
        nuspec = (
            "<package><metadata>"
            "<id>Test.Package</id><version>1.0.0</version>"
            "<authors>a</authors><description>d</description>"
            "<readme>README.md</readme>"
            "</metadata></package>"
        )
        content = nupkg_factory(nuspec=nuspec)
        async with TemporarySpool() as spool:
            with pytest.raises(InvalidPackageError, match="readme"):
                await read_package(io.BytesIO(content), spool)

    async def test_non_seekable_upload_is_spooled(self, nupkg_factory) -> None:
        content = nupkg_factory(readme_content=b"# Hello")
        async with TemporarySpool() as spool:
            package, bundle = await read_package(NonSeekableStream(content), spool)
            assert package.id == "Test.Package"
            assert bundle.package_stream.seekable()
            assert bundle.package_stream.read() == content

    async def test_truncated_archive(self, nupkg_factory) -> None:
        content = nupkg_factory()
        async with TemporarySpool() as spool:
            with pytest.raises(InvalidPackageError):
                await read_package(io.BytesIO(content[: len(content) // 2]), spool)
