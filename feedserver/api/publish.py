"""
Package publish endpoint compatible with `dotnet nuget push`.
"""

from __future__ import annotations

import logging
import tempfile
from typing import BinaryIO, Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from feedserver.core.dependencies import get_indexing_service, get_options_provider
from feedserver.data.options import FeedOptionsProvider
from feedserver.domain.exceptions import PackageIngestionError
from feedserver.domain.models import FeedOptions, PackageIndexingResult
from feedserver.services.authentication import API_KEY_HEADER_NAME, verify_api_key
from feedserver.services.indexing import PackageIndexingService

logger = logging.getLogger(__name__)
router = APIRouter()

# Raw request bodies stay in memory up to this size before spilling to disk.
BODY_MEMORY_LIMIT = 1024 * 1024

# Room for multipart boundaries and part headers around the package file.
MULTIPART_OVERHEAD = 64 * 1024


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _declared_length(request: Request) -> Optional[int]:
    value = request.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


def _too_large(options: FeedOptions) -> JSONResponse:
    return _error(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        f"Package exceeds the maximum size of {options.max_package_size_bytes} bytes",
    )


async def _ingest(
    indexer: PackageIndexingService,
    stream: BinaryIO,
    size: Optional[int],
    options: FeedOptions,
) -> Response:
    if size is not None and size > options.max_package_size_bytes:
        return _too_large(options)

    try:
        result = await indexer.index(stream)
    except PackageIngestionError as e:
        logger.error(f"Push of {e.package_id} {e.package_version} failed during {e.stage.value}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": e.message, "stage": e.stage.value},
        )

    if result == PackageIndexingResult.INVALID_PACKAGE:
        return _error(status.HTTP_400_BAD_REQUEST, "The uploaded package is invalid")
    if result == PackageIndexingResult.PACKAGE_ALREADY_EXISTS:
        return _error(status.HTTP_409_CONFLICT, "The package already exists")
    return Response(status_code=status.HTTP_201_CREATED)


@router.put("/api/v2/package")
async def push_package(
    request: Request,
    api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER_NAME),
    indexer: PackageIndexingService = Depends(get_indexing_service),
    options_provider: FeedOptionsProvider = Depends(get_options_provider),
) -> Response:
    """
    Push a package.

    The package is read from the first file of a multipart form, which is
    what the NuGet client sends, or from the raw request body otherwise.

    Returns 201 when the package was added, 400 when it is not a valid
    package, 401 for a missing or wrong API key, 409 when the version
    already exists, 413 when it is too large and 500 on server errors.
    """
    options = options_provider.snapshot()
    if not verify_api_key(options.authentication, api_key):
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API key")

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        declared = _declared_length(request)
        if declared is not None and declared > options.max_package_size_bytes + MULTIPART_OVERHEAD:
            return _too_large(options)

        form = await request.form()
        try:
            upload = next((v for v in form.values() if isinstance(v, UploadFile)), None)
            if upload is None:
                return _error(status.HTTP_400_BAD_REQUEST, "No package file was uploaded")
            return await _ingest(indexer, upload.file, upload.size, options)
        finally:
            await form.close()

    with tempfile.SpooledTemporaryFile(max_size=BODY_MEMORY_LIMIT) as body:
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > options.max_package_size_bytes:
                return _too_large(options)
            body.write(chunk)

        if size == 0:
            return _error(status.HTTP_400_BAD_REQUEST, "No package file was uploaded")
        return await _ingest(indexer, body, size, options)
