from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from reportbot.core.config import settings
from reportbot.core.errors import InputValidationError, UploadTooLargeError
from reportbot.models.schemas import ParseFileResponse, UploadedFileDescriptor
from reportbot.services.document_parser import DocumentParser

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, parser: Optional[DocumentParser] = None, max_upload_bytes: Optional[int] = None) -> None:
        self._parser = parser or DocumentParser()
        self._max_upload_bytes = settings.max_upload_bytes if max_upload_bytes is None else max_upload_bytes

    def validate_upload(self, file_name: str, content: Optional[bytes]) -> None:
        if not (file_name or "").strip() or content is None:
            raise InputValidationError("No file provided")
        if len(content) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes / 1024 / 1024
            raise UploadTooLargeError(f"File too large. Maximum size is {limit_mb:g}MB")

    async def parse_upload(self, file_name: str, content_type: str, content: Optional[bytes]) -> ParseFileResponse:
        self.validate_upload(file_name, content)
        descriptor = UploadedFileDescriptor(
            id=uuid.uuid4().hex[:9],
            name=file_name,
            size=len(content),
            type=content_type or "",
        )
        logger.info("Parsing upload %s (%d bytes, %s)", file_name, len(content), content_type or "unknown type")

        result = await asyncio.to_thread(self._parser.parse, content, file_name, content_type or "")
        if result.error:
            descriptor.mark_failed(result.error)
        else:
            descriptor.mark_ready(result)

        return ParseFileResponse(
            success=True,
            content=result.text,
            text=result.text,
            structured=result.structured,
            tables=result.tables,
            metadata=result.metadata_dict(),
            summary=result.summary,
            error=result.error,
            file=descriptor,
        )
