from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from reportbot.core.config import settings
from reportbot.models.schemas import FileContentEntry, ParsedResult, RawUpload
from reportbot.services.document_parser import TRUNCATION_MARKER, DocumentParser, truncate_text

logger = logging.getLogger(__name__)

FILE_RULE = "─" * 60
SECTION_RULE = "=" * 80

NormalizableDocument = Union[FileContentEntry, ParsedResult]


def _omitted_note(count: int) -> str:
    return f"[{count} more file(s) omitted: context size limit reached]"


def entry_from_parsed(name: str, result: ParsedResult) -> FileContentEntry:
    meta = result.metadata_dict()
    return FileContentEntry(
        name=name,
        type=meta.get("mimeType") or None,
        content=result.text,
        tables=[t.model_dump(by_alias=True) for t in result.tables],
        metadata=meta,
        summary=result.summary or None,
        sheets=meta.get("sheets"),
        page_count=meta.get("pageCount"),
    )


def describe_metadata(entry: FileContentEntry) -> List[str]:
    meta: Dict[str, Any] = dict(entry.metadata or {})
    lines: List[str] = []
    if meta.get("size"):
        lines.append(f"• Size: {meta['size']} bytes")
    file_type = meta.get("type") or meta.get("mimeType") or entry.type
    if file_type:
        lines.append(f"• Type: {file_type}")
    if meta.get("rowCount"):
        lines.append(f"• Rows: {meta['rowCount']}")
    if meta.get("columnCount"):
        lines.append(f"• Columns: {meta['columnCount']}")
    sheets = entry.sheets or meta.get("sheets")
    if sheets:
        lines.append(f"• Sheets: {', '.join(str(s) for s in sheets)}")
    pages = entry.page_count or meta.get("pageCount")
    if pages:
        lines.append(f"• Pages: {pages}")
    if entry.summary:
        lines.append(f"• Summary: {entry.summary}")
    return lines


class ContentNormalizer:
    """Merges per-file parse output into one delimited, size-bounded context block."""

    def __init__(
        self,
        parser: Optional[DocumentParser] = None,
        max_file_chars: Optional[int] = None,
        max_total_chars: Optional[int] = None,
    ) -> None:
        self._parser = parser or DocumentParser()
        self._max_file_chars = settings.context_max_file_chars if max_file_chars is None else max_file_chars
        self._max_total_chars = settings.context_max_total_chars if max_total_chars is None else max_total_chars

    def normalize(self, documents: Sequence[NormalizableDocument]) -> str:
        if not documents:
            return ""

        entries = [self._as_entry(doc, index) for index, doc in enumerate(documents, start=1)]
        sections: List[str] = ["📄 UPLOADED FILES DATA:", ""]
        used = sum(len(s) + 1 for s in sections)

        for index, entry in enumerate(entries, start=1):
            head = [f"📋 FILE {index}: {entry.name}", FILE_RULE]
            info = describe_metadata(entry)
            if info:
                head.extend(["📊 File Information:", *info, ""])
            head.append("📄 Content:")
            tail = ["", SECTION_RULE, ""]

            overhead = sum(len(s) + 1 for s in head + tail)
            # Keep room for the omission note in case the next file does not fit.
            remaining = len(entries) - index
            reserve = len(_omitted_note(remaining)) + 1 if remaining else 0
            budget = self._max_total_chars - used - overhead - reserve
            if budget <= len(TRUNCATION_MARKER):
                omitted = remaining + 1
                sections.append(_omitted_note(omitted))
                logger.warning("Context limit reached; omitted %d file(s)", omitted)
                break

            body = truncate_text(entry.content or "", self._max_file_chars)
            if len(body) > budget:
                body = truncate_text(body, budget - len(TRUNCATION_MARKER))
            if not body:
                body = "[No content available]"

            block = head + [body] + tail
            sections.extend(block)
            used += sum(len(s) + 1 for s in block)

        return "\n".join(sections)

    def _as_entry(self, doc: NormalizableDocument, index: int) -> FileContentEntry:
        if isinstance(doc, ParsedResult):
            return entry_from_parsed(doc.metadata.file_name or f"file-{index}", doc)
        return doc

    async def parse_many(self, files: Sequence[RawUpload]) -> List[ParsedResult]:
        """Parse raw uploads concurrently; results keep the input order."""
        tasks = [
            asyncio.to_thread(self._parser.parse, f.content, f.file_name, f.content_type)
            for f in files
        ]
        return list(await asyncio.gather(*tasks))

    async def normalize_uploads(self, files: Sequence[RawUpload]) -> str:
        return self.normalize(await self.parse_many(files))
