from __future__ import annotations

import csv
import datetime as dt
import io
import json
import logging
import mimetypes
from pathlib import PurePath
from typing import Callable, Dict, List, Optional, Tuple

from reportbot.core.config import settings
from reportbot.models.schemas import (
    BinaryMetadata,
    CsvMetadata,
    DocxMetadata,
    ExcelMetadata,
    GenericMetadata,
    JsonMetadata,
    ParsedResult,
    PdfMetadata,
    Table,
    TextMetadata,
)
from reportbot.services.format_detector import DocumentFormat, detect_format, file_extension
from reportbot.services.table_analyzer import build_table

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[... content truncated ...]"
PAGE_BREAK = "\n\n--- Page Break ---\n\n"

_IMAGE_HINTS = ("image", "chart", "figure")
_TABLE_HINTS = ("table", "column")

_METADATA_TYPES = {
    DocumentFormat.TEXT: TextMetadata,
    DocumentFormat.CSV: CsvMetadata,
    DocumentFormat.EXCEL: ExcelMetadata,
    DocumentFormat.PDF: PdfMetadata,
    DocumentFormat.DOCX: DocxMetadata,
    DocumentFormat.DOC: BinaryMetadata,
    DocumentFormat.JSON: JsonMetadata,
    DocumentFormat.GENERIC: GenericMetadata,
}


def truncate_text(text: str, limit: Optional[int]) -> str:
    if limit is None or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def split_csv_line(line: str) -> List[str]:
    # A double quote toggles quoted mode, so delimiters inside quotes stay in the cell.
    return next(csv.reader([line]), [])


def to_csv_text(rows: List[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def _cell_to_str(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    return str(value).strip()


def _word_count(text: str) -> int:
    return len(text.split())


class DocumentParser:
    """Turns uploaded bytes into a ``ParsedResult``.

    ``parse`` never raises. A failing format handler produces a result with
    ``error`` set and a user-facing ``text``/``summary`` instead, and every
    result's text is cut to ``max_text_chars``.
    """

    def __init__(self, max_text_chars: Optional[int] = None) -> None:
        self._max_text_chars = settings.parse_max_text_chars if max_text_chars is None else max_text_chars
        self._handlers: Dict[DocumentFormat, Callable[[bytes, str, str], ParsedResult]] = {
            DocumentFormat.TEXT: self._parse_text,
            DocumentFormat.CSV: self._parse_csv,
            DocumentFormat.EXCEL: self._parse_excel,
            DocumentFormat.PDF: self._parse_pdf,
            DocumentFormat.DOCX: self._parse_docx,
            DocumentFormat.DOC: self._parse_legacy_doc,
            DocumentFormat.JSON: self._parse_json,
            DocumentFormat.GENERIC: self._parse_generic,
        }

    def parse(self, content: bytes, file_name: str, content_type: str = "") -> ParsedResult:
        fmt = detect_format(file_name, content_type)
        mime_type = self._mime_type(file_name, content_type)
        try:
            result = self._handlers[fmt](content, file_name, mime_type)
        except Exception as exc:
            logger.warning("Failed to parse %s as %s: %s", file_name, fmt.value, exc)
            result = self._failed(fmt, content, file_name, mime_type, exc)

        result.text = truncate_text(result.text, self._max_text_chars)
        logger.info(
            "Parsed %s as %s: %d chars, %d table(s)%s",
            file_name,
            fmt.value,
            len(result.text),
            len(result.tables),
            f", error={result.error}" if result.error else "",
        )
        return result

    @staticmethod
    def _mime_type(file_name: str, content_type: str) -> str:
        declared = (content_type or "").strip().lower()
        if declared:
            return declared
        guessed, _ = mimetypes.guess_type(file_name)
        return guessed or ""

    @staticmethod
    def _failed(
        fmt: DocumentFormat,
        content: bytes,
        file_name: str,
        mime_type: str,
        exc: Exception,
    ) -> ParsedResult:
        metadata_type = _METADATA_TYPES[fmt]
        return ParsedResult(
            text=f"Error parsing file: {file_name}",
            metadata=metadata_type(file_name=file_name, size=len(content), mime_type=mime_type),
            summary=f"File {file_name} was uploaded but could not be parsed",
            error=str(exc) or type(exc).__name__,
        )

    @staticmethod
    def _parse_text(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        text = content.decode("utf-8", errors="replace")
        return ParsedResult(
            text=text,
            metadata=TextMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                char_count=len(text),
                word_count=_word_count(text),
            ),
            summary=f"Text file with {len(text)} characters",
        )

    @staticmethod
    def _parse_csv(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        raw = content.decode("utf-8-sig", errors="replace")
        lines = [line for line in raw.replace("\r\n", "\n").replace("\r", "\n").split("\n") if line.strip()]
        if not lines:
            return ParsedResult(
                text="",
                metadata=CsvMetadata(file_name=file_name, size=len(content), mime_type=mime_type),
                summary="Empty CSV file",
            )

        headers = [cell.strip() for cell in split_csv_line(lines[0])]
        rows = [split_csv_line(line) for line in lines[1:]]
        table = build_table(PurePath(file_name).stem, headers, rows)

        text = "\n".join(
            [
                f"CSV file: {file_name}",
                f"Headers: {', '.join(headers)}",
                f"Rows: {len(rows)}",
                "",
                *lines,
            ]
        )
        return ParsedResult(
            text=text,
            tables=[table],
            metadata=CsvMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                row_count=len(rows),
                column_count=len(headers),
                headers=headers,
            ),
            summary=f"CSV file with {len(rows)} rows and {len(headers)} columns",
        )

    @classmethod
    def _parse_excel(cls, content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        if file_extension(file_name) == ".xls":
            sheets = cls._read_xls_sheets(content)
        else:
            sheets = cls._read_xlsx_sheets(content)

        tables: List[Table] = []
        sections: List[str] = []
        for sheet_name, rows in sheets:
            sections.append(f"=== Sheet: {sheet_name} ===")
            if rows:
                sections.append(to_csv_text(rows))
            sections.append("")
            if len(rows) >= 2:
                tables.append(build_table(sheet_name, rows[0], rows[1:]))

        sheet_names = [name for name, _ in sheets]
        return ParsedResult(
            text="\n".join(sections).strip(),
            tables=tables,
            metadata=ExcelMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                sheets=sheet_names,
                sheet_count=len(sheet_names),
                row_count=sum(t.insights.row_count for t in tables),
            ),
            summary=f"Excel workbook with {len(sheet_names)} sheet(s) and {len(tables)} table(s)",
        )

    @staticmethod
    def _read_xlsx_sheets(content: bytes) -> List[Tuple[str, List[List[str]]]]:
        import openpyxl

        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        try:
            out = []
            for ws in wb.worksheets:
                rows = []
                for row in ws.iter_rows(values_only=True):
                    cells = [_cell_to_str(value) for value in row]
                    if any(cells):
                        rows.append(cells)
                out.append((ws.title, rows))
            return out
        finally:
            wb.close()

    @staticmethod
    def _read_xls_sheets(content: bytes) -> List[Tuple[str, List[List[str]]]]:
        import xlrd

        workbook = xlrd.open_workbook(file_contents=content)
        out = []
        for sheet in workbook.sheets():
            rows = []
            for row_idx in range(sheet.nrows):
                cells = [_cell_to_str(value) for value in sheet.row_values(row_idx)]
                if any(cells):
                    rows.append(cells)
            out.append((sheet.name, rows))
        return out

    @staticmethod
    def _parse_pdf(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        import fitz

        pages: List[str] = []
        with fitz.open(stream=content, filetype="pdf") as doc:
            if doc.needs_pass:
                raise ValueError("PDF is password protected")
            for page in doc:
                pages.append((page.get_text("text") or "").strip())

        text = PAGE_BREAK.join(pages).strip()
        lowered = text.lower()
        return ParsedResult(
            text=text,
            metadata=PdfMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                page_count=len(pages),
                has_images=any(hint in lowered for hint in _IMAGE_HINTS),
                has_tables=any(hint in lowered for hint in _TABLE_HINTS),
            ),
            summary=f"PDF document with {len(pages)} page(s) and {len(text)} characters",
        )

    @staticmethod
    def _parse_docx(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        from docx import Document

        doc = Document(io.BytesIO(content))
        chunks: List[str] = []
        paragraph_count = 0
        for para in doc.paragraphs:
            text = (para.text or "").strip()
            if text:
                chunks.append(text)
                paragraph_count += 1
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                row_text = " | ".join(value for value in cells if value)
                if row_text:
                    chunks.append(row_text)

        text = "\n".join(chunks)
        return ParsedResult(
            text=text,
            metadata=DocxMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                char_count=len(text),
                word_count=_word_count(text),
                paragraph_count=paragraph_count,
            ),
            summary=f"Word document with {_word_count(text)} words",
        )

    @staticmethod
    def _parse_legacy_doc(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        return ParsedResult(
            text=(
                f"Legacy Word document: {file_name} ({len(content)} bytes)\n"
                "[Content extraction is not supported for .doc files; convert to .docx]"
            ),
            metadata=BinaryMetadata(file_name=file_name, size=len(content), mime_type=mime_type),
            summary=f"Legacy Word document with {len(content)} bytes (metadata only)",
        )

    @staticmethod
    def _parse_json(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        raw = content.decode("utf-8-sig", errors="replace")
        try:
            data = json.loads(raw)
        except ValueError:
            return ParsedResult(
                text=raw,
                metadata=JsonMetadata(file_name=file_name, size=len(content), mime_type=mime_type),
                summary="Invalid JSON file",
                error="Invalid JSON",
            )

        if isinstance(data, list):
            keys = f"Array with {len(data)} items"
        elif isinstance(data, dict):
            keys = ", ".join(str(k) for k in data.keys())
        else:
            keys = type(data).__name__
        return ParsedResult(
            text=json.dumps(data, indent=2, ensure_ascii=False),
            structured=data,
            metadata=JsonMetadata(file_name=file_name, size=len(content), mime_type=mime_type, keys=keys),
            summary="JSON file with structured data",
        )

    @staticmethod
    def _parse_generic(content: bytes, file_name: str, mime_type: str) -> ParsedResult:
        text = content.decode("utf-8", errors="replace")
        if "\ufffd" in text or len(text.encode("utf-8")) != len(content):
            return ParsedResult(
                text=f"Binary file: {file_name} ({len(content)} bytes)",
                metadata=BinaryMetadata(file_name=file_name, size=len(content), mime_type=mime_type),
                summary=f"Binary file with {len(content)} bytes",
            )
        return ParsedResult(
            text=text,
            metadata=GenericMetadata(
                file_name=file_name,
                size=len(content),
                mime_type=mime_type,
                char_count=len(text),
            ),
            summary=f"Text-based file with {len(text)} characters",
        )
