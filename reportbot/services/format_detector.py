from __future__ import annotations

from enum import Enum
from pathlib import PurePath


class DocumentFormat(str, Enum):
    TEXT = "text"
    CSV = "csv"
    EXCEL = "excel"
    PDF = "pdf"
    DOCX = "docx"
    DOC = "doc"
    JSON = "json"
    GENERIC = "generic"


_EXTENSION_FORMATS = {
    ".xlsx": DocumentFormat.EXCEL,
    ".xls": DocumentFormat.EXCEL,
    ".pdf": DocumentFormat.PDF,
    ".docx": DocumentFormat.DOCX,
    ".doc": DocumentFormat.DOC,
    ".csv": DocumentFormat.CSV,
    ".txt": DocumentFormat.TEXT,
    ".md": DocumentFormat.TEXT,
    ".log": DocumentFormat.TEXT,
    ".json": DocumentFormat.JSON,
}


def file_extension(file_name: str) -> str:
    return PurePath((file_name or "").strip()).suffix.lower()


def format_from_content_type(content_type: str) -> DocumentFormat:
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    if not ct:
        return DocumentFormat.GENERIC
    if "spreadsheetml.sheet" in ct or "ms-excel" in ct:
        return DocumentFormat.EXCEL
    if ct == "application/pdf":
        return DocumentFormat.PDF
    if "wordprocessingml.document" in ct:
        return DocumentFormat.DOCX
    if "msword" in ct:
        return DocumentFormat.DOC
    if ct in {"text/csv", "application/csv"}:
        return DocumentFormat.CSV
    if ct == "application/json" or ct.endswith("+json"):
        return DocumentFormat.JSON
    if ct == "text/plain":
        return DocumentFormat.TEXT
    return DocumentFormat.GENERIC


def detect_format(file_name: str, content_type: str = "") -> DocumentFormat:
    """Pick the parser for an upload from its name and declared type only.

    A known extension wins over the declared content type; anything
    unrecognised resolves to ``GENERIC`` rather than an error.
    """
    by_extension = _EXTENSION_FORMATS.get(file_extension(file_name))
    if by_extension is not None:
        return by_extension
    return format_from_content_type(content_type)
