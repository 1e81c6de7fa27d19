from __future__ import annotations
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- parsed documents -------------------------------------------------------


class TableInsights(CamelModel):
    row_count: int
    column_count: int
    numeric_columns: List[str] = Field(default_factory=list)
    categorical_columns: List[str] = Field(default_factory=list)
    preview: List[List[str]] = Field(default_factory=list)


class Table(CamelModel):
    name: str
    headers: List[str]
    rows: List[List[str]] = Field(default_factory=list)
    insights: TableInsights


class _MetadataBase(CamelModel):
    file_name: str
    size: int = 0
    mime_type: str = ""


class TextMetadata(_MetadataBase):
    format: Literal["text"] = "text"
    char_count: int = 0
    word_count: int = 0


class CsvMetadata(_MetadataBase):
    format: Literal["csv"] = "csv"
    row_count: int = 0
    column_count: int = 0
    headers: List[str] = Field(default_factory=list)


class ExcelMetadata(_MetadataBase):
    format: Literal["excel"] = "excel"
    sheets: List[str] = Field(default_factory=list)
    sheet_count: int = 0
    row_count: int = 0


class PdfMetadata(_MetadataBase):
    format: Literal["pdf"] = "pdf"
    page_count: int = 0
    has_images: bool = False
    has_tables: bool = False


class DocxMetadata(_MetadataBase):
    format: Literal["docx"] = "docx"
    char_count: int = 0
    word_count: int = 0
    paragraph_count: int = 0


class JsonMetadata(_MetadataBase):
    format: Literal["json"] = "json"
    keys: str = ""


class BinaryMetadata(_MetadataBase):
    format: Literal["binary"] = "binary"


class GenericMetadata(_MetadataBase):
    format: Literal["generic"] = "generic"
    char_count: int = 0


FileMetadata = Annotated[
    Union[
        TextMetadata,
        CsvMetadata,
        ExcelMetadata,
        PdfMetadata,
        DocxMetadata,
        JsonMetadata,
        BinaryMetadata,
        GenericMetadata,
    ],
    Field(discriminator="format"),
]


class ParsedResult(CamelModel):
    text: str = ""
    tables: List[Table] = Field(default_factory=list)
    metadata: FileMetadata
    summary: str = ""
    error: Optional[str] = None
    structured: Optional[Any] = None

    def metadata_dict(self) -> Dict[str, Any]:
        return self.metadata.model_dump(by_alias=True)


class UploadedFileDescriptor(CamelModel):
    """Client-visible upload record: ``uploading`` then ``ready`` or ``error``."""

    id: str
    name: str
    size: int = 0
    type: str = ""
    status: Literal["uploading", "ready", "error"] = "uploading"
    content: Optional[str] = None
    parsed_metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def mark_ready(self, result: ParsedResult) -> "UploadedFileDescriptor":
        self._require_uploading()
        meta = result.metadata_dict()
        self.status = "ready"
        self.content = result.text
        self.parsed_metadata = {
            "tables": [t.model_dump(by_alias=True) for t in result.tables],
            "metadata": meta,
            "summary": result.summary,
            "structured": result.structured,
            "sheets": meta.get("sheets"),
            "pageCount": meta.get("pageCount"),
        }
        self.error = result.error
        return self

    def mark_failed(self, message: str) -> "UploadedFileDescriptor":
        self._require_uploading()
        self.status = "error"
        self.error = message
        return self

    def _require_uploading(self) -> None:
        if self.status != "uploading":
            raise ValueError(f"file {self.id} already settled as {self.status}")


class ParseFileResponse(CamelModel):
    success: bool = True
    content: str = ""
    text: str = ""
    structured: Optional[Any] = None
    tables: List[Table] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    summary: str = ""
    error: Optional[str] = None
    file: Optional[UploadedFileDescriptor] = None


# --- charts -----------------------------------------------------------------

ChartType = Literal["bar", "line", "pie", "doughnut", "radar", "polarArea", "scatter"]
CHART_TYPES = ("bar", "line", "pie", "doughnut", "radar", "polarArea", "scatter")


class ChartPoint(BaseModel):
    """Chart.js point data, as used by scatter charts."""

    x: float
    y: float


class ChartDataset(CamelModel):
    label: str = "Data"
    data: List[Union[float, ChartPoint, None]] = Field(default_factory=list)
    background_color: Union[str, List[str]]
    border_color: Union[str, List[str]]
    border_width: float = 1


class ChartData(CamelModel):
    labels: List[Union[str, int, float]] = Field(default_factory=list)
    datasets: List[ChartDataset] = Field(default_factory=list)


class ChartSpec(CamelModel):
    id: str
    type: ChartType = "bar"
    title: str
    data: ChartData
    options: Dict[str, Any] = Field(default_factory=dict)


# --- report generation ------------------------------------------------------


class CompanyContext(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    id: str
    name: str = Field(min_length=1)
    industry: Optional[str] = None
    context: Optional[str] = None


class FileContentEntry(CamelModel):
    id: Optional[str] = None
    name: str
    type: Optional[str] = None
    content: str = ""
    tables: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    summary: Optional[str] = None
    sheets: Optional[List[str]] = None
    page_count: Optional[int] = None


class RawUpload(BaseModel):
    file_name: str
    content_type: str = ""
    content: bytes = b""


class GenerateReportRequest(BaseModel):
    query: str = Field(min_length=1)
    company: CompanyContext
    include_graphs: bool = False
    chat_history: List[Dict[str, Any]] = Field(default_factory=list)
    files_content: List[FileContentEntry] = Field(default_factory=list)
    raw_files: List[RawUpload] = Field(default_factory=list)
    user_id: Optional[str] = None
    extended: bool = False


class ReportGenerationMetadata(CamelModel):
    model: str
    tokens_used: int = 0
    input_tokens: int = 0
    processing_time_ms: int = 0
    files_processed: int = 0
    charts_extracted: int = 0


class GenerateReportResponse(CamelModel):
    success: bool = True
    content: str
    charts: List[ChartSpec] = Field(default_factory=list)
    report_id: str
    metadata: ReportGenerationMetadata


class ReportRecord(CamelModel):
    id: str
    content: str
    query: str = ""
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    charts: Optional[str] = None
    status: str = "PUBLISHED"
    created_at: str
    updated_at: str


class ReportUpdateRequest(BaseModel):
    content: str


class HealthResponse(BaseModel):
    status: str
    service: str
    llm_provider: str
    report_store: str


# --- language model ---------------------------------------------------------


class LLMMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class LLMCompletionRequest(BaseModel):
    system: str = ""
    messages: List[LLMMessage]
    provider: Optional[str] = None  # anthropic | openai | openai_compatible | bedrock | ollama
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, ge=1, le=64000)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    extended: bool = False


class LLMCompletion(BaseModel):
    provider: str
    model: str
    output_text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Dict = Field(default_factory=dict)
