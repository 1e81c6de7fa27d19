from __future__ import annotations
import json
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from reportbot.core.config import settings
from reportbot.core.errors import InputValidationError, ReportBotError
from reportbot.dependencies import Container
from reportbot.models.schemas import (
    CompanyContext,
    FileContentEntry,
    GenerateReportRequest,
    GenerateReportResponse,
    HealthResponse,
    ParseFileResponse,
    RawUpload,
    ReportRecord,
    ReportUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["reports"])


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        container = Container()
        request.app.state.container = container
    return container


def _error_response(exc: ReportBotError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _parse_json_field(raw: Optional[str], field: str, default: Any) -> Any:
    if raw is None or not raw.strip():
        return default
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InputValidationError(f"Field '{field}' must be valid JSON", details=str(exc)) from exc


def _as_bool(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in {"true", "1", "yes", "on"}


async def _build_generate_request(
    container: Container,
    query: Optional[str],
    company: Optional[str],
    include_graphs: Optional[str],
    chat_history: Optional[str],
    files_content: Optional[str],
    user_id: Optional[str],
    extended: Optional[str],
    files: List[UploadFile],
) -> GenerateReportRequest:
    if not (query or "").strip() or not (company or "").strip():
        raise InputValidationError("Missing query or company")

    history = _parse_json_field(chat_history, "chatHistory", [])
    entries = _parse_json_field(files_content, "filesContent", [])
    if not isinstance(history, list) or not isinstance(entries, list):
        raise InputValidationError("chatHistory and filesContent must be JSON arrays")

    raw_files: List[RawUpload] = []
    for upload in files:
        content = await upload.read()
        name = upload.filename or "upload"
        container.documents.validate_upload(name, content)
        raw_files.append(RawUpload(file_name=name, content_type=upload.content_type or "", content=content))

    try:
        return GenerateReportRequest(
            query=query,
            company=CompanyContext.model_validate(_parse_json_field(company, "company", {})),
            include_graphs=_as_bool(include_graphs),
            chat_history=[h for h in history if isinstance(h, dict)],
            files_content=[FileContentEntry.model_validate(e) for e in entries],
            raw_files=raw_files,
            user_id=user_id,
            extended=_as_bool(extended),
        )
    except ValidationError as exc:
        raise InputValidationError("Invalid report request", details=str(exc)) from exc


@router.post("/parse-file", response_model=ParseFileResponse)
async def parse_file(
    file: Optional[UploadFile] = File(default=None),
    container: Container = Depends(get_container),
):
    if file is None:
        return _error_response(InputValidationError("No file provided"))
    try:
        content = await file.read()
        return await container.documents.parse_upload(
            file_name=file.filename or "",
            content_type=file.content_type or "",
            content=content,
        )
    except ReportBotError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.exception("parse-file failed for %s", file.filename)
        return JSONResponse(status_code=500, content={"error": "Failed to parse file", "details": str(exc)})


@router.post("/generate-report", response_model=GenerateReportResponse)
async def generate_report(
    query: Optional[str] = Form(default=None),
    company: Optional[str] = Form(default=None),
    include_graphs: Optional[str] = Form(default="false", alias="includeGraphs"),
    chat_history: Optional[str] = Form(default=None, alias="chatHistory"),
    files_content: Optional[str] = Form(default=None, alias="filesContent"),
    user_id: Optional[str] = Form(default=None, alias="userId"),
    extended: Optional[str] = Form(default="false"),
    files: Optional[List[UploadFile]] = File(default=None),
    container: Container = Depends(get_container),
):
    try:
        payload = await _build_generate_request(
            container,
            query=query,
            company=company,
            include_graphs=include_graphs,
            chat_history=chat_history,
            files_content=files_content,
            user_id=user_id,
            extended=extended,
            files=files or [],
        )
        return await container.reports.generate(payload)
    except ReportBotError as exc:
        logger.warning("generate-report failed: %s (%s)", exc.message, exc.code)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("generate-report failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to generate report", "details": str(exc), "code": "GENERATION_ERROR"},
        )


@router.get("/reports/{report_id}", response_model=ReportRecord)
async def get_report(report_id: str, container: Container = Depends(get_container)):
    try:
        return container.reports.get_report(report_id)
    except ReportBotError as exc:
        return _error_response(exc)


@router.put("/reports/{report_id}", response_model=ReportRecord)
async def update_report(
    report_id: str,
    payload: ReportUpdateRequest,
    container: Container = Depends(get_container),
):
    try:
        return container.reports.update_report(report_id, payload.content)
    except ReportBotError as exc:
        return _error_response(exc)


@router.get("/health", response_model=HealthResponse)
async def health(container: Container = Depends(get_container)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=settings.app_name,
        llm_provider=container.llm_gateway.provider,
        report_store=type(container.store).__name__,
    )
