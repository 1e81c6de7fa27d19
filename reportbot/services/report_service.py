from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from pydantic import TypeAdapter

from reportbot.core.errors import InputValidationError, ReportNotFoundError
from reportbot.models.schemas import (
    ChartSpec,
    GenerateReportRequest,
    GenerateReportResponse,
    LLMCompletionRequest,
    ReportGenerationMetadata,
    ReportRecord,
)
from reportbot.services.chart_extractor import extract_charts
from reportbot.services.content_normalizer import ContentNormalizer
from reportbot.services.llm_gateway import LLMGateway
from reportbot.services.prompt_builder import build_messages, build_system_prompt
from reportbot.services.report_store import ReportStore

logger = logging.getLogger(__name__)

# NaN and infinities in model-emitted data are written as null.
_CHART_LIST = TypeAdapter(List[ChartSpec])


class ReportService:
    def __init__(
        self,
        llm_gateway: LLMGateway,
        store: ReportStore,
        normalizer: Optional[ContentNormalizer] = None,
    ) -> None:
        self._llm_gateway = llm_gateway
        self._store = store
        self._normalizer = normalizer or ContentNormalizer()

    async def build_context(self, payload: GenerateReportRequest) -> Tuple[str, int]:
        """Pre-parsed entries win; raw uploads are only parsed when none were sent."""
        if payload.files_content:
            return self._normalizer.normalize(payload.files_content), len(payload.files_content)
        if payload.raw_files:
            return await self._normalizer.normalize_uploads(payload.raw_files), len(payload.raw_files)
        return "", 0

    async def generate(self, payload: GenerateReportRequest) -> GenerateReportResponse:
        if not payload.query.strip():
            raise InputValidationError("Missing query or company")

        started = time.perf_counter()
        documents_context, files_processed = await self.build_context(payload)
        if not documents_context:
            logger.warning("No document context for query; the model will answer from company context only")
        logger.info(
            "Generating report for %s: %d file(s), %d context chars, graphs=%s",
            payload.company.name,
            files_processed,
            len(documents_context),
            payload.include_graphs,
        )

        completion = await self._llm_gateway.complete(
            LLMCompletionRequest(
                system=build_system_prompt(payload.company, payload.include_graphs),
                messages=build_messages(
                    payload.query,
                    documents_context,
                    payload.include_graphs,
                    payload.chat_history,
                ),
                extended=payload.extended,
            )
        )

        content = completion.output_text
        charts: List[ChartSpec] = []
        if payload.include_graphs:
            extraction = extract_charts(content)
            content = extraction.content
            charts = extraction.charts
            logger.info("Extracted %d chart(s), %d malformed", len(charts), extraction.failed_blocks)

        record = self._store.create(
            content=content,
            query=payload.query,
            company_id=payload.company.id,
            user_id=payload.user_id,
            charts=_CHART_LIST.dump_json(charts, by_alias=True).decode("utf-8") if charts else None,
        )
        logger.info("Report saved with id %s", record.id)

        return GenerateReportResponse(
            content=content,
            charts=charts,
            report_id=record.id,
            metadata=ReportGenerationMetadata(
                model=completion.model,
                tokens_used=completion.output_tokens,
                input_tokens=completion.input_tokens,
                processing_time_ms=int((time.perf_counter() - started) * 1000),
                files_processed=files_processed,
                charts_extracted=len(charts),
            ),
        )

    def get_report(self, report_id: str) -> ReportRecord:
        record = self._store.get(report_id)
        if record is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        return record

    def update_report(self, report_id: str, content: str) -> ReportRecord:
        record = self._store.update_content(report_id, content)
        if record is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        return record
