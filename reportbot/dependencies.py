from __future__ import annotations
from reportbot.services.content_normalizer import ContentNormalizer
from reportbot.services.document_parser import DocumentParser
from reportbot.services.document_service import DocumentService
from reportbot.services.llm_gateway import LLMGateway
from reportbot.services.report_service import ReportService
from reportbot.services.report_store import build_report_store


class Container:
    def __init__(self) -> None:
        self.parser = DocumentParser()
        self.normalizer = ContentNormalizer(parser=self.parser)
        self.documents = DocumentService(parser=self.parser)
        self.llm_gateway = LLMGateway()
        self.store = build_report_store()
        self.reports = ReportService(
            llm_gateway=self.llm_gateway,
            store=self.store,
            normalizer=self.normalizer,
        )

    async def close(self) -> None:
        await self.llm_gateway.close()
