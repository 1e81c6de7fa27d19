from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from reportbot.core.config import settings
from reportbot.models.schemas import ReportRecord


class ReportStore(Protocol):
    def create(
        self,
        *,
        content: str,
        query: str,
        company_id: Optional[str],
        user_id: Optional[str],
        charts: Optional[str],
    ) -> ReportRecord: ...

    def get(self, report_id: str) -> Optional[ReportRecord]: ...

    def update_content(self, report_id: str, content: str) -> Optional[ReportRecord]: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_record(
    content: str,
    query: str,
    company_id: Optional[str],
    user_id: Optional[str],
    charts: Optional[str],
) -> ReportRecord:
    stamp = _now()
    return ReportRecord(
        id=f"report-{uuid.uuid4().hex[:12]}",
        content=content,
        query=query,
        company_id=company_id,
        user_id=user_id,
        charts=charts,
        created_at=stamp,
        updated_at=stamp,
    )


class InMemoryReportStore:
    def __init__(self) -> None:
        self._reports: Dict[str, ReportRecord] = {}
        self._lock = threading.Lock()

    def create(
        self,
        *,
        content: str,
        query: str,
        company_id: Optional[str],
        user_id: Optional[str],
        charts: Optional[str],
    ) -> ReportRecord:
        record = _new_record(content, query, company_id, user_id, charts)
        with self._lock:
            self._reports[record.id] = record
        return record

    def get(self, report_id: str) -> Optional[ReportRecord]:
        with self._lock:
            return self._reports.get(report_id)

    def update_content(self, report_id: str, content: str) -> Optional[ReportRecord]:
        with self._lock:
            record = self._reports.get(report_id)
            if record is None:
                return None
            updated = record.model_copy(update={"content": content, "updated_at": _now()})
            self._reports[report_id] = updated
            return updated


class JsonReportStore:
    """Reports kept as a JSON array on disk, rewritten on every change."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path or settings.reports_data_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._path.write_text("[]", encoding="utf-8")
        self._lock = threading.Lock()

    def create(
        self,
        *,
        content: str,
        query: str,
        company_id: Optional[str],
        user_id: Optional[str],
        charts: Optional[str],
    ) -> ReportRecord:
        record = _new_record(content, query, company_id, user_id, charts)
        with self._lock:
            docs = self._load()
            docs.append(record.model_dump())
            self._save(docs)
        return record

    def get(self, report_id: str) -> Optional[ReportRecord]:
        with self._lock:
            for doc in self._load():
                if doc.get("id") == report_id:
                    return ReportRecord.model_validate(doc)
        return None

    def update_content(self, report_id: str, content: str) -> Optional[ReportRecord]:
        with self._lock:
            docs = self._load()
            for doc in docs:
                if doc.get("id") == report_id:
                    doc["content"] = content
                    doc["updated_at"] = _now()
                    self._save(docs)
                    return ReportRecord.model_validate(doc)
        return None

    def _load(self) -> List[Dict]:
        return json.loads(self._path.read_text(encoding="utf-8") or "[]")

    def _save(self, docs: List[Dict]) -> None:
        self._path.write_text(json.dumps(docs, ensure_ascii=False, indent=2), encoding="utf-8")


def build_report_store(backend: Optional[str] = None) -> ReportStore:
    name = (backend or settings.report_store_backend).strip().lower()
    if name == "json":
        return JsonReportStore()
    if name == "memory":
        return InMemoryReportStore()
    raise ValueError("report_store_backend must be one of: memory, json")
