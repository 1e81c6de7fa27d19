from __future__ import annotations

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient

from reportbot.api.routes.reports import get_container, router
from reportbot.core.errors import LLMAuthenticationError, LLMRateLimitError
from reportbot.models.schemas import LLMCompletion
from reportbot.services.document_service import DocumentService
from reportbot.services.prompt_builder import CHART_END, CHART_START
from reportbot.services.report_service import ReportService
from reportbot.services.report_store import InMemoryReportStore

COMPANY = json.dumps({"id": "c-1", "name": "Acme", "industry": "retail"})


class _FakeGateway:
    provider = "fake"

    def __init__(self, output_text: str = "<h2>Report</h2>", error: Exception = None) -> None:
        self.output_text = output_text
        self.error = error
        self.requests = []

    async def complete(self, payload):
        self.requests.append(payload)
        if self.error is not None:
            raise self.error
        return LLMCompletion(provider="fake", model="fake-model", output_text=self.output_text, output_tokens=5)

    async def close(self) -> None:
        return None


class _Container:
    def __init__(self, gateway: _FakeGateway, max_upload_bytes: int = 10 * 1024 * 1024) -> None:
        self.documents = DocumentService(max_upload_bytes=max_upload_bytes)
        self.llm_gateway = gateway
        self.store = InMemoryReportStore()
        self.reports = ReportService(llm_gateway=gateway, store=self.store)


def _client(container: _Container) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_container] = lambda: container
    return TestClient(app)


def test_parse_file_returns_tables_and_ready_descriptor():
    client = _client(_Container(_FakeGateway()))
    res = client.post(
        "/v1/parse-file",
        files={"file": ("sales.csv", b"region,units\neast,10\nwest,20\n", "text/csv")},
    )

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["content"].startswith("CSV file: sales.csv")
    assert body["tables"][0]["insights"]["numericColumns"] == ["units"]
    assert body["tables"][0]["insights"]["rowCount"] == 2
    assert body["metadata"]["rowCount"] == 2
    assert body["file"]["status"] == "ready"
    assert body["file"]["parsedMetadata"]["metadata"]["format"] == "csv"


def test_parse_file_without_file_is_bad_request():
    client = _client(_Container(_FakeGateway()))
    res = client.post("/v1/parse-file", data={"note": "nothing attached"})

    assert res.status_code == 400
    assert res.json()["error"] == "No file provided"


def test_parse_file_over_limit_is_rejected():
    client = _client(_Container(_FakeGateway(), max_upload_bytes=10))
    res = client.post("/v1/parse-file", files={"file": ("notes.txt", b"x" * 11, "text/plain")})

    assert res.status_code == 413
    assert res.json()["code"] == "FILE_TOO_LARGE"


def test_parse_file_with_broken_workbook_reports_error_in_body():
    client = _client(_Container(_FakeGateway()))
    res = client.post("/v1/parse-file", files={"file": ("book.xlsx", b"not a workbook", "application/octet-stream")})

    assert res.status_code == 200
    body = res.json()
    assert body["error"]
    assert body["content"] == "Error parsing file: book.xlsx"
    assert body["file"]["status"] == "error"
    assert body["file"]["error"] == body["error"]


def test_generate_report_with_pre_parsed_files_and_charts():
    block = CHART_START + '{"type":"bar","data":{"labels":["A"],"datasets":[{"data":[1]}]}}' + CHART_END
    gateway = _FakeGateway(output_text="<p>Intro</p>" + block)
    client = _client(_Container(gateway))

    res = client.post(
        "/v1/generate-report",
        data={
            "query": "Summarize sales",
            "company": COMPANY,
            "includeGraphs": "true",
            "filesContent": json.dumps([{"name": "sales.csv", "content": "CSV file: sales.csv", "metadata": {"rowCount": 2}}]),
            "chatHistory": json.dumps([{"type": "user", "content": "hello"}]),
            "userId": "u-1",
        },
    )

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert len(body["charts"]) == 1
    assert body["charts"][0]["data"]["datasets"][0]["backgroundColor"] == "rgba(59, 130, 246, 0.6)"
    assert body["metadata"]["filesProcessed"] == 1
    assert body["metadata"]["chartsExtracted"] == 1
    assert "FILE 1: sales.csv" in gateway.requests[0].messages[-1].content

    fetched = client.get(f"/v1/reports/{body['reportId']}")
    assert fetched.status_code == 200
    assert fetched.json()["content"] == body["content"]
    assert fetched.json()["userId"] == "u-1"


def test_generate_report_parses_raw_uploads():
    gateway = _FakeGateway()
    client = _client(_Container(gateway))

    res = client.post(
        "/v1/generate-report",
        data={"query": "Summarize notes", "company": COMPANY},
        files=[("files", ("notes.txt", b"hello team", "text/plain"))],
    )

    assert res.status_code == 200
    prompt = gateway.requests[0].messages[-1].content
    assert "FILE 1: notes.txt" in prompt
    assert "hello team" in prompt


def test_generate_report_requires_query_and_company():
    client = _client(_Container(_FakeGateway()))
    res = client.post("/v1/generate-report", data={"company": COMPANY})

    assert res.status_code == 400
    assert res.json()["error"] == "Missing query or company"


def test_generate_report_rejects_malformed_json_fields():
    client = _client(_Container(_FakeGateway()))
    res = client.post("/v1/generate-report", data={"query": "q", "company": COMPANY, "filesContent": "{oops"})

    assert res.status_code == 400
    assert res.json()["code"] == "INVALID_INPUT"


def test_rate_limit_maps_to_429():
    client = _client(_Container(_FakeGateway(error=LLMRateLimitError("Rate limit exceeded"))))
    res = client.post("/v1/generate-report", data={"query": "q", "company": COMPANY})

    assert res.status_code == 429
    assert res.json()["code"] == "RATE_LIMIT"


def test_auth_failure_maps_to_invalid_api_key():
    client = _client(_Container(_FakeGateway(error=LLMAuthenticationError("Invalid API key"))))
    res = client.post("/v1/generate-report", data={"query": "q", "company": COMPANY})

    assert res.status_code == 500
    assert res.json()["code"] == "INVALID_API_KEY"


def test_unexpected_failure_maps_to_generation_error():
    client = _client(_Container(_FakeGateway(error=RuntimeError("boom"))))
    res = client.post("/v1/generate-report", data={"query": "q", "company": COMPANY})

    assert res.status_code == 500
    assert res.json()["code"] == "GENERATION_ERROR"
    assert res.json()["details"] == "boom"


def test_update_and_missing_report_routes():
    client = _client(_Container(_FakeGateway()))
    created = client.post("/v1/generate-report", data={"query": "q", "company": COMPANY}).json()

    res = client.put(f"/v1/reports/{created['reportId']}", json={"content": "<p>edited</p>"})
    assert res.status_code == 200
    assert res.json()["content"] == "<p>edited</p>"

    assert client.get("/v1/reports/report-missing").status_code == 404
    missing = client.put("/v1/reports/report-missing", json={"content": "x"})
    assert missing.status_code == 404
    assert missing.json()["code"] == "REPORT_NOT_FOUND"


def test_health_reports_provider_and_store():
    client = _client(_Container(_FakeGateway()))
    res = client.get("/v1/health")

    assert res.status_code == 200
    assert res.json() == {
        "status": "ok",
        "service": "report-chatbot-service",
        "llm_provider": "fake",
        "report_store": "InMemoryReportStore",
    }


def test_generate_report_ignores_malformed_history_roles():
    gateway = _FakeGateway()
    client = _client(_Container(gateway))
    res = client.post(
        "/v1/generate-report",
        data={
            "query": "q",
            "company": COMPANY,
            "chatHistory": json.dumps([{"type": ["user"], "content": "x"}, {"type": "assistant", "content": "ok"}]),
        },
    )

    assert res.status_code == 200
    assert [m.role for m in gateway.requests[0].messages] == ["assistant", "user"]
