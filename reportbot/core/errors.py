"""Exceptions raised by the report service.

Parse failures and malformed chart blocks never surface here: they are folded
into ``ParsedResult.error`` and chart error markers. These classes cover the
faults a caller has to see.
"""

from __future__ import annotations

from typing import Optional


class ReportBotError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InputValidationError(ReportBotError):
    code = "INVALID_INPUT"
    status_code = 400


class UploadTooLargeError(InputValidationError):
    code = "FILE_TOO_LARGE"
    status_code = 413


class ReportNotFoundError(ReportBotError):
    code = "REPORT_NOT_FOUND"
    status_code = 404


class LLMError(ReportBotError):
    """Raised when the language-model provider call fails."""

    code = "GENERATION_ERROR"
    status_code = 500


class LLMAuthenticationError(LLMError):
    code = "INVALID_API_KEY"
    status_code = 500


class LLMRateLimitError(LLMError):
    code = "RATE_LIMIT"
    status_code = 429


class LLMInvalidRequestError(LLMError):
    code = "INVALID_REQUEST"
    status_code = 400


class LLMTimeoutError(LLMError):
    code = "LLM_TIMEOUT"
    status_code = 504


class LLMUpstreamError(LLMError):
    pass
