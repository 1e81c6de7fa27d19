from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, List, Optional

import httpx

from reportbot.core.config import settings
from reportbot.core.errors import (
    LLMAuthenticationError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUpstreamError,
)
from reportbot.models.schemas import LLMCompletion, LLMCompletionRequest

try:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
except Exception:  # pragma: no cover
    boto3 = None

try:
    import litellm
except Exception:  # pragma: no cover
    litellm = None

logger = logging.getLogger(__name__)

PROVIDERS = {"anthropic", "openai", "openai_compatible", "bedrock", "ollama"}

_BEDROCK_AUTH_CODES = {"AccessDeniedException", "UnrecognizedClientException", "ExpiredTokenException"}
_BEDROCK_THROTTLE_CODES = {"ThrottlingException", "ServiceQuotaExceededException", "TooManyRequestsException"}
_BEDROCK_INVALID_CODES = {"ValidationException", "ModelErrorException"}


def error_for_status(status_code: int, detail: str) -> LLMError:
    if status_code in {401, 403}:
        return LLMAuthenticationError("Invalid API key. Please check LLM_API_KEY.", details=detail)
    if status_code == 429:
        return LLMRateLimitError("Rate limit exceeded. Please try again in a few moments.", details=detail)
    if status_code in {400, 413, 422}:
        return LLMInvalidRequestError("Request too large or invalid. Try with fewer files.", details=detail)
    return LLMUpstreamError(f"Language model returned HTTP {status_code}", details=detail)


class LLMGateway:
    """Single chat-completion call against the configured provider.

    No retries: every provider failure is mapped onto an ``LLMError`` subclass
    and raised to the caller.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._default_provider = settings.llm_provider.lower()
        self._api_key = settings.llm_api_key
        self._base_url = settings.llm_base_url.rstrip("/")
        self._chat_path = settings.llm_chat_path
        self._auth_header = settings.llm_auth_header
        self._auth_prefix = settings.llm_auth_prefix
        self._anthropic_url = settings.anthropic_base_url.rstrip("/")
        self._timeout = settings.llm_timeout_sec
        self._extended_timeout = max(settings.llm_timeout_sec, settings.llm_extended_timeout_sec)
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    @property
    def provider(self) -> str:
        return self._default_provider

    async def close(self) -> None:
        await self._client.aclose()

    def timeout_for(self, payload: LLMCompletionRequest) -> float:
        return self._extended_timeout if payload.extended else self._timeout

    async def complete(self, payload: LLMCompletionRequest) -> LLMCompletion:
        provider = (payload.provider or self._default_provider).lower()
        if provider not in PROVIDERS:
            raise ValueError(f"provider must be one of: {', '.join(sorted(PROVIDERS))}")
        if not payload.messages:
            raise ValueError("messages must not be empty")

        timeout = self.timeout_for(payload)
        try:
            if provider == "anthropic":
                out = await self._chat_anthropic(payload, timeout)
            elif provider in {"openai", "openai_compatible"}:
                out = await self._chat_openai_compatible(payload, timeout)
            elif provider == "bedrock":
                out = await self._chat_bedrock(payload, timeout)
            else:
                out = await self._chat_ollama(payload, timeout)
        except LLMError:
            raise
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(f"Language model did not respond within {timeout:.0f}s", details=str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            raise error_for_status(exc.response.status_code, exc.response.text[:500]) from exc
        except httpx.HTTPError as exc:
            raise LLMUpstreamError("Language model request failed", details=str(exc)) from exc

        logger.info(
            "LLM completion via %s/%s: %d input tokens, %d output tokens",
            out.provider,
            out.model,
            out.input_tokens,
            out.output_tokens,
        )
        return out

    def _max_tokens(self, payload: LLMCompletionRequest) -> int:
        return payload.max_tokens or settings.llm_max_tokens

    def _temperature(self, payload: LLMCompletionRequest) -> float:
        return settings.llm_temperature if payload.temperature is None else payload.temperature

    def _openai_headers(self) -> Dict[str, str]:
        if not self._api_key:
            return {}
        return {self._auth_header: f"{self._auth_prefix}{self._api_key}"}

    async def _chat_anthropic(self, payload: LLMCompletionRequest, timeout: float) -> LLMCompletion:
        model = payload.model or settings.llm_model
        body: Dict = {
            "model": model,
            "max_tokens": self._max_tokens(payload),
            "temperature": self._temperature(payload),
            "messages": [{"role": m.role, "content": m.content} for m in payload.messages],
        }
        if payload.system:
            body["system"] = payload.system
        headers = {
            "x-api-key": self._api_key or "",
            "anthropic-version": settings.anthropic_version,
            "content-type": "application/json",
        }
        r = await self._client.post(f"{self._anthropic_url}/v1/messages", headers=headers, json=body, timeout=timeout)
        r.raise_for_status()
        raw = r.json()
        blocks = raw.get("content", []) or []
        text = "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")
        usage = raw.get("usage", {}) or {}
        return LLMCompletion(
            provider="anthropic",
            model=raw.get("model") or model,
            output_text=text,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            raw=raw,
        )

    async def _chat_openai_compatible(self, payload: LLMCompletionRequest, timeout: float) -> LLMCompletion:
        model = payload.model or settings.llm_model
        messages: List[Dict[str, str]] = []
        if payload.system:
            messages.append({"role": "system", "content": payload.system})
        messages.extend({"role": m.role, "content": m.content} for m in payload.messages)
        body: Dict = {
            "model": model,
            "messages": messages,
            "temperature": self._temperature(payload),
            "max_tokens": self._max_tokens(payload),
        }
        r = await self._client.post(
            f"{self._base_url}{self._chat_path}",
            headers=self._openai_headers(),
            json=body,
            timeout=timeout,
        )
        r.raise_for_status()
        raw = r.json()
        text = raw.get("choices", [{}])[0].get("message", {}).get("content", "") or ""
        usage = raw.get("usage", {}) or {}
        return LLMCompletion(
            provider=payload.provider or self._default_provider,
            model=raw.get("model") or model,
            output_text=text,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            raw=raw,
        )

    async def _chat_bedrock(self, payload: LLMCompletionRequest, timeout: float) -> LLMCompletion:
        if boto3 is None:
            raise LLMUpstreamError("boto3 is not installed")
        model = payload.model or settings.bedrock_model_id
        client = boto3.client("bedrock-runtime", region_name=settings.bedrock_region)
        kwargs: Dict = {
            "modelId": model,
            "messages": [{"role": m.role, "content": [{"text": m.content}]} for m in payload.messages],
            "inferenceConfig": {
                "temperature": self._temperature(payload),
                "maxTokens": self._max_tokens(payload),
            },
        }
        if payload.system:
            kwargs["system"] = [{"text": payload.system}]
        try:
            response = await asyncio.wait_for(asyncio.to_thread(client.converse, **kwargs), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise LLMTimeoutError(f"Language model did not respond within {timeout:.0f}s") from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            message = str(exc)
            if code in _BEDROCK_AUTH_CODES:
                raise LLMAuthenticationError("Bedrock rejected the configured credentials.", details=message) from exc
            if code in _BEDROCK_THROTTLE_CODES:
                raise LLMRateLimitError("Rate limit exceeded. Please try again in a few moments.", details=message) from exc
            if code in _BEDROCK_INVALID_CODES:
                raise LLMInvalidRequestError("Request too large or invalid. Try with fewer files.", details=message) from exc
            raise LLMUpstreamError("Bedrock request failed", details=message) from exc
        except ReadTimeoutError as exc:
            raise LLMTimeoutError("Bedrock read timed out", details=str(exc)) from exc
        except BotoCoreError as exc:
            raise LLMUpstreamError("Bedrock request failed", details=str(exc)) from exc

        parts = response.get("output", {}).get("message", {}).get("content", [])
        text = "".join(p.get("text", "") for p in parts)
        usage = response.get("usage", {}) or {}
        return LLMCompletion(
            provider="bedrock",
            model=model,
            output_text=text,
            input_tokens=int(usage.get("inputTokens") or 0),
            output_tokens=int(usage.get("outputTokens") or 0),
            raw=self._to_raw_dict(response),
        )

    async def _chat_ollama(self, payload: LLMCompletionRequest, timeout: float) -> LLMCompletion:
        if litellm is None:
            raise LLMUpstreamError("litellm is not installed. Add litellm to dependencies and retry.")
        model = payload.model or settings.ollama_default_model
        messages: List[Dict[str, str]] = []
        if payload.system:
            messages.append({"role": "system", "content": payload.system})
        messages.extend({"role": m.role, "content": m.content} for m in payload.messages)
        try:
            raw = await litellm.acompletion(
                model=f"ollama/{model}",
                messages=messages,
                api_base=settings.ollama_base_url,
                temperature=self._temperature(payload),
                stream=False,
                max_tokens=self._max_tokens(payload),
                timeout=timeout,
            )
        except litellm.AuthenticationError as exc:
            raise LLMAuthenticationError("Language model rejected the credentials.", details=str(exc)) from exc
        except litellm.RateLimitError as exc:
            raise LLMRateLimitError("Rate limit exceeded. Please try again in a few moments.", details=str(exc)) from exc
        except litellm.BadRequestError as exc:
            raise LLMInvalidRequestError("Request too large or invalid. Try with fewer files.", details=str(exc)) from exc
        except litellm.Timeout as exc:
            raise LLMTimeoutError(f"Language model did not respond within {timeout:.0f}s", details=str(exc)) from exc
        except litellm.APIError as exc:
            raise LLMUpstreamError("Ollama request failed", details=str(exc)) from exc

        raw_dict = self._to_raw_dict(raw)
        choices = raw_dict.get("choices", []) or []
        text = choices[0].get("message", {}).get("content", "") if choices else ""
        usage = raw_dict.get("usage", {}) or {}
        return LLMCompletion(
            provider="ollama",
            model=model,
            output_text=text or "",
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            raw=raw_dict,
        )

    @staticmethod
    def _to_raw_dict(payload_obj: object) -> Dict:
        if isinstance(payload_obj, dict):
            return payload_obj
        if hasattr(payload_obj, "model_dump") and callable(payload_obj.model_dump):
            return payload_obj.model_dump()
        return json.loads(json.dumps(payload_obj, default=str))
