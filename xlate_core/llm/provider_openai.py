from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable
from typing import Any

import httpx

from xlate_core.constants import LOG_BODY_LIMIT
from xlate_core.errors import (
    EMPTY_RESULTS,
    EXCEPTION,
    HTTP_ERROR,
    INVALID_ARGUMENTS,
    INVALID_FUNCTION_RESPONSE,
    INVALID_JSON_RESPONSE,
    MALFORMED_RESULT_ITEM,
    MISSING_API_CONFIG,
    NO_FUNCTION_ARGUMENTS,
    RATE_LIMITED,
    REQUEST_ID_MISMATCH,
    ProviderError,
)
from xlate_core.llm.prompts import (
    REPAIR_SYSTEM_PROMPT,
    TRANSLATE_BATCH_FUNCTION,
    TRANSLATE_BATCH_FUNCTION_NAME,
    build_system_message,
)
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.llm.provider_config import ProviderConfig
from xlate_core.logging_setup import truncate_for_log
from xlate_core.qa.sanitize import has_control_chars
from xlate_core.translation.types import (
    BatchMeta,
    BatchRequest,
    ProviderReply,
    RawResult,
    UsageTokens,
)

logger = logging.getLogger(__name__)

UsageRecorder = Callable[[BatchRequest, BatchMeta, int], None]

_COMPLETIONS_SUFFIX = re.compile(r"/chat/completions/?$")


def completions_url(endpoint: str) -> str:
    if _COMPLETIONS_SUFFIX.search(endpoint):
        return endpoint
    return endpoint.rstrip("/") + "/chat/completions"


def _is_azure_endpoint(endpoint: str) -> bool:
    return "azure" in endpoint.lower()


def _extract_function_arguments(response: dict[str, Any]) -> str | None:
    choices = response.get("choices") or []
    choice = choices[0] if isinstance(choices, list) and choices else None
    if not isinstance(choice, dict):
        return None

    message = choice.get("message") or {}
    if isinstance(message, dict):
        function_call = message.get("function_call") or {}
        if isinstance(function_call, dict) and function_call.get("arguments"):
            return str(function_call["arguments"])
        if message.get("content"):
            return str(message["content"])

    if choice.get("text"):
        return str(choice["text"])
    return None


def decode_function_arguments(raw: str) -> Any:
    """Parse JSON arguments, tolerating prose around the outermost object."""

    try:
        return json.loads(raw)
    except ValueError:
        pass

    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(raw[start : end + 1])
    except ValueError:
        return None


def _usage_from_response(response: dict[str, Any]) -> UsageTokens | None:
    usage = response.get("usage")
    if not isinstance(usage, dict):
        return None
    return UsageTokens(
        prompt=int(usage.get("prompt_tokens") or 0),
        completion=int(usage.get("completion_tokens") or 0),
        total=int(usage.get("total_tokens") or 0),
    )


def _raw_result(entry: dict[str, Any]) -> RawResult:
    confidence = entry.get("confidence")
    model_tokens = entry.get("model_tokens")
    return RawResult(
        id=str(entry["id"]),
        translated=str(entry["translated"]),
        confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        model_tokens=model_tokens if isinstance(model_tokens, dict) else None,
    )


class OpenAIChatProvider(TranslationProvider):
    """Chat-completions client speaking the ``translate_batch`` function-calling contract."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        usage_recorder: UsageRecorder | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._sleep = sleep
        self._usage_recorder = usage_recorder

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if _is_azure_endpoint(self.config.endpoint):
            headers["api-key"] = str(self.config.api_key)
        else:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(
            transport=self._transport,
            timeout=httpx.Timeout(
                self.config.timeout_seconds,
                connect=self.config.connect_timeout_seconds,
            ),
        )

    def _post_once(self, client: httpx.Client, url: str, payload: dict[str, Any]) -> tuple[int, str]:
        try:
            response = client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.debug("Provider transport error: %s", exc)
            return 0, ""
        return response.status_code, response.text

    def build_payload(self, request: BatchRequest) -> dict[str, Any]:
        model = request.options.model or self.config.model
        function_args = {
            "request_id": request.request_id,
            "source_lang": request.source_lang,
            "target_lang": request.target_lang,
            "items": [
                {
                    "id": item.wire_id,
                    "source_text": item.source_text,
                    "context": item.context,
                    "placeholders": list(item.placeholders),
                }
                for item in request.items
            ],
            "glossary": [pair.to_dict() for pair in request.glossary],
            "model_options": request.options.model_options(),
        }

        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {
                    "role": "system",
                    "content": build_system_message(self.config.system_prompt, request.glossary),
                },
                {
                    "role": "user",
                    "content": json.dumps(
                        {
                            "request_id": request.request_id,
                            "note": "Translate the provided items using the translate_batch function.",
                        }
                    ),
                },
                {"role": "user", "content": json.dumps(function_args, ensure_ascii=False)},
            ],
            "functions": [TRANSLATE_BATCH_FUNCTION],
            "function_call": {"name": TRANSLATE_BATCH_FUNCTION_NAME},
        }
        if request.options.temperature is not None:
            payload["temperature"] = float(request.options.temperature)
        return payload

    def translate(self, request: BatchRequest) -> ProviderReply:
        if not self.config.is_configured:
            raise ProviderError(MISSING_API_CONFIG)
        if not request.request_id or not request.source_lang or not request.target_lang or not request.items:
            raise ProviderError(INVALID_ARGUMENTS)

        logger.debug(
            "translate_batch request_id=%s %s->%s items=%d",
            request.request_id,
            request.source_lang,
            request.target_lang,
            len(request.items),
        )

        try:
            with self._client() as client:
                return self._translate_with_client(client, request)
        except ProviderError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("translate_batch failed for request_id=%s", request.request_id)
            raise ProviderError(EXCEPTION, str(exc)) from exc

    def _translate_with_client(self, client: httpx.Client, request: BatchRequest) -> ProviderReply:
        url = completions_url(self.config.endpoint)
        payload = self.build_payload(request)
        logger.debug("Outgoing %s payload: %s", url, truncate_for_log(json.dumps(payload), LOG_BODY_LIMIT))

        started = time.monotonic()
        status_code, body = 0, ""
        for attempt in range(1, self.config.max_attempts + 1):
            status_code, body = self._post_once(client, url, payload)
            logger.debug(
                "Response attempt=%d httpcode=%d body: %s",
                attempt,
                status_code,
                truncate_for_log(body, LOG_BODY_LIMIT) if body else "[no body]",
            )
            if 200 <= status_code < 300:
                break
            if status_code == 429:
                raise ProviderError(RATE_LIMITED)
            if attempt < self.config.max_attempts:
                self._sleep(float(2**attempt))
                continue
            raise ProviderError(HTTP_ERROR, f"{status_code}: {body[:200]}")
        elapsed_ms = int((time.monotonic() - started) * 1000)

        try:
            response = json.loads(body)
        except ValueError as exc:
            raise ProviderError(INVALID_JSON_RESPONSE) from exc
        if not isinstance(response, dict):
            raise ProviderError(INVALID_JSON_RESPONSE)

        function_args = _extract_function_arguments(response)
        if function_args is None:
            raise ProviderError(NO_FUNCTION_ARGUMENTS)

        decoded = decode_function_arguments(function_args)
        if not isinstance(decoded, dict) or not isinstance(decoded.get("results"), list):
            raise ProviderError(INVALID_FUNCTION_RESPONSE)

        if "request_id" in decoded and decoded["request_id"] != request.request_id:
            raise ProviderError(REQUEST_ID_MISMATCH)

        results = decoded["results"]
        if any(
            isinstance(entry, dict) and has_control_chars(str(entry.get("translated", "")))
            for entry in results
        ):
            results = self._repair_results(client, url, payload["model"], results)

        if not results:
            raise ProviderError(EMPTY_RESULTS)
        for index, entry in enumerate(results):
            if not isinstance(entry, dict) or "id" not in entry or "translated" not in entry:
                raise ProviderError(MALFORMED_RESULT_ITEM, f"index {index}")

        meta = BatchMeta(
            model=str(payload["model"]),
            usage_tokens=_usage_from_response(response),
            elapsed_ms=elapsed_ms,
        )
        reply = ProviderReply(results=[_raw_result(entry) for entry in results], meta=meta)
        if self._usage_recorder is not None:
            self._usage_recorder(request, meta, len(reply.results))
        return reply

    def _repair_results(
        self,
        client: httpx.Client,
        url: str,
        model: str,
        results: list[Any],
    ) -> list[Any]:
        repair_payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": REPAIR_SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps({"results": results}, ensure_ascii=False)},
            ],
            "functions": [TRANSLATE_BATCH_FUNCTION],
            "function_call": {"name": TRANSLATE_BATCH_FUNCTION_NAME},
        }
        status_code, body = self._post_once(client, url, repair_payload)
        if not 200 <= status_code < 300:
            logger.warning("Control-character repair failed with httpcode=%d", status_code)
            return results

        try:
            response = json.loads(body)
        except ValueError:
            logger.warning("Control-character repair returned invalid JSON")
            return results

        repair_args = _extract_function_arguments(response) if isinstance(response, dict) else None
        repaired = decode_function_arguments(repair_args) if repair_args is not None else None
        if isinstance(repaired, dict) and isinstance(repaired.get("results"), list) and repaired["results"]:
            return repaired["results"]

        logger.warning("Control-character repair response had no results; keeping original text")
        return results
