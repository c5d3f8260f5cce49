"""Error codes surfaced by the provider client and the batch engine."""

from __future__ import annotations

MISSING_API_CONFIG = "missing_api_config"
INVALID_ARGUMENTS = "invalid_arguments"
RATE_LIMITED = "rate_limited"
HTTP_ERROR = "http_error"
INVALID_JSON_RESPONSE = "invalid_json_response"
NO_FUNCTION_ARGUMENTS = "no_function_arguments"
INVALID_FUNCTION_RESPONSE = "invalid_function_response"
REQUEST_ID_MISMATCH = "request_id_mismatch"
EMPTY_RESULTS = "empty_results"
MALFORMED_RESULT_ITEM = "malformed_result_item"
EXCEPTION = "exception"

ERROR_CODES = (
    MISSING_API_CONFIG,
    INVALID_ARGUMENTS,
    RATE_LIMITED,
    HTTP_ERROR,
    INVALID_JSON_RESPONSE,
    NO_FUNCTION_ARGUMENTS,
    INVALID_FUNCTION_RESPONSE,
    REQUEST_ID_MISMATCH,
    EMPTY_RESULTS,
    MALFORMED_RESULT_ITEM,
    EXCEPTION,
)


class ProviderError(RuntimeError):
    """Raised inside a provider round trip; converted to a failed outcome by the engine."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        super().__init__(f"{code}: {detail}" if detail else code)
        self.code = code
        self.detail = detail
