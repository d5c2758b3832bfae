from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary shared by the engine, the API and the client.
ErrorCode = Literal[
    "validation_error",
    "no_such_transition",
    "unauthenticated",
    "forbidden",
    "not_found",
    "concurrent_modification",
    "transition_in_flight",
    "configuration_error",
    "ambiguous_transition",
    "job_runner_unavailable",
    "polling_exhausted",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "validation_error",
    "no_such_transition",
    "unauthenticated",
    "forbidden",
    "not_found",
    "concurrent_modification",
    "transition_in_flight",
    "configuration_error",
    "ambiguous_transition",
    "job_runner_unavailable",
    "polling_exhausted",
    "internal_error",
)

# Errors a caller may retry after re-reading the submission version.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        "concurrent_modification",
        "job_runner_unavailable",
    }
)

HTTP_STATUS_BY_CODE: Mapping[ErrorCode, int] = {
    "validation_error": 400,
    "no_such_transition": 400,
    "unauthenticated": 401,
    "forbidden": 403,
    "not_found": 404,
    "concurrent_modification": 409,
    "transition_in_flight": 409,
    # Broken configuration is an operator problem, never the caller's.
    "configuration_error": 500,
    "ambiguous_transition": 500,
    "job_runner_unavailable": 503,
    "polling_exhausted": 504,
    "internal_error": 500,
}

# Reverse mapping used by the HTTP client to rebuild typed errors.
CODE_BY_HTTP_STATUS: Mapping[int, ErrorCode] = {
    400: "no_such_transition",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    409: "concurrent_modification",
    503: "job_runner_unavailable",
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def resolve_error_code(code: str) -> ErrorCode:
    if is_canonical_error_code(code):
        return code  # type: ignore[return-value]
    return "internal_error"


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def http_status_for(code: str) -> int:
    return HTTP_STATUS_BY_CODE[resolve_error_code(code)]
