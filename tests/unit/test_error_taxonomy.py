import pytest

from submission_workflow.domain.error_taxonomy import (
    CANONICAL_ERROR_CODES,
    HTTP_STATUS_BY_CODE,
    classify_error,
    http_status_for,
    is_canonical_error_code,
    resolve_error_code,
)
from submission_workflow.domain.errors import (
    AmbiguousTransitionError,
    ConcurrentModificationError,
    ConfigurationError,
    ForbiddenError,
    JobSubmissionError,
    NoSuchTransitionError,
    NotFoundError,
    PollingExhaustedError,
    TransitionInFlightError,
    UnauthenticatedError,
)


@pytest.mark.unit
def test_canonical_error_codes_are_enforced() -> None:
    assert is_canonical_error_code("no_such_transition") is True
    assert is_canonical_error_code("unknown_error") is False
    assert resolve_error_code("unknown_error") == "internal_error"


@pytest.mark.unit
def test_every_canonical_code_has_an_http_status() -> None:
    assert set(HTTP_STATUS_BY_CODE) == set(CANONICAL_ERROR_CODES)


@pytest.mark.unit
def test_retry_classification_distinguishes_terminal_and_recoverable() -> None:
    assert classify_error("concurrent_modification") == "recoverable"
    assert classify_error("job_runner_unavailable") == "recoverable"
    assert classify_error("no_such_transition") == "terminal"
    assert classify_error("forbidden") == "terminal"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "status"),
    [
        (NoSuchTransitionError("DRAFT", "PUBLISHED"), 400),
        (UnauthenticatedError("who"), 401),
        (ForbiddenError("no"), 403),
        (NotFoundError("gone"), 404),
        (ConcurrentModificationError("sv_1", 3), 409),
        (TransitionInFlightError("busy"), 409),
        (ConfigurationError("bad"), 500),
        (AmbiguousTransitionError("two"), 500),
        (JobSubmissionError("down"), 503),
        (PollingExhaustedError("gave up"), 504),
    ],
)
def test_domain_errors_map_to_http_statuses(error: Exception, status: int) -> None:
    assert http_status_for(error.code) == status


@pytest.mark.unit
def test_configuration_error_lists_violations() -> None:
    error = ConfigurationError("workflow X is invalid", ["a", "b"])

    assert error.violations == ("a", "b")
    assert str(error) == "workflow X is invalid: a; b"
