from __future__ import annotations

from collections.abc import Sequence


class DomainError(Exception):
    code = "internal_error"


class DomainValidationError(DomainError):
    code = "validation_error"


class DomainInvariantError(DomainError):
    code = "invariant_violation"


class DomainDependencyError(DomainError):
    code = "dependency_error"


class ConfigurationError(DomainError):
    """Workflow or registry configuration is unusable.

    Raised at load time with every violation collected, so an operator can
    fix the definition in one pass.
    """

    code = "configuration_error"

    def __init__(self, message: str, violations: Sequence[str] = ()) -> None:
        self.violations = tuple(violations)
        if self.violations:
            message = f"{message}: " + "; ".join(self.violations)
        super().__init__(message)


class AmbiguousTransitionError(ConfigurationError):
    code = "ambiguous_transition"


class NoSuchTransitionError(DomainValidationError):
    code = "no_such_transition"

    def __init__(self, current_state: str, target_state: str) -> None:
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(f"Cannot transition from {current_state} to {target_state}")


class UnauthenticatedError(DomainError):
    code = "unauthenticated"


class ForbiddenError(DomainError):
    code = "forbidden"


class NotFoundError(DomainError):
    code = "not_found"


class ConcurrentModificationError(DomainError):
    code = "concurrent_modification"

    def __init__(self, submission_version_id: str, expected_occ: int) -> None:
        self.submission_version_id = submission_version_id
        self.expected_occ = expected_occ
        super().__init__(
            f"submission version {submission_version_id} was modified concurrently (expected occ={expected_occ})"
        )


class TransitionInFlightError(DomainInvariantError):
    code = "transition_in_flight"


class JobSubmissionError(DomainDependencyError):
    code = "job_runner_unavailable"


class PollingExhaustedError(DomainError):
    code = "polling_exhausted"
