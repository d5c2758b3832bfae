from __future__ import annotations

from dataclasses import dataclass

from submission_workflow.domain.contracts import SubmissionRepository


@dataclass(frozen=True)
class WorkerDeps:
    repository: SubmissionRepository
