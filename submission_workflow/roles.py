from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

# role name -> what the process does besides serving /health and /ready
ROLE_DESCRIPTIONS = MappingProxyType(
    {
        "api": "serves the transition API",
        "worker-jobs": "claims RUNNING jobs and settles their submission versions",
        "worker-reconcile": "sweeps pending job-linked transitions and abandons expired ones",
    }
)
SUPPORTED_ROLES = tuple(ROLE_DESCRIPTIONS)


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def is_worker(self) -> bool:
        return self.name.startswith("worker-")

    @property
    def default_port(self) -> int:
        return 8100 if self.is_worker else 8000


def validate_role(role: str) -> RuntimeRole:
    if role not in ROLE_DESCRIPTIONS:
        supported = ", ".join(SUPPORTED_ROLES)
        raise ValueError(
            f"Unsupported role '{role}'. Supported roles: {supported}. "
            "Schema migrations are applied from db/migrations, not by a role."
        )
    return RuntimeRole(name=role)
