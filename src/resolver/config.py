"""Runtime configuration for a resolution run."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from constants import Constants


@dataclass
class ResolverConfig:  # pylint: disable=too-many-instance-attributes
    """Tunables for the resolver; defaults come from Constants."""
    repositories: List[str] = field(default_factory=list)
    max_workers: int = Constants.MAX_WORKERS
    deadline_seconds: Optional[float] = None
    exclusion_scope: str = Constants.DEFAULT_EXCLUSION_SCOPE
    bom_conflict_policy: str = Constants.DEFAULT_BOM_CONFLICT_POLICY
    http_retry_max: int = Constants.HTTP_RETRY_MAX
    http_timeout: float = Constants.REQUEST_TIMEOUT

    def validate(self) -> "ResolverConfig":
        """Raise ValueError on values the resolver cannot work with."""
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        if self.exclusion_scope not in Constants.EXCLUSION_SCOPES:
            raise ValueError(
                f"exclusion_scope must be one of {', '.join(Constants.EXCLUSION_SCOPES)}"
            )
        if self.bom_conflict_policy not in Constants.BOM_CONFLICT_POLICIES:
            raise ValueError(
                f"bom_conflict_policy must be one of {', '.join(Constants.BOM_CONFLICT_POLICIES)}"
            )
        if self.http_retry_max < 1:
            raise ValueError("http_retry_max must be at least 1")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")
        return self

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}
