"""Error taxonomy for a resolution run.

Every error is terminal for the run. Each carries the coordinate it concerns
and the chain of coordinates (root first) that led to it, so a failure can be
traced back to a specific declared dependency.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

from constants import ExitCodes


def format_path(path: Sequence[Any]) -> str:
    """Render a dependency chain as ``a -> b -> c``."""
    return " -> ".join(str(p) for p in path)


class ResolutionError(Exception):
    """Base class for all fatal resolution errors."""

    exit_code = ExitCodes.FILE_ERROR
    kind = "error"

    def __init__(self, message: str, coordinate: Any = None, path: Sequence[Any] = ()):
        self.message = message
        self.coordinate = coordinate
        self.path: Tuple[Any, ...] = tuple(path)
        # Attached by the driver when the run fails; diagnostics only.
        self.partial_graph: Any = None
        super().__init__(self._render())

    def _render(self) -> str:
        text = self.message
        if self.coordinate is not None:
            text = f"{text} [{self.coordinate}]"
        if self.path:
            text = f"{text} (path: {format_path(self.path)})"
        return text

    def with_path(self, path: Sequence[Any]) -> "ResolutionError":
        """Fill in the dependency chain if the raiser did not know it."""
        if not self.path and path:
            self.path = tuple(path)
            self.args = (self._render(),)
        return self

    def to_dict(self) -> dict:
        """Serializable form used by the JSON diagnostics output."""
        return {
            "kind": self.kind,
            "message": self.message,
            "coordinate": None if self.coordinate is None else str(self.coordinate),
            "path": [str(p) for p in self.path],
        }


class ManifestNotFound(ResolutionError):
    """The manifest source could not supply a manifest for a coordinate."""

    exit_code = ExitCodes.NOT_FOUND
    kind = "manifest_not_found"


class ManifestUnavailable(ManifestNotFound):
    """The manifest source failed for a transport reason (I/O, deadline)."""

    kind = "manifest_unavailable"


class ManifestParseError(ResolutionError):
    """A manifest was supplied but is malformed."""

    exit_code = ExitCodes.PARSE_ERROR
    kind = "manifest_parse_error"

    def __init__(
        self,
        message: str,
        coordinate: Any = None,
        path: Sequence[Any] = (),
        *,
        source_name: Optional[str] = None,
        line: Optional[int] = None,
        field: Optional[str] = None,
    ):
        self.source_name = source_name
        self.line = line
        self.field = field
        super().__init__(message, coordinate, path)

    def _render(self) -> str:
        where = []
        if self.source_name:
            where.append(self.source_name)
        if self.line is not None:
            where.append(f"line {self.line}")
        if self.field:
            where.append(f"field {self.field}")
        text = super()._render()
        return f"{text} at {', '.join(where)}" if where else text

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"source": self.source_name, "line": self.line, "field": self.field})
        return data


class UnresolvableVersion(ResolutionError):
    """No managed entry and no explicit version exist for a dependency."""

    exit_code = ExitCodes.UNRESOLVABLE_VERSION
    kind = "unresolvable_version"


class CyclicDependencyError(ResolutionError):
    """A module is reachable from itself."""

    exit_code = ExitCodes.CYCLE
    kind = "cyclic_dependency"


class Cancelled(ResolutionError):
    """The resolution was cancelled before completing."""

    exit_code = ExitCodes.CANCELLED
    kind = "cancelled"
