"""Error types surfaced to the host."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .models import ClusterId, Diagnostic, ResourceRequest


class DriverError(Exception):
    """Base class for errors raised by the driver."""


class StyleValidationError(DriverError):
    """The style has error-severity diagnostics and cannot be used."""

    def __init__(self, diagnostics: Sequence[Diagnostic]):
        self.diagnostics: List[Diagnostic] = list(diagnostics)
        errors = [d for d in self.diagnostics if d.is_error]
        summary = errors[0].message if errors else "invalid style"
        super().__init__(
            f"style failed validation with {len(errors)} error(s): {summary}"
        )


class FetchInProgressError(DriverError):
    """A fetch batch is already outstanding."""

    def __init__(self) -> None:
        super().__init__("a fetch batch is already in progress")


class OrderError(DriverError):
    """A cluster update would break note ordering; nothing was applied."""

    def __init__(self, message: str, ids: Iterable[ClusterId]):
        self.ids: List[ClusterId] = list(ids)
        super().__init__(f"{message}: {', '.join(str(i) for i in self.ids)}")


class UnknownCluster(DriverError):
    def __init__(self, cluster_id: ClusterId):
        self.cluster_id = cluster_id
        super().__init__(f"no cluster with id {cluster_id!r}")


class FetchError(DriverError):
    """A resource could not be fetched. Returned in batch reports, never raised."""

    def __init__(
        self,
        request: ResourceRequest,
        reason: str,
        diagnostics: Optional[Sequence[Diagnostic]] = None,
    ):
        self.request = request
        self.reason = reason
        self.diagnostics: List[Diagnostic] = list(diagnostics or [])
        super().__init__(f"could not fetch {request}: {reason}")


class MissingReferenceWarning(UserWarning):
    """A cite points at a reference id that is not loaded."""

    def __init__(self, cluster_id: ClusterId, ref_id: str):
        self.cluster_id = cluster_id
        self.ref_id = ref_id
        super().__init__(f"cluster {cluster_id!r} cites unknown reference {ref_id!r}")


__all__ = [
    "DriverError",
    "StyleValidationError",
    "FetchInProgressError",
    "OrderError",
    "UnknownCluster",
    "FetchError",
    "MissingReferenceWarning",
]
