"""Data models shared by the stores, the scheduler and the render engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

ClusterId = Union[int, str]
NotePosition = Union[int, Tuple[int, int]]


class ResourceKind(Enum):
    """Kinds of resources the host fetches on the driver's behalf."""

    LOCALE = "locale"
    MODULE = "module"


@dataclass(frozen=True)
class ResourceRequest:
    """One locale or module the style needs before rendering."""

    kind: ResourceKind
    name: str

    @classmethod
    def locale(cls, lang: str) -> "ResourceRequest":
        return cls(ResourceKind.LOCALE, lang)

    @classmethod
    def module(cls, name: str) -> "ResourceRequest":
        return cls(ResourceKind.MODULE, name)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass
class Reference:
    """A bibliographic item keyed by id, with CSL variables in ``fields``."""

    id: str
    type: str = "book"
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def language(self) -> Optional[str]:
        value = self.fields.get("language")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def get(self, variable: str) -> Any:
        if variable == "type":
            return self.type
        return self.fields.get(variable)

    @classmethod
    def from_csl_json(cls, data: Mapping[str, Any]) -> "Reference":
        """Build a reference from a CSL-JSON object."""
        if "id" not in data:
            raise ValueError("CSL-JSON reference is missing an id")
        fields = {k: v for k, v in data.items() if k not in {"id", "type"}}
        return cls(id=str(data["id"]), type=str(data.get("type") or "book"), fields=fields)


@dataclass(frozen=True)
class Locator:
    value: str
    label: str = "page"


@dataclass(frozen=True)
class Cite:
    """One citation of a reference inside a cluster."""

    ref_id: str
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    locators: Tuple[Locator, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "locators", tuple(self.locators))

    @property
    def locator(self) -> Optional[Locator]:
        return self.locators[0] if self.locators else None


@dataclass(frozen=True)
class Cluster:
    """An in-text or footnote citation occurrence."""

    id: ClusterId
    cites: Tuple[Cite, ...] = ()
    note: Optional[NotePosition] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "cites", tuple(self.cites))
        if isinstance(self.note, list):
            object.__setattr__(self, "note", tuple(self.note))


@dataclass(frozen=True)
class ClusterPosition:
    """Explicit placement of a cluster; ``note=None`` marks an in-text cluster."""

    id: ClusterId
    note: Optional[NotePosition] = None

    def __post_init__(self) -> None:
        if isinstance(self.note, list):
            object.__setattr__(self, "note", tuple(self.note))


@dataclass(frozen=True)
class Diagnostic:
    """A positioned finding from the XML validator."""

    code: str
    message: str
    severity: str = "error"
    offset: int = 0
    line: int = 1
    column: int = 1
    excerpt: str = ""
    hint: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"


@dataclass(frozen=True)
class BibEntry:
    ref_id: str
    text: str


@dataclass(frozen=True)
class RenderedDocument:
    """Snapshot of one full render pass."""

    clusters: Mapping[ClusterId, str]
    order: Tuple[ClusterId, ...]
    touched: Mapping[ClusterId, bool]
    bibliography: Tuple[BibEntry, ...] = ()
    warnings: Tuple[Any, ...] = ()

    def changed(self) -> List[ClusterId]:
        """Cluster ids whose text differs from the previous render, in document order."""
        return [cid for cid in self.order if self.touched.get(cid)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": list(self.order),
            "clusters": [
                {"id": cid, "text": self.clusters[cid], "touched": self.touched[cid]}
                for cid in self.order
            ],
            "bibliography": [{"id": e.ref_id, "text": e.text} for e in self.bibliography],
            "warnings": [str(w) for w in self.warnings],
        }


def note_bounds(note: NotePosition) -> Tuple[int, int]:
    """Return (start, end) for an integer or pair note position."""
    if isinstance(note, tuple):
        return note[0], note[1]
    return note, note
