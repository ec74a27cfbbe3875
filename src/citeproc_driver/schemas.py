"""Pydantic models for documents and requests arriving as JSON."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from .models import Cite, Cluster, ClusterPosition, Locator, Reference
from .validation import DocumentKind


class LocatorIn(BaseModel):
    value: str
    label: str = "page"


class CiteIn(BaseModel):
    id: str = Field(..., description="Reference id; may point at a reference that is not loaded")
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    locator: Optional[str] = Field(None, description="Shorthand for a single locator")
    label: str = "page"
    locators: List[LocatorIn] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_domain(self) -> Cite:
        locators = [Locator(value=loc.value, label=loc.label) for loc in self.locators]
        if self.locator:
            locators.insert(0, Locator(value=self.locator, label=self.label))
        return Cite(ref_id=self.id, prefix=self.prefix, suffix=self.suffix, locators=tuple(locators))


NoteIn = Optional[Union[int, Tuple[int, int]]]


class ClusterIn(BaseModel):
    id: Union[int, str]
    cites: List[CiteIn] = Field(default_factory=list)
    note: NoteIn = None

    def to_domain(self) -> Cluster:
        return Cluster(id=self.id, cites=tuple(c.to_domain() for c in self.cites), note=self.note)


class PositionIn(BaseModel):
    id: Union[int, str]
    note: NoteIn = None

    def to_domain(self) -> ClusterPosition:
        return ClusterPosition(id=self.id, note=self.note)


class DocumentIn(BaseModel):
    """References (CSL-JSON), clusters and an optional explicit order."""

    references: List[Dict[str, Any]] = Field(default_factory=list)
    clusters: List[ClusterIn] = Field(default_factory=list)
    order: Optional[List[PositionIn]] = None

    @field_validator("references")
    @classmethod
    def require_ids(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, item in enumerate(value):
            if "id" not in item:
                raise ValueError(f"reference #{index} has no id")
        return value

    def reference_objects(self) -> List[Reference]:
        return [Reference.from_csl_json(item) for item in self.references]

    def cluster_objects(self) -> List[Cluster]:
        return [cluster.to_domain() for cluster in self.clusters]

    def order_positions(self) -> Optional[List[ClusterPosition]]:
        if self.order is None:
            return None
        return [position.to_domain() for position in self.order]


class RenderRequest(DocumentIn):
    style: str = Field(..., description="CSL style XML")
    format: str = "html"
    locales: Dict[str, str] = Field(default_factory=dict, description="Locale XML by language tag")
    modules: Dict[str, str] = Field(default_factory=dict, description="Module XML by name")


class ValidateRequest(BaseModel):
    text: str
    kind: str = "style"

    @field_validator("kind")
    @classmethod
    def known_kind(cls, value: str) -> str:
        kinds = {k.value for k in DocumentKind}
        if value not in kinds:
            raise ValueError(f"kind must be one of {', '.join(sorted(kinds))}")
        return value

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)
