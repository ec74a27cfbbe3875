"""Synchronous document rendering with per-cluster change detection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Container, Dict, List, Mapping, Optional, Tuple

from .errors import MissingReferenceWarning
from .fetcher import ResourceCache
from .formatter import CiteContext, CiteFormatter, OutputFormat, Position
from .locale import TermResolver, build_resolver, is_valid_lang
from .log import get_logger
from .models import (
    BibEntry,
    Cite,
    ClusterId,
    Locator,
    NotePosition,
    Reference,
    RenderedDocument,
    note_bounds,
)
from .store import ClusterSnapshot
from .style import Element, Style

logger = get_logger(__name__)

MISSING_REFERENCE = "???"


@dataclass(frozen=True)
class CitePlacement:
    """Where a cite sits in the document and how it relates to earlier cites."""

    cluster_id: ClusterId
    index: int
    position: Position
    near_note: bool
    citation_number: int
    first_note: Optional[int]


def _locator_key(locator: Optional[Locator]) -> Optional[Tuple[str, str]]:
    return (locator.label, locator.value) if locator else None


def classify(ordered: List[Tuple[ClusterId, Tuple[Cite, ...], Optional[NotePosition]]],
             near_note_distance: int = 5,
             known: Optional[Container[str]] = None) -> Dict[Tuple[ClusterId, int], CitePlacement]:
    """Assign first/subsequent/ibid positions to every cite in document order.

    Cites of references outside ``known`` get no placement and are not numbered.
    """
    placements: Dict[Tuple[ClusterId, int], CitePlacement] = {}
    numbers: Dict[str, int] = {}
    first_notes: Dict[str, Optional[int]] = {}
    last_notes: Dict[str, int] = {}
    previous: Optional[Cite] = None
    previous_cluster_size = 0
    for cluster_id, cites, note in ordered:
        start = note_bounds(note)[0] if note is not None else None
        for index, cite in enumerate(cites):
            ref_id = cite.ref_id
            if known is not None and ref_id not in known:
                previous = cite
                continue
            if ref_id not in numbers:
                numbers[ref_id] = len(numbers) + 1
                first_notes[ref_id] = start
                position = Position.FIRST
            else:
                adjacent = previous is not None and previous.ref_id == ref_id and (
                    index > 0 or previous_cluster_size == 1
                )
                if not adjacent:
                    position = Position.SUBSEQUENT
                else:
                    current_loc = _locator_key(cite.locator)
                    previous_loc = _locator_key(previous.locator)  # type: ignore[union-attr]
                    if current_loc == previous_loc:
                        position = Position.IBID
                    elif current_loc is None:
                        position = Position.SUBSEQUENT
                    else:
                        position = Position.IBID_WITH_LOCATOR
            near = (
                start is not None
                and ref_id in last_notes
                and start - last_notes[ref_id] <= near_note_distance
            )
            placements[(cluster_id, index)] = CitePlacement(
                cluster_id=cluster_id,
                index=index,
                position=position,
                near_note=near,
                citation_number=numbers[ref_id],
                first_note=first_notes[ref_id],
            )
            if start is not None:
                last_notes[ref_id] = start
            previous = cite
        if cites:
            previous_cluster_size = len(cites)
    return placements


class RenderEngine:
    """Renders a full document from a style, the resource cache and store snapshots."""

    def __init__(self, style: Style, output_format: "str | OutputFormat" = OutputFormat.HTML):
        self.style = style
        self.output_format = OutputFormat.parse(output_format)

    def _macros(self, cache: ResourceCache) -> Dict[str, Tuple[Element, ...]]:
        macros: Dict[str, Tuple[Element, ...]] = {}
        for name in self.style.includes:
            module = cache.modules.get(name)
            if module is not None:
                for macro, children in module.macros.items():
                    macros.setdefault(macro, children)
        macros.update(self.style.macros)
        return macros

    def _terms(self, reference: Optional[Reference], cache: ResourceCache,
               resolvers: Dict[Optional[str], TermResolver]) -> TermResolver:
        lang = reference.language if reference is not None else None
        if lang is not None and not is_valid_lang(lang):
            lang = None
        if lang not in resolvers:
            resolvers[lang] = build_resolver(
                lang, self.style.default_locale, self.style.locales, cache.locales
            )
        return resolvers[lang]

    def render(
        self,
        cache: ResourceCache,
        references: Mapping[str, Reference],
        snapshot: ClusterSnapshot,
        previous: Optional[RenderedDocument] = None,
    ) -> RenderedDocument:
        formatter = CiteFormatter(self.output_format, self._macros(cache))
        resolvers: Dict[Optional[str], TermResolver] = {}
        ordered = [(cluster.id, cluster.cites, note) for cluster, note in snapshot.ordered()]
        placements = classify(ordered, self.style.near_note_distance, references)

        clusters: Dict[ClusterId, str] = {}
        warnings: List[MissingReferenceWarning] = []
        cited: List[str] = []
        layout = self.style.citation
        for cluster_id, cites, _note in ordered:
            pieces = []
            last_ctx: Optional[CiteContext] = None
            for index, cite in enumerate(cites):
                reference = references.get(cite.ref_id)
                if reference is None:
                    warning = MissingReferenceWarning(cluster_id, cite.ref_id)
                    logger.warning("%s", warning)
                    warnings.append(warning)
                    pieces.append(formatter.placeholder(cite, MISSING_REFERENCE))
                    continue
                if cite.ref_id not in cited:
                    cited.append(cite.ref_id)
                placement = placements[(cluster_id, index)]
                ctx = CiteContext(
                    reference=reference,
                    cite=cite,
                    terms=self._terms(reference, cache, resolvers),
                    position=placement.position,
                    near_note=placement.near_note,
                    citation_number=placement.citation_number,
                    first_note=placement.first_note,
                )
                pieces.append(formatter.render_cite(layout, ctx))
                last_ctx = ctx
            clusters[cluster_id] = formatter.join_cluster(layout, pieces, last_ctx)

        order = tuple(cluster_id for cluster_id, _cites, _note in ordered)
        touched = {
            cluster_id: previous is None
            or cluster_id not in previous.clusters
            or previous.clusters[cluster_id] != text
            for cluster_id, text in clusters.items()
        }
        return RenderedDocument(
            clusters=clusters,
            order=order,
            touched=touched,
            bibliography=self._bibliography(formatter, cache, references, cited, resolvers),
            warnings=tuple(warnings),
        )

    def _bibliography(
        self,
        formatter: CiteFormatter,
        cache: ResourceCache,
        references: Mapping[str, Reference],
        cited: List[str],
        resolvers: Dict[Optional[str], TermResolver],
    ) -> Tuple[BibEntry, ...]:
        layout = self.style.bibliography
        if layout is None:
            return ()
        entries = []
        for number, ref_id in enumerate(cited, start=1):
            reference = references[ref_id]
            ctx = CiteContext(
                reference=reference,
                cite=Cite(ref_id=ref_id),
                terms=self._terms(reference, cache, resolvers),
                citation_number=number,
            )
            text = formatter.render_entry(layout, ctx)
            if text:
                entries.append(BibEntry(ref_id=ref_id, text=text))
        return tuple(entries)
