"""Host-facing orchestrator tying validation, fetching, stores and rendering together."""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .dependencies import ResourceDependencyAnalyzer
from .errors import StyleValidationError, UnknownCluster
from .fetcher import FetchReport, FetchScheduler, ResourceCache, ResourceFetcher
from .formatter import OutputFormat
from .log import get_logger
from .models import (
    BibEntry,
    Cluster,
    ClusterId,
    ClusterPosition,
    Diagnostic,
    Reference,
    RenderedDocument,
    ResourceRequest,
)
from .render import RenderEngine
from .store import ClusterSnapshot, ClusterStore, ReferenceStore
from .style import Style
from .validation import DocumentKind, ValidationReporter

logger = get_logger(__name__)


class Driver:
    """Coordinates a citation processor for one style and one host.

    Construction validates the style and fails with StyleValidationError on any
    error diagnostic. Resources are fetched only when the host awaits
    :meth:`fetch_all`; everything else is synchronous.
    """

    def __init__(
        self,
        style_text: str,
        fetcher: ResourceFetcher,
        output_format: "str | OutputFormat" = OutputFormat.HTML,
        reporter: Optional[ValidationReporter] = None,
    ):
        self.reporter = reporter or ValidationReporter()
        parsed = self.reporter.parse(style_text, DocumentKind.STYLE)
        if not parsed.ok or parsed.root is None:
            raise StyleValidationError(parsed.diagnostics)
        self.warnings: List[Diagnostic] = list(parsed.diagnostics)
        for diagnostic in self.warnings:
            logger.warning("style line %d: %s", diagnostic.line, diagnostic.message)

        self.style = Style.from_node(parsed.root)
        self.engine = RenderEngine(self.style, output_format)
        self.references = ReferenceStore()
        self.clusters = ClusterStore()
        self.cache = ResourceCache()
        self.analyzer = ResourceDependencyAnalyzer(self.style)
        self.scheduler = FetchScheduler(fetcher, self.cache, self.reporter)
        self._last: Optional[RenderedDocument] = None

    @property
    def output_format(self) -> OutputFormat:
        return self.engine.output_format

    # references

    def insert_references(self, references: Iterable[Reference]) -> None:
        self.references.insert_references(references)

    def remove_reference(self, ref_id: str) -> None:
        self.references.remove_reference(ref_id)

    def reset_references(self, references: Iterable[Reference]) -> None:
        self.references.reset_references(references)

    # clusters

    def init_clusters(self, clusters: Iterable[Cluster]) -> None:
        self.clusters.init_clusters(clusters)

    def insert_cluster(self, cluster: Cluster, before_id: Optional[ClusterId] = None) -> None:
        self.clusters.insert_cluster(cluster, before_id)

    def remove_cluster(self, cluster_id: ClusterId) -> None:
        self.clusters.remove_cluster(cluster_id)

    def replace_cluster(self, cluster: Cluster) -> None:
        self.clusters.replace_cluster(cluster)

    def set_cluster_order(self, positions: Iterable[ClusterPosition]) -> None:
        self.clusters.set_cluster_order(positions)

    def cluster_order(self) -> List[ClusterPosition]:
        return self.clusters.cluster_order()

    # resources

    def required_resources(self) -> List[ResourceRequest]:
        return self.analyzer.required(self.references.languages())

    def to_fetch(self) -> List[ResourceRequest]:
        """Resources the current references and style need that are not cached yet."""
        return self.scheduler.pending(self.required_resources())

    async def fetch_all(self) -> FetchReport:
        return await self.scheduler.run(self.required_resources())

    # rendering

    def _render(self, snapshot: ClusterSnapshot, previous: Optional[RenderedDocument]) -> RenderedDocument:
        return self.engine.render(self.cache, self.references.snapshot(), snapshot, previous)

    def render(self) -> RenderedDocument:
        """Render the whole document and make it the baseline for touched flags."""
        document = self._render(self.clusters.snapshot, self._last)
        self._last = document
        return document

    def built_cluster(self, cluster_id: ClusterId) -> str:
        if cluster_id not in self.clusters:
            raise UnknownCluster(cluster_id)
        return self._render(self.clusters.snapshot, None).clusters[cluster_id]

    def preview_cluster(self, cluster: Cluster, before_id: Optional[ClusterId] = None) -> str:
        """Text ``cluster`` would render as if inserted (or replaced), leaving the store alone."""
        if cluster.id in self.clusters:
            candidate = self.clusters.with_replacement(cluster)
        else:
            candidate = self.clusters.with_cluster(cluster, before_id)
        return self._render(candidate, None).clusters[cluster.id]

    def bibliography(self) -> Tuple[BibEntry, ...]:
        return self._render(self.clusters.snapshot, None).bibliography
