"""Editable stores for references and citation clusters."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import OrderError, UnknownCluster
from .locale import is_valid_lang, normalize_lang
from .log import get_logger
from .models import Cluster, ClusterId, ClusterPosition, NotePosition, Reference, note_bounds

logger = get_logger(__name__)


class ReferenceStore:
    """Reference id -> reference, last write wins."""

    def __init__(self) -> None:
        self._references: Dict[str, Reference] = {}

    def insert_references(self, references: Iterable[Reference]) -> None:
        count = 0
        for reference in references:
            self._references[reference.id] = reference
            count += 1
        logger.debug("stored %d reference(s)", count)

    def remove_reference(self, ref_id: str) -> None:
        self._references.pop(ref_id, None)

    def reset_references(self, references: Iterable[Reference]) -> None:
        self._references = {}
        self.insert_references(references)

    def get(self, ref_id: str) -> Optional[Reference]:
        return self._references.get(ref_id)

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._references

    def __len__(self) -> int:
        return len(self._references)

    def languages(self) -> List[str]:
        """Distinct, normalized language tags used by stored references."""
        tags = set()
        for reference in self._references.values():
            tag = reference.language
            if tag and is_valid_lang(tag):
                tags.add(normalize_lang(tag))
            elif tag:
                logger.warning("reference %r has an invalid language tag %r", reference.id, tag)
        return sorted(tags)

    def snapshot(self) -> Dict[str, Reference]:
        return dict(self._references)


@dataclass(frozen=True)
class ClusterSnapshot:
    """One immutable version of the cluster store."""

    clusters: Tuple[Cluster, ...] = ()
    explicit_order: Optional[Tuple[ClusterPosition, ...]] = None

    def get(self, cluster_id: ClusterId) -> Optional[Cluster]:
        for cluster in self.clusters:
            if cluster.id == cluster_id:
                return cluster
        return None

    def ids(self) -> List[ClusterId]:
        return [cluster.id for cluster in self.clusters]

    def positions(self) -> List[ClusterPosition]:
        """Effective document order: explicit positions, then the rest in insertion order."""
        if self.explicit_order is None:
            return [ClusterPosition(c.id, c.note) for c in self.clusters]
        listed = {p.id for p in self.explicit_order}
        rest = [ClusterPosition(c.id, c.note) for c in self.clusters if c.id not in listed]
        return list(self.explicit_order) + rest

    def ordered(self) -> List[Tuple[Cluster, Optional[NotePosition]]]:
        by_id = {cluster.id: cluster for cluster in self.clusters}
        return [(by_id[p.id], p.note) for p in self.positions()]


def _is_note(note: object) -> bool:
    if note is None:
        return True
    if isinstance(note, bool):
        return False
    if isinstance(note, int):
        return note >= 0
    if isinstance(note, tuple) and len(note) == 2:
        start, end = note
        if start is None or end is None:
            return False
        return _is_note(start) and _is_note(end) and start <= end
    return False


def check_notes(positions: Sequence[ClusterPosition]) -> None:
    """Raise OrderError unless note numbers never decrease along ``positions``."""
    malformed = [p.id for p in positions if not _is_note(p.note)]
    if malformed:
        raise OrderError("malformed note positions", malformed)
    previous_end: Optional[int] = None
    previous_id: Optional[ClusterId] = None
    for position in positions:
        if position.note is None:
            continue
        start, end = note_bounds(position.note)
        if previous_end is not None and start < previous_end:
            raise OrderError("note numbers decrease", [previous_id, position.id])
        previous_end, previous_id = end, position.id


class ClusterStore:
    """Ordered clusters. Every mutation swaps in a new snapshot or changes nothing."""

    def __init__(self) -> None:
        self._snapshot = ClusterSnapshot()

    @property
    def snapshot(self) -> ClusterSnapshot:
        return self._snapshot

    def _commit(self, candidate: ClusterSnapshot) -> None:
        check_notes(candidate.positions())
        self._snapshot = candidate

    def __contains__(self, cluster_id: object) -> bool:
        return self._snapshot.get(cluster_id) is not None  # type: ignore[arg-type]

    def get(self, cluster_id: ClusterId) -> Cluster:
        cluster = self._snapshot.get(cluster_id)
        if cluster is None:
            raise UnknownCluster(cluster_id)
        return cluster

    def init_clusters(self, clusters: Iterable[Cluster]) -> None:
        clusters = tuple(clusters)
        seen: List[ClusterId] = []
        for cluster in clusters:
            if cluster.id in seen:
                raise ValueError(f"duplicate cluster id {cluster.id!r}")
            seen.append(cluster.id)
        self._commit(ClusterSnapshot(clusters=clusters))
        logger.debug("initialised %d cluster(s)", len(clusters))

    def with_cluster(self, cluster: Cluster, before_id: Optional[ClusterId] = None) -> ClusterSnapshot:
        """The snapshot that inserting ``cluster`` would produce, without committing it."""
        current = list(self._snapshot.clusters)
        ids = [c.id for c in current]
        if before_id is not None and before_id in ids:
            current.insert(ids.index(before_id), cluster)
        else:
            current.append(cluster)
        return ClusterSnapshot(tuple(current), self._snapshot.explicit_order)

    def with_replacement(self, cluster: Cluster) -> ClusterSnapshot:
        self.get(cluster.id)
        clusters = tuple(cluster if c.id == cluster.id else c for c in self._snapshot.clusters)
        return ClusterSnapshot(clusters, self._snapshot.explicit_order)

    def insert_cluster(self, cluster: Cluster, before_id: Optional[ClusterId] = None) -> None:
        if cluster.id in self:
            raise ValueError(f"cluster {cluster.id!r} already exists")
        self._commit(self.with_cluster(cluster, before_id))
        logger.debug("inserted cluster %r", cluster.id)

    def remove_cluster(self, cluster_id: ClusterId) -> None:
        if cluster_id not in self:
            return
        clusters = tuple(c for c in self._snapshot.clusters if c.id != cluster_id)
        order = self._snapshot.explicit_order
        if order is not None:
            order = tuple(p for p in order if p.id != cluster_id)
        self._commit(ClusterSnapshot(clusters, order))
        logger.debug("removed cluster %r", cluster_id)

    def replace_cluster(self, cluster: Cluster) -> None:
        self._commit(self.with_replacement(cluster))
        logger.debug("replaced cluster %r", cluster.id)

    def set_cluster_order(self, positions: Iterable[ClusterPosition]) -> None:
        positions = tuple(positions)
        unknown = [p.id for p in positions if p.id not in self]
        if unknown:
            raise OrderError("unknown cluster ids", unknown)
        seen: List[ClusterId] = []
        repeated: List[ClusterId] = []
        for position in positions:
            if position.id in seen:
                repeated.append(position.id)
            seen.append(position.id)
        if repeated:
            raise OrderError("cluster ids listed more than once", repeated)
        self._commit(ClusterSnapshot(self._snapshot.clusters, positions))
        logger.debug("cluster order set for %d cluster(s)", len(positions))

    def cluster_order(self) -> List[ClusterPosition]:
        return self._snapshot.positions()
