"""Plain-text reports for diagnostics and rendered documents."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .errors import FetchError
from .models import Diagnostic, RenderedDocument


def render_report(diagnostics: List[Diagnostic], source: Optional[str] = None) -> str:
    """Return a human-readable report summarizing validation findings."""

    header_lines = ["Style Validation Report"]
    if source:
        header_lines.append(f"Source: {source}")

    if not diagnostics:
        header_lines.append("No problems found.")
        return "\n".join(header_lines)

    errors = sum(1 for d in diagnostics if d.is_error)
    header_lines.append(f"Errors: {errors}, warnings: {len(diagnostics) - errors}")
    lines = header_lines + ["Diagnostics:"]
    for diagnostic in diagnostics:
        line = (
            f"[{diagnostic.severity.upper()}] {diagnostic.line}:{diagnostic.column} "
            f"{diagnostic.code}: {diagnostic.message}"
        )
        if diagnostic.excerpt:
            line += f" -> {diagnostic.excerpt}"
        lines.append(line)
        if diagnostic.hint:
            lines.append(f"    hint: {diagnostic.hint}")
    return "\n".join(lines)


def render_document(document: RenderedDocument, failures: Sequence[FetchError] = ()) -> str:
    lines = ["Citations"]
    for cluster_id in document.order:
        lines.append(f"  [{cluster_id}] {document.clusters[cluster_id]}")
    if document.bibliography:
        lines.append("Bibliography")
        lines.extend(f"  {entry.text}" for entry in document.bibliography)
    lines.extend(_notes("Warnings", document.warnings))
    lines.extend(_notes("Fetch failures", failures))
    return "\n".join(lines)


def _notes(title: str, items: Iterable[object]) -> List[str]:
    items = list(items)
    if not items:
        return []
    return [title] + [f"  - {item}" for item in items]
