"""Work out which locales and modules a style needs before it can render."""
from __future__ import annotations

from typing import Iterable, List

from .locale import default_chain, fallback_chain
from .models import ResourceRequest
from .style import Style


class ResourceDependencyAnalyzer:
    """Computes the resource requests for a style and a set of reference languages.

    Reference languages are expanded into their fallback chains in sorted
    order, followed by the style's default locale and the root locale, then one
    module request per ``<include>`` in document order. The result has no
    duplicates and depends only on its inputs.
    """

    def __init__(self, style: Style):
        self.style = style

    def required(self, languages: Iterable[str] = ()) -> List[ResourceRequest]:
        requests: List[ResourceRequest] = []
        for lang in sorted(set(languages)):
            for tag in fallback_chain(lang, self.style.default_locale):
                _add(requests, ResourceRequest.locale(tag))
        for tag in default_chain(self.style.default_locale):
            _add(requests, ResourceRequest.locale(tag))
        for name in self.style.includes:
            _add(requests, ResourceRequest.module(name))
        return requests


def _add(requests: List[ResourceRequest], request: ResourceRequest) -> None:
    if request not in requests:
        requests.append(request)
