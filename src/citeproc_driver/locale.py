"""Language tags, locale fallback chains and locale term lookup."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .validation import Node

ROOT_LANG = "en-US"

# A regional tag with no locale of its own falls back to the language's main dialect.
PRIMARY_DIALECTS = {
    "en": "en-US",
    "de": "de-DE",
    "fr": "fr-FR",
    "pt": "pt-PT",
    "zh": "zh-CN",
}

FORM_FALLBACK = {
    "long": ("long",),
    "short": ("short", "long"),
    "verb": ("verb", "long"),
    "verb-short": ("verb-short", "verb", "long"),
    "symbol": ("symbol", "short", "long"),
}

_ISO_TAG = re.compile(r"^(?P<lang>[A-Za-z]{2,3})(?:[-_](?P<region>[A-Za-z]{2}))?$")
_PRIVATE_TAG = re.compile(r"^(?:x-[A-Za-z0-9]{1,8}|i-[A-Za-z0-9-]+)$")


def normalize_lang(tag: str) -> str:
    """Return the canonical spelling of a language tag (``fr_fr`` -> ``fr-FR``)."""
    tag = (tag or "").strip()
    match = _ISO_TAG.match(tag)
    if match:
        lang = match.group("lang").lower()
        region = match.group("region")
        return f"{lang}-{region.upper()}" if region else lang
    if _PRIVATE_TAG.match(tag):
        return tag
    raise ValueError(f"invalid language tag {tag!r}")


def is_valid_lang(tag: str) -> bool:
    try:
        normalize_lang(tag)
    except ValueError:
        return False
    return True


def split_lang(tag: str) -> Tuple[str, Optional[str]]:
    match = _ISO_TAG.match(tag)
    if not match:
        return tag, None
    region = match.group("region")
    return match.group("lang").lower(), region.upper() if region else None


def _dedupe(tags: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for tag in tags:
        if tag not in seen:
            seen.append(tag)
    return seen


def fallback_chain(tag: str, default_locale: str = ROOT_LANG) -> List[str]:
    """Every locale tag consulted, most specific first, when rendering in ``tag``."""
    tag = normalize_lang(tag)
    chain = [tag]
    lang, region = split_lang(tag)
    if region:
        chain.append(lang)
    dialect = PRIMARY_DIALECTS.get(lang)
    if dialect:
        chain.append(dialect)
    chain.extend(default_chain(default_locale))
    return _dedupe(chain)


def default_chain(default_locale: str) -> List[str]:
    """Locales consulted for text with no language of its own."""
    tag = normalize_lang(default_locale)
    lang, _ = split_lang(tag)
    chain = [tag]
    dialect = PRIMARY_DIALECTS.get(lang)
    if dialect:
        chain.append(dialect)
    chain.append(ROOT_LANG)
    return _dedupe(chain)


@dataclass(frozen=True)
class Term:
    single: str
    multiple: Optional[str] = None

    def text(self, plural: bool = False) -> str:
        if plural and self.multiple is not None:
            return self.multiple
        return self.single


@dataclass
class Locale:
    """Terms for one language; ``lang`` is None for an untagged inline locale."""

    lang: Optional[str]
    terms: Dict[Tuple[str, str], Term] = field(default_factory=dict)

    def term(self, name: str, form: str = "long", plural: bool = False) -> Optional[str]:
        found = self.terms.get((name, form))
        return found.text(plural) if found is not None else None

    def merge(self, other: "Locale") -> None:
        self.terms.update(other.terms)

    @classmethod
    def from_node(cls, node: "Node") -> "Locale":
        lang = node.attrs.get("lang")
        terms: Dict[Tuple[str, str], Term] = {}
        for group in node.find_all("terms"):
            for term_node in group.find_all("term"):
                key = (term_node.attrs["name"], term_node.attrs.get("form", "long"))
                single = term_node.first("single")
                multiple = term_node.first("multiple")
                if single is not None or multiple is not None:
                    terms[key] = Term(
                        single=(single.text if single is not None else "").strip(),
                        multiple=multiple.text.strip() if multiple is not None else None,
                    )
                else:
                    terms[key] = Term(single=term_node.text.strip())
        return cls(lang=normalize_lang(lang) if lang else None, terms=terms)


class TermResolver:
    """Looks terms up across an ordered list of locales."""

    def __init__(self, sources: Sequence[Locale]):
        self.sources = list(sources)

    def lookup(self, name: str, form: str = "long", plural: bool = False) -> str:
        for candidate in FORM_FALLBACK.get(form, (form, "long")):
            for locale in self.sources:
                text = locale.term(name, candidate, plural)
                if text is not None:
                    return text
        return ""


def build_resolver(
    tag: Optional[str],
    default_locale: str,
    inline: Sequence[Locale],
    cached: Mapping[str, Locale],
) -> TermResolver:
    """Order term sources for ``tag``: inline style locales first, then fetched ones."""
    chain = fallback_chain(tag, default_locale) if tag else default_chain(default_locale)
    tag = normalize_lang(tag) if tag else normalize_lang(default_locale)
    lang, _ = split_lang(tag)
    sources: List[Locale] = []
    for wanted in _dedupe([tag, lang]):
        sources.extend(loc for loc in inline if loc.lang == wanted)
    sources.extend(loc for loc in inline if loc.lang is None)
    for candidate in chain:
        if candidate in cached:
            sources.append(cached[candidate])
    return TermResolver(sources)
