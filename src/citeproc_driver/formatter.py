"""Render style elements for a single cite into an output format."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence, Tuple
from xml.sax.saxutils import escape as xml_escape

from .locale import TermResolver
from .log import get_logger
from .models import Cite, Reference
from .style import (
    Choose,
    Condition,
    Date,
    Element,
    Formatting,
    Group,
    Label,
    Layout,
    NameOptions,
    Names,
    Number,
    Text,
)

logger = get_logger(__name__)

_RAW_DATE = re.compile(r"^\s*(-?\d{1,4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?")
_PLURAL_LOCATOR = re.compile(r"[-–,&]")
_SMALL_WORDS = {"a", "an", "and", "as", "at", "but", "by", "for", "in", "of", "on", "or", "the", "to"}


class OutputFormat(Enum):
    PLAIN = "plain"
    HTML = "html"
    RTF = "rtf"

    @classmethod
    def parse(cls, value: "str | OutputFormat") -> "OutputFormat":
        if isinstance(value, OutputFormat):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(f.value for f in cls)
            raise ValueError(f"unknown output format {value!r} (expected one of {supported})") from None

    def escape(self, text: str) -> str:
        if self is OutputFormat.HTML:
            return xml_escape(text)
        if self is OutputFormat.RTF:
            out = []
            for ch in text.replace("\\", "\\\\").replace("{", "\\{").replace("}", "\\}"):
                code = ord(ch)
                if code < 128:
                    out.append(ch)
                    continue
                for unit in _utf16_units(code):
                    out.append(f"\\u{unit - 65536 if unit > 32767 else unit}?")
            return "".join(out)
        return text

    def italic(self, text: str) -> str:
        if self is OutputFormat.HTML:
            return f"<i>{text}</i>"
        if self is OutputFormat.RTF:
            return f"{{\\i {text}}}"
        return text

    def bold(self, text: str) -> str:
        if self is OutputFormat.HTML:
            return f"<b>{text}</b>"
        if self is OutputFormat.RTF:
            return f"{{\\b {text}}}"
        return text


def _utf16_units(code: int) -> Tuple[int, ...]:
    if code <= 0xFFFF:
        return (code,)
    code -= 0x10000
    return 0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)


class Position(Enum):
    FIRST = "first"
    SUBSEQUENT = "subsequent"
    IBID = "ibid"
    IBID_WITH_LOCATOR = "ibid-with-locator"


@dataclass
class CiteContext:
    """Everything known about one cite at render time."""

    reference: Reference
    cite: Cite
    terms: TermResolver
    position: Position = Position.FIRST
    near_note: bool = False
    citation_number: int = 1
    first_note: Optional[int] = None
    macro_stack: List[str] = field(default_factory=list)


class Rendered(NamedTuple):
    text: str
    called: bool = False
    produced: bool = False


EMPTY = Rendered("")


class CiteFormatter:
    """Walks a layout for one cite; dispatches on element type."""

    def __init__(self, output_format: OutputFormat, macros: Mapping[str, Tuple[Element, ...]]):
        self.fmt = output_format
        self.macros = macros

    def render_cite(self, layout: Layout, ctx: CiteContext) -> str:
        body = self._sequence(layout.children, ctx).text
        if not body:
            return ""
        return self._affixed(ctx.cite.prefix) + body + self._affixed(ctx.cite.suffix)

    def render_entry(self, layout: Layout, ctx: CiteContext) -> str:
        body = self._sequence(layout.children, ctx).text
        return self._decorate(layout.formatting, body, ctx)

    def join_cluster(self, layout: Layout, pieces: Sequence[str], ctx: Optional[CiteContext] = None) -> str:
        body = self.fmt.escape(layout.delimiter).join(p for p in pieces if p)
        return self._decorate(layout.formatting, body, ctx)

    def placeholder(self, cite: Cite, marker: str) -> str:
        return self._affixed(cite.prefix) + self.fmt.escape(marker) + self._affixed(cite.suffix)

    def _affixed(self, affix: Optional[str]) -> str:
        return self.fmt.escape(affix) if affix else ""

    # element dispatch

    def render(self, element: Element, ctx: CiteContext) -> Rendered:
        handler = getattr(self, f"_render_{type(element).__name__.lower()}")
        return handler(element, ctx)

    def _sequence(self, children: Sequence[Element], ctx: CiteContext, delimiter: str = "") -> Rendered:
        results = [self.render(child, ctx) for child in children]
        text = self.fmt.escape(delimiter).join(r.text for r in results if r.text)
        return Rendered(
            text,
            called=any(r.called for r in results),
            produced=any(r.produced for r in results),
        )

    def _render_text(self, element: Text, ctx: CiteContext) -> Rendered:
        if element.variable:
            value = self._plain(self.variable(ctx, element.variable, element.form))
            return Rendered(self._leaf(element.formatting, value, ctx), called=True, produced=bool(value))
        if element.term:
            value = ctx.terms.lookup(element.term, element.form, element.plural)
            return Rendered(self._leaf(element.formatting, value, ctx))
        if element.macro:
            return self._render_macro(element, ctx)
        return Rendered(self._leaf(element.formatting, element.value or "", ctx))

    def _render_macro(self, element: Text, ctx: CiteContext) -> Rendered:
        name = element.macro or ""
        children = self.macros.get(name)
        if children is None:
            logger.warning("macro %r is not available; rendering it empty", name)
            return Rendered("", called=True)
        if name in ctx.macro_stack:
            logger.warning("macro %r calls itself; rendering it empty", name)
            return Rendered("", called=True)
        ctx.macro_stack.append(name)
        try:
            inner = self._sequence(children, ctx)
        finally:
            ctx.macro_stack.pop()
        return inner._replace(text=self._decorate(element.formatting, inner.text, ctx))

    def _render_number(self, element: Number, ctx: CiteContext) -> Rendered:
        value = self._plain(self.variable(ctx, element.variable))
        return Rendered(self._leaf(element.formatting, value, ctx), called=True, produced=bool(value))

    def _render_label(self, element: Label, ctx: CiteContext) -> Rendered:
        value = self._plain(self.variable(ctx, element.variable))
        if not value:
            return EMPTY
        term = element.variable
        if element.variable == "locator" and ctx.cite.locator is not None:
            term = ctx.cite.locator.label
        if element.plural == "always":
            plural = True
        elif element.plural == "never":
            plural = False
        else:
            plural = bool(_PLURAL_LOCATOR.search(value))
        return Rendered(self._leaf(element.formatting, ctx.terms.lookup(term, element.form, plural), ctx))

    def _render_group(self, element: Group, ctx: CiteContext) -> Rendered:
        inner = self._sequence(element.children, ctx, element.delimiter)
        if inner.called and not inner.produced:
            return Rendered("", called=True)
        return inner._replace(text=self._decorate(element.formatting, inner.text, ctx))

    def _render_names(self, element: Names, ctx: CiteContext) -> Rendered:
        rendered = []
        for variable in element.variables:
            names = ctx.reference.get(variable)
            if not names:
                continue
            if not isinstance(names, list):
                names = [names]
            text = self.fmt.escape(self._join_names(names, element.name, ctx))
            if element.label is not None:
                label = ctx.terms.lookup(variable, element.label.form, len(names) > 1)
                text += self._leaf(element.label.formatting, label, ctx)
            rendered.append(text)
        if rendered:
            body = self.fmt.escape(element.delimiter).join(rendered)
            return Rendered(self._decorate(element.formatting, body, ctx), called=True, produced=True)
        for candidate in element.substitute:
            result = self.render(candidate, ctx)
            if result.text:
                return Rendered(result.text, called=True, produced=True)
        return Rendered("", called=True)

    def _join_names(self, names: List[Any], options: NameOptions, ctx: CiteContext) -> str:
        formatted = [self._format_name(name, options) for name in names]
        formatted = [name for name in formatted if name]
        if options.and_ and len(formatted) > 1:
            if options.and_ == "symbol":
                conjunction = "&"
            else:
                conjunction = ctx.terms.lookup("and") or "and"
            head = options.delimiter.join(formatted[:-1])
            joiner = options.delimiter if len(formatted) > 2 else " "
            return f"{head}{joiner}{conjunction} {formatted[-1]}"
        return options.delimiter.join(formatted)

    @staticmethod
    def _format_name(name: Any, options: NameOptions) -> str:
        if isinstance(name, str):
            return name
        if not isinstance(name, dict):
            return str(name)
        if name.get("literal"):
            return str(name["literal"])
        family = str(name.get("family", "")).strip()
        given = str(name.get("given", "")).strip()
        if options.form == "short" or not given:
            return family
        if options.initialize_with is not None:
            parts = given.replace("-", " ").split()
            given = "".join(f"{part[0]}{options.initialize_with}" for part in parts).strip()
        return f"{given} {family}".strip()

    def _render_date(self, element: Date, ctx: CiteContext) -> Rendered:
        value = ctx.reference.get(element.variable)
        parsed = _parse_date(value)
        if parsed is None:
            return Rendered("", called=True)
        if isinstance(parsed, str):
            return Rendered(self._leaf(element.formatting, parsed, ctx), called=True, produced=True)
        year, month, day = parsed
        pieces = []
        parts = element.parts or ()
        if not parts:
            pieces.append(self.fmt.escape(str(year)))
        for part in parts:
            text = ""
            if part.name == "year" and year is not None:
                text = str(year)
            elif part.name == "month" and month:
                if part.form in {"long", "short"}:
                    text = ctx.terms.lookup(f"month-{month:02d}", part.form) or str(month)
                elif part.form == "numeric-leading-zeros":
                    text = f"{month:02d}"
                else:
                    text = str(month)
            elif part.name == "day" and day:
                if part.form == "numeric-leading-zeros":
                    text = f"{day:02d}"
                elif part.form == "ordinal":
                    text = f"{day}{ctx.terms.lookup('ordinal')}"
                else:
                    text = str(day)
            if text:
                pieces.append(self._leaf(part.formatting, text, ctx))
        body = self.fmt.escape(element.delimiter).join(pieces)
        return Rendered(self._decorate(element.formatting, body, ctx), called=True, produced=bool(body))

    def _render_choose(self, element: Choose, ctx: CiteContext) -> Rendered:
        for condition, children in element.branches:
            if self._matches(condition, ctx):
                return self._sequence(children, ctx)
        return self._sequence(element.otherwise, ctx)

    def _matches(self, condition: Condition, ctx: CiteContext) -> bool:
        if not condition.tests:
            return False
        results = [self._test(key, value, ctx) for key, value in condition.tests]
        if condition.match == "any":
            return any(results)
        if condition.match == "none":
            return not any(results)
        return all(results)

    def _test(self, key: str, value: str, ctx: CiteContext) -> bool:
        if key == "position":
            return _position_matches(value, ctx)
        if key == "variable":
            return bool(self._plain(self.variable(ctx, value)))
        if key == "type":
            return ctx.reference.type == value
        if key == "locator":
            locator = ctx.cite.locator
            return locator is not None and locator.label == value
        if key == "is-numeric":
            return self._plain(self.variable(ctx, value)).strip().isdigit()
        return False

    # variables and decoration

    def variable(self, ctx: CiteContext, name: str, form: str = "long") -> Any:
        locator = ctx.cite.locator
        if name == "locator":
            return locator.value if locator else None
        if name == "label":
            return locator.label if locator else None
        if name == "citation-number":
            return ctx.citation_number
        if name == "first-reference-note-number":
            return ctx.first_note
        if form == "short":
            short = ctx.reference.get(f"{name}-short")
            if short:
                return short
        return ctx.reference.get(name)

    def _plain(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, dict):
            parsed = _parse_date(value)
            if isinstance(parsed, str):
                return parsed
            if parsed is not None:
                return str(parsed[0])
            return str(value.get("text", ""))
        if isinstance(value, list):
            if all(isinstance(item, dict) for item in value):
                return self._join_names(value, NameOptions(), _NO_TERMS_CONTEXT)
            return " ".join(self._plain(item) for item in value)
        return str(value)

    def _leaf(self, formatting: Formatting, value: str, ctx: Optional[CiteContext]) -> str:
        if not value:
            return ""
        return self._decorate(formatting, self.fmt.escape(_apply_case(value, formatting.text_case)), ctx)

    def _decorate(self, formatting: Formatting, content: str, ctx: Optional[CiteContext]) -> str:
        if not content:
            return ""
        if formatting.font_style in {"italic", "oblique"}:
            content = self.fmt.italic(content)
        if formatting.font_weight == "bold":
            content = self.fmt.bold(content)
        if formatting.quotes:
            open_quote = ctx.terms.lookup("open-quote") if ctx else ""
            close_quote = ctx.terms.lookup("close-quote") if ctx else ""
            content = (
                self.fmt.escape(open_quote or "“") + content + self.fmt.escape(close_quote or "”")
            )
        return self.fmt.escape(formatting.prefix) + content + self.fmt.escape(formatting.suffix)


_NO_TERMS_CONTEXT = CiteContext(reference=Reference(id=""), cite=Cite(ref_id=""), terms=TermResolver([]))


def _position_matches(value: str, ctx: CiteContext) -> bool:
    position = ctx.position
    if value == "first":
        return position is Position.FIRST
    if value == "subsequent":
        return position is not Position.FIRST
    if value == "ibid":
        return position in (Position.IBID, Position.IBID_WITH_LOCATOR)
    if value == "ibid-with-locator":
        return position is Position.IBID_WITH_LOCATOR
    if value == "near-note":
        return position is not Position.FIRST and ctx.near_note
    return False


def _parse_date(value: Any) -> "Optional[str | Tuple[Optional[int], Optional[int], Optional[int]]]":
    if value is None or value == "":
        return None
    raw: Optional[str] = None
    if isinstance(value, dict):
        if value.get("literal"):
            return str(value["literal"])
        parts = value.get("date-parts")
        if parts and isinstance(parts, list) and isinstance(parts[0], list) and parts[0]:
            try:
                first = [int(p) for p in parts[0][:3]]
            except (TypeError, ValueError):
                logger.warning("ignoring malformed date-parts %r", parts[0])
                return value.get("raw") or " ".join(str(p) for p in parts[0] if p is not None) or None
            first += [None] * (3 - len(first))
            return first[0], first[1], first[2]
        raw = value.get("raw")
    elif isinstance(value, (int, str)):
        raw = str(value)
    if not raw:
        return None
    match = _RAW_DATE.match(raw)
    if not match:
        return raw
    year, month, day = match.groups()
    return int(year), int(month) if month else None, int(day) if day else None


def _apply_case(value: str, text_case: Optional[str]) -> str:
    if not text_case:
        return value
    if text_case == "lowercase":
        return value.lower()
    if text_case == "uppercase":
        return value.upper()
    if text_case == "capitalize-first":
        return value[:1].upper() + value[1:]
    if text_case == "capitalize-all":
        return " ".join(word[:1].upper() + word[1:] for word in value.split(" "))
    if text_case == "sentence":
        return value[:1].upper() + value[1:].lower()
    if text_case == "title":
        words = value.split(" ")
        return " ".join(
            word if i and word.lower() in _SMALL_WORDS else word[:1].upper() + word[1:]
            for i, word in enumerate(words)
        )
    return value


__all__ = ["CiteContext", "CiteFormatter", "OutputFormat", "Position"]
