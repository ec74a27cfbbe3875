"""Single-pass parsing and validation of style, locale and module XML.

The parser callbacks build a light node tree and check each element as it is
opened, so every diagnostic carries the exact position expat reported for it.
Checks that need the whole document (undefined macros, missing children) run
when the relevant element closes, using positions recorded on the way in.
"""
from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple
from xml.parsers import expat

from .locale import is_valid_lang
from .models import Diagnostic


class DocumentKind(Enum):
    STYLE = "style"
    LOCALE = "locale"
    MODULE = "module"


RENDERING = {"text", "group", "number", "label", "names", "date", "choose"}

ALLOWED_CHILDREN: Dict[str, set] = {
    "style": {"info", "locale", "macro", "citation", "bibliography", "include"},
    "module": {"info", "macro"},
    "citation": {"layout", "sort"},
    "bibliography": {"layout", "sort"},
    "sort": {"key"},
    "layout": RENDERING,
    "group": RENDERING,
    "macro": RENDERING,
    "substitute": RENDERING,
    "if": RENDERING,
    "else-if": RENDERING,
    "else": RENDERING,
    "choose": {"if", "else-if", "else"},
    "names": {"name", "et-al", "label", "substitute"},
    "name": {"name-part"},
    "date": {"date-part"},
    "locale": {"info", "terms", "style-options", "date"},
    "terms": {"term"},
    "term": {"single", "multiple"},
}

LEAVES = {
    "text", "number", "label", "name-part", "et-al", "date-part", "key", "include",
    "single", "multiple", "style-options",
}

KNOWN_ELEMENTS = set(ALLOWED_CHILDREN) | LEAVES

REQUIRED_ATTRIBUTES = {
    "macro": "name",
    "term": "name",
    "include": "href",
    "number": "variable",
    "names": "variable",
    "date-part": "name",
}

FORMS = {"long", "short", "verb", "verb-short", "symbol"}

ENUMERATED = {
    "position": {"first", "subsequent", "ibid", "ibid-with-locator", "near-note"},
    "match": {"all", "any", "none"},
    "font-style": {"normal", "italic", "oblique"},
    "font-weight": {"normal", "bold", "light"},
    "text-case": {
        "lowercase", "uppercase", "capitalize-first", "capitalize-all", "title", "sentence",
    },
}

# disambiguate and is-uncertain-date are accepted but never match
CONDITIONS = (
    "position",
    "variable",
    "type",
    "locator",
    "is-numeric",
    "disambiguate",
    "is-uncertain-date",
)
TEXT_SOURCES = ("variable", "term", "value", "macro")


@dataclass
class Node:
    """An element of a parsed XML document, with its source position."""

    name: str
    attrs: Dict[str, str]
    line: int
    column: int
    offset: int
    children: List["Node"] = field(default_factory=list)
    text: str = ""

    def find_all(self, name: str) -> Iterator["Node"]:
        return (child for child in self.children if child.name == name)

    def first(self, name: str) -> Optional["Node"]:
        return next(self.find_all(name), None)


@dataclass
class ParseResult:
    root: Optional[Node]
    diagnostics: List[Diagnostic]

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def ok(self) -> bool:
        return self.root is not None and not self.errors


def _local(name: str) -> str:
    return name.rsplit(" ", 1)[-1]


class _Pass:
    """State for one traversal of one document."""

    def __init__(self, source: str, kind: DocumentKind):
        self.kind = kind
        self.lines = source.split("\n")
        self.parser = expat.ParserCreate(namespace_separator=" ")
        self.parser.StartElementHandler = self._start
        self.parser.EndElementHandler = self._end
        self.parser.CharacterDataHandler = self._chars
        self.stack: List[Node] = []
        self.root: Optional[Node] = None
        self.diagnostics: List[Diagnostic] = []
        self.info_depth = 0
        self.macros: Dict[str, Node] = {}
        self.macro_calls: List[Tuple[str, Node]] = []
        self.has_includes = False

    def run(self, data: bytes) -> ParseResult:
        try:
            self.parser.Parse(data, True)
        except expat.ExpatError as exc:
            self._report(
                "xml-syntax",
                expat.ErrorString(exc.code),
                line=exc.lineno,
                column=exc.offset,
                offset=max(self.parser.ErrorByteIndex, 0),
            )
            return ParseResult(root=None, diagnostics=self.diagnostics)
        self._check_macro_calls()
        return ParseResult(root=self.root, diagnostics=self.diagnostics)

    def _excerpt(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].strip()[:120]
        return ""

    def _report(
        self,
        code: str,
        message: str,
        line: int,
        column: int,
        offset: int,
        severity: str = "error",
        hint: Optional[str] = None,
    ) -> None:
        self.diagnostics.append(
            Diagnostic(
                code=code,
                message=message,
                severity=severity,
                offset=offset,
                line=line,
                column=column + 1,
                excerpt=self._excerpt(line),
                hint=hint,
            )
        )

    def _flag(self, node: Node, code: str, message: str, severity: str = "error",
              hint: Optional[str] = None) -> None:
        self._report(code, message, node.line, node.column, node.offset, severity, hint)

    def _start(self, raw_name: str, raw_attrs: Dict[str, str]) -> None:
        node = Node(
            name=_local(raw_name),
            attrs={_local(k): v for k, v in raw_attrs.items()},
            line=self.parser.CurrentLineNumber,
            column=self.parser.CurrentColumnNumber,
            offset=self.parser.CurrentByteIndex,
        )
        parent = self.stack[-1] if self.stack else None
        if parent is not None:
            parent.children.append(node)
        else:
            self.root = node
        self.stack.append(node)

        if self.info_depth:
            self.info_depth += 1
            return
        # Skip the contents of <info> and of elements already rejected.
        if not self._check_element(node, parent) or node.name == "info":
            self.info_depth = 1

    def _end(self, _name: str) -> None:
        node = self.stack.pop()
        if self.info_depth:
            self.info_depth -= 1
            if self.info_depth:
                return
        self._check_complete(node)

    def _chars(self, data: str) -> None:
        if self.stack:
            self.stack[-1].text += data

    def _check_element(self, node: Node, parent: Optional[Node]) -> bool:
        if parent is None:
            if node.name != self.kind.value:
                self._flag(
                    node,
                    "unexpected-root",
                    f"expected a <{self.kind.value}> document, found <{node.name}>",
                )
                return False
        elif node.name not in KNOWN_ELEMENTS:
            close = difflib.get_close_matches(node.name, sorted(KNOWN_ELEMENTS), n=1)
            self._flag(
                node,
                "unknown-element",
                f"unknown element <{node.name}>",
                hint=f"did you mean <{close[0]}>?" if close else None,
            )
            return False
        elif parent.name in LEAVES:
            self._flag(node, "unexpected-child", f"<{parent.name}> cannot contain <{node.name}>")
            return False
        elif node.name not in ALLOWED_CHILDREN.get(parent.name, set()):
            allowed = ", ".join(sorted(ALLOWED_CHILDREN.get(parent.name, set())))
            self._flag(
                node,
                "unexpected-child",
                f"<{node.name}> is not allowed inside <{parent.name}>",
                hint=f"expected one of: {allowed}" if allowed else None,
            )
            return False
        self._check_attributes(node, parent)
        return True

    def _check_attributes(self, node: Node, parent: Optional[Node]) -> None:
        attrs = node.attrs
        required = REQUIRED_ATTRIBUTES.get(node.name)
        if required and not attrs.get(required, "").strip():
            self._flag(node, "missing-attribute", f"<{node.name}> requires a `{required}` attribute")
        if node.name == "date" and (parent is None or parent.name != "locale"):
            if not attrs.get("variable", "").strip():
                self._flag(node, "missing-attribute", "<date> requires a `variable` attribute")
        if node.name == "text":
            sources = [a for a in TEXT_SOURCES if a in attrs]
            if len(sources) != 1:
                self._flag(
                    node,
                    "text-source",
                    "<text> needs exactly one of `variable`, `term`, `value` or `macro`",
                    hint=f"found: {', '.join(sources)}" if sources else None,
                )
        if node.name == "key" and not ("variable" in attrs or "macro" in attrs):
            self._flag(node, "missing-attribute", "<key> needs a `variable` or `macro` attribute")
        if node.name in {"if", "else-if"} and not any(c in attrs for c in CONDITIONS):
            self._flag(
                node,
                "missing-condition",
                f"<{node.name}> has no condition",
                hint=f"add one of: {', '.join(CONDITIONS)}",
            )
        if node.name in {"text", "term", "label"} and "form" in attrs:
            if attrs["form"] not in FORMS:
                self._flag(
                    node,
                    "invalid-value",
                    f"`form` must be one of {', '.join(sorted(FORMS))}, not {attrs['form']!r}",
                )
        for attr, allowed in ENUMERATED.items():
            if attr not in attrs:
                continue
            values = attrs[attr].split() if attr == "position" else [attrs[attr]]
            bad = [v for v in values if v not in allowed]
            if bad:
                close = difflib.get_close_matches(bad[0], sorted(allowed), n=1)
                self._flag(
                    node,
                    "invalid-value",
                    f"invalid `{attr}` value {bad[0]!r}",
                    hint=f"did you mean {close[0]!r}?" if close else None,
                )
        for attr in ("default-locale", "lang"):
            if attr in attrs and not is_valid_lang(attrs[attr]):
                self._flag(node, "invalid-lang", f"invalid language tag {attrs[attr]!r}")

        if node.name == "style":
            version = attrs.get("version")
            if version is None:
                self._flag(node, "missing-version", "style has no `version`; assuming 1.0",
                           severity="warning")
            elif not version.startswith("1.0"):
                self._flag(node, "unsupported-version", f"CSL version {version} is not supported",
                           severity="warning")
        if node.name == "include":
            self.has_includes = True
        if node.name == "macro" and "name" in attrs:
            if attrs["name"] in self.macros:
                self._flag(node, "duplicate-macro", f"macro {attrs['name']!r} is defined twice")
            else:
                self.macros[attrs["name"]] = node
        if "macro" in attrs and node.name in {"text", "key"}:
            self.macro_calls.append((attrs["macro"], node))

    def _check_complete(self, node: Node) -> None:
        if node is self.root and node.name == "style" and self.kind is DocumentKind.STYLE:
            if node.first("citation") is None:
                self._flag(node, "missing-citation", "style has no <citation> element")
        if node.name in {"citation", "bibliography"} and node.first("layout") is None:
            self._flag(node, "missing-layout", f"<{node.name}> has no <layout>")

    def _check_macro_calls(self) -> None:
        lenient = self.has_includes or self.kind is DocumentKind.MODULE
        for name, node in self.macro_calls:
            if name in self.macros:
                continue
            if lenient:
                self._flag(node, "undefined-macro",
                           f"macro {name!r} is not defined here; expecting it from a module",
                           severity="warning")
            else:
                close = difflib.get_close_matches(name, sorted(self.macros), n=1)
                self._flag(node, "undefined-macro", f"macro {name!r} is not defined",
                           hint=f"did you mean {close[0]!r}?" if close else None)


class ValidationReporter:
    """Parses and validates CSL documents, returning positioned diagnostics."""

    def parse(self, text: str, kind: DocumentKind = DocumentKind.STYLE) -> ParseResult:
        return _Pass(text, kind).run(text.encode("utf-8"))

    def validate(self, text: str, kind: DocumentKind = DocumentKind.STYLE) -> List[Diagnostic]:
        return self.parse(text, kind).diagnostics


__all__ = ["DocumentKind", "Node", "ParseResult", "ValidationReporter"]
