"""Immutable style tree built from a validated CSL document."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .locale import ROOT_LANG, Locale, normalize_lang
from .validation import CONDITIONS, Node

RENDERING_ELEMENTS = ("text", "group", "number", "label", "names", "date", "choose")


@dataclass(frozen=True)
class Formatting:
    prefix: str = ""
    suffix: str = ""
    font_style: Optional[str] = None
    font_weight: Optional[str] = None
    text_case: Optional[str] = None
    quotes: bool = False

    @classmethod
    def from_attrs(cls, attrs: Dict[str, str]) -> "Formatting":
        return cls(
            prefix=attrs.get("prefix", ""),
            suffix=attrs.get("suffix", ""),
            font_style=attrs.get("font-style"),
            font_weight=attrs.get("font-weight"),
            text_case=attrs.get("text-case"),
            quotes=attrs.get("quotes") == "true",
        )


@dataclass(frozen=True)
class Element:
    formatting: Formatting = Formatting()


@dataclass(frozen=True)
class Text(Element):
    variable: Optional[str] = None
    term: Optional[str] = None
    value: Optional[str] = None
    macro: Optional[str] = None
    form: str = "long"
    plural: bool = False


@dataclass(frozen=True)
class Number(Element):
    variable: str = ""


@dataclass(frozen=True)
class Label(Element):
    variable: str = "locator"
    form: str = "long"
    plural: str = "contextual"


@dataclass(frozen=True)
class NameOptions:
    form: str = "long"
    delimiter: str = ", "
    and_: Optional[str] = None
    initialize_with: Optional[str] = None


@dataclass(frozen=True)
class Names(Element):
    variables: Tuple[str, ...] = ()
    delimiter: str = ", "
    name: NameOptions = NameOptions()
    label: Optional[Label] = None
    substitute: Tuple[Element, ...] = ()


@dataclass(frozen=True)
class DatePart:
    name: str
    form: str = "long"
    formatting: Formatting = Formatting()


@dataclass(frozen=True)
class Date(Element):
    variable: str = ""
    delimiter: str = ""
    parts: Tuple[DatePart, ...] = ()


@dataclass(frozen=True)
class Group(Element):
    children: Tuple[Element, ...] = ()
    delimiter: str = ""


@dataclass(frozen=True)
class Condition:
    tests: Tuple[Tuple[str, str], ...]
    match: str = "all"


@dataclass(frozen=True)
class Choose(Element):
    branches: Tuple[Tuple[Condition, Tuple[Element, ...]], ...] = ()
    otherwise: Tuple[Element, ...] = ()


@dataclass(frozen=True)
class Layout:
    children: Tuple[Element, ...] = ()
    delimiter: str = ""
    formatting: Formatting = Formatting()


@dataclass(frozen=True)
class Module:
    """A fetched macro library."""

    name: str
    macros: Dict[str, Tuple[Element, ...]] = field(default_factory=dict)

    @classmethod
    def from_node(cls, name: str, node: Node) -> "Module":
        return cls(name=name, macros=_macros(node))


@dataclass(frozen=True)
class Style:
    default_locale: str = ROOT_LANG
    style_class: str = "in-text"
    citation: Layout = Layout()
    bibliography: Optional[Layout] = None
    macros: Dict[str, Tuple[Element, ...]] = field(default_factory=dict)
    locales: Tuple[Locale, ...] = ()
    includes: Tuple[str, ...] = ()
    near_note_distance: int = 5

    @classmethod
    def from_node(cls, node: Node) -> "Style":
        citation = node.first("citation")
        bibliography = node.first("bibliography")
        distance = citation.attrs.get("near-note-distance", "5") if citation else "5"
        return cls(
            default_locale=normalize_lang(node.attrs.get("default-locale", ROOT_LANG)),
            style_class=node.attrs.get("class", "in-text"),
            citation=_layout(citation) if citation is not None else Layout(),
            bibliography=_layout(bibliography) if bibliography is not None else None,
            macros=_macros(node),
            locales=tuple(Locale.from_node(n) for n in node.find_all("locale")),
            includes=tuple(n.attrs["href"] for n in node.find_all("include")),
            near_note_distance=int(distance) if distance.isdigit() else 5,
        )


def _macros(node: Node) -> Dict[str, Tuple[Element, ...]]:
    return {m.attrs["name"]: _children(m) for m in node.find_all("macro")}


def _layout(node: Node) -> Layout:
    layout = node.first("layout")
    if layout is None:
        return Layout()
    return Layout(
        children=_children(layout),
        delimiter=layout.attrs.get("delimiter", ""),
        formatting=Formatting.from_attrs(layout.attrs),
    )


def _children(node: Node) -> Tuple[Element, ...]:
    return tuple(_element(child) for child in node.children if child.name in RENDERING_ELEMENTS)


def _label(node: Node, default_variable: str = "locator") -> Label:
    return Label(
        formatting=Formatting.from_attrs(node.attrs),
        variable=node.attrs.get("variable", default_variable),
        form=node.attrs.get("form", "long"),
        plural=node.attrs.get("plural", "contextual"),
    )


def _element(node: Node) -> Element:
    attrs = node.attrs
    fmt = Formatting.from_attrs(attrs)
    if node.name == "text":
        return Text(
            formatting=fmt,
            variable=attrs.get("variable"),
            term=attrs.get("term"),
            value=attrs.get("value"),
            macro=attrs.get("macro"),
            form=attrs.get("form", "long"),
            plural=attrs.get("plural") == "true",
        )
    if node.name == "number":
        return Number(formatting=fmt, variable=attrs["variable"])
    if node.name == "label":
        return _label(node)
    if node.name == "group":
        return Group(formatting=fmt, children=_children(node), delimiter=attrs.get("delimiter", ""))
    if node.name == "names":
        variables = tuple(attrs["variable"].split())
        name_node = node.first("name")
        label_node = node.first("label")
        substitute = node.first("substitute")
        options = NameOptions()
        if name_node is not None:
            options = NameOptions(
                form=name_node.attrs.get("form", "long"),
                delimiter=name_node.attrs.get("delimiter", ", "),
                and_=name_node.attrs.get("and"),
                initialize_with=name_node.attrs.get("initialize-with"),
            )
        return Names(
            formatting=fmt,
            variables=variables,
            delimiter=attrs.get("delimiter", ", "),
            name=options,
            label=_label(label_node, variables[0]) if label_node is not None else None,
            substitute=_children(substitute) if substitute is not None else (),
        )
    if node.name == "date":
        parts = tuple(
            DatePart(
                name=p.attrs["name"],
                form=p.attrs.get("form", "long" if p.attrs["name"] == "month" else "numeric"),
                formatting=Formatting.from_attrs(p.attrs),
            )
            for p in node.find_all("date-part")
        )
        return Date(
            formatting=fmt,
            variable=attrs["variable"],
            delimiter=attrs.get("delimiter", ""),
            parts=parts,
        )
    if node.name == "choose":
        branches: List[Tuple[Condition, Tuple[Element, ...]]] = []
        otherwise: Tuple[Element, ...] = ()
        for branch in node.children:
            if branch.name in {"if", "else-if"}:
                tests = tuple(
                    (key, value)
                    for key in CONDITIONS
                    for value in branch.attrs.get(key, "").split()
                )
                condition = Condition(tests=tests, match=branch.attrs.get("match", "all"))
                branches.append((condition, _children(branch)))
            elif branch.name == "else":
                otherwise = _children(branch)
        return Choose(branches=tuple(branches), otherwise=otherwise)
    raise ValueError(f"unsupported element <{node.name}>")
