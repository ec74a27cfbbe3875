import pytest

from citeproc_driver.errors import MissingReferenceWarning
from citeproc_driver.fetcher import ResourceCache
from citeproc_driver.formatter import OutputFormat, Position
from citeproc_driver.locale import Locale
from citeproc_driver.models import Cite, Cluster, ClusterPosition, Locator, Reference
from citeproc_driver.render import RenderEngine, classify
from citeproc_driver.store import ClusterSnapshot
from citeproc_driver.style import Module, Style
from citeproc_driver.validation import DocumentKind, ValidationReporter

reporter = ValidationReporter()

EN_US = """
<locale xmlns="http://purl.org/net/xbiblio/csl" version="1.0" xml:lang="en-US">
  <terms>
    <term name="and">and</term>
    <term name="ibid">ibid.</term>
    <term name="month-05">May</term>
    <term name="page" form="short"><single>p.</single><multiple>pp.</multiple></term>
  </terms>
</locale>
"""


def _engine(make_style, layout, fmt="plain", **kwargs):
    style = Style.from_node(reporter.parse(make_style(layout, **kwargs)).root)
    return RenderEngine(style, fmt)


def _cache():
    cache = ResourceCache()
    cache.locales["en-US"] = Locale.from_node(reporter.parse(EN_US, DocumentKind.LOCALE).root)
    return cache


def _cluster(cid, *refs, note=None, locator=None):
    locators = (Locator(locator),) if locator else ()
    return Cluster(id=cid, cites=tuple(Cite(ref_id=r, locators=locators) for r in refs), note=note)


def _render(engine, references, *clusters, previous=None, cache=None):
    refs = {r.id: r for r in references}
    return engine.render(cache or _cache(), refs, ClusterSnapshot(tuple(clusters)), previous)


def test_classify_positions():
    ordered = [
        (1, (Cite("a"),), None),
        (2, (Cite("a"),), None),
        (3, (Cite("a", locators=(Locator("5"),)),), None),
        (4, (Cite("a", locators=(Locator("5"),)),), None),
        (5, (Cite("a"),), None),
        (6, (Cite("b"), Cite("a")), None),
        (7, (Cite("a"), Cite("a")), None),
    ]

    placements = classify(ordered)

    positions = [placements[key].position for key in sorted(placements)]
    assert positions == [
        Position.FIRST,
        Position.IBID,
        Position.IBID_WITH_LOCATOR,
        Position.IBID,
        Position.SUBSEQUENT,
        Position.FIRST,
        Position.SUBSEQUENT,
        Position.SUBSEQUENT,
        Position.IBID,
    ]
    assert placements[(6, 0)].citation_number == 2


def test_near_note_uses_distance_between_notes():
    ordered = [(1, (Cite("a"),), 1), (2, (Cite("b"),), 2), (3, (Cite("a"),), 4), (4, (Cite("a"),), 20)]

    placements = classify(ordered, near_note_distance=5)

    assert placements[(3, 0)].near_note is True
    assert placements[(4, 0)].near_note is False
    assert placements[(4, 0)].first_note == 1


def test_ibid_term_chosen_by_position(make_style):
    engine = _engine(
        make_style,
        '<layout><choose><if position="ibid"><text term="ibid"/></if>'
        '<else><text variable="title"/></else></choose></layout>',
    )
    refs = [Reference("a", fields={"title": "Alpha"}), Reference("b", fields={"title": "Beta"})]

    document = _render(engine, refs, _cluster(1, "a"), _cluster(2, "a"), _cluster(3, "b"))

    assert [document.clusters[cid] for cid in document.order] == ["Alpha", "ibid.", "Beta"]


def test_disambiguate_condition_never_matches(make_style):
    engine = _engine(
        make_style,
        '<layout><choose><if disambiguate="true"><text value="extra"/></if>'
        '<else><text variable="title"/></else></choose></layout>',
    )

    document = _render(engine, [Reference("a", fields={"title": "Alpha"})], _cluster(1, "a"))

    assert document.clusters[1] == "Alpha"


def test_group_is_suppressed_when_its_variables_are_empty(make_style):
    engine = _engine(
        make_style,
        '<layout><text variable="title"/><group delimiter=" " prefix=", ">'
        '<text value="published by"/><text variable="publisher"/></group></layout>',
    )
    refs = [
        Reference("a", fields={"title": "Alpha"}),
        Reference("b", fields={"title": "Beta", "publisher": "Acme"}),
    ]

    document = _render(engine, refs, _cluster(1, "a"), _cluster(2, "b"))

    assert document.clusters[1] == "Alpha"
    assert document.clusters[2] == "Beta, published by Acme"


def test_names_dates_and_html_markup(make_style):
    engine = _engine(
        make_style,
        '<layout><names variable="author"><name and="text" initialize-with=". "/></names>'
        '<date variable="issued" prefix=" (" suffix=")"><date-part name="year"/></date>'
        '<text variable="title" font-style="italic" prefix=", "/></layout>',
        fmt="html",
    )
    ref = Reference(
        "a",
        type="article-journal",
        fields={
            "author": [{"family": "Doe", "given": "Jane Ann"}, {"family": "Roe", "given": "Rick"}],
            "issued": {"date-parts": [[2020, 5, 1]]},
            "title": "Fish & Chips",
        },
    )

    document = _render(engine, [ref], _cluster(1, "a"))

    assert document.clusters[1] == "J. A. Doe and R. Roe (2020), <i>Fish &amp; Chips</i>"


def test_month_terms_text_case_and_quotes(make_style):
    engine = _engine(
        make_style,
        '<layout delimiter="; "><date variable="issued" delimiter=" "><date-part name="month"/>'
        '<date-part name="year"/></date><text variable="title" text-case="uppercase" quotes="true" prefix=" "/>'
        "</layout>",
    )
    ref = Reference("a", fields={"issued": {"raw": "2020-05-17"}, "title": "quiet"})

    document = _render(engine, [ref], _cluster(1, "a"))

    assert document.clusters[1] == "May 2020 “QUIET”"


def test_locator_label_is_pluralised(make_style):
    engine = _engine(
        make_style,
        '<layout><group delimiter=" "><label variable="locator" form="short"/>'
        '<text variable="locator"/></group></layout>',
    )
    refs = [Reference("a")]

    document = _render(engine, refs, _cluster(1, "a", locator="5-7"), _cluster(2, "a", locator="9"))

    assert document.clusters[1] == "pp. 5-7"
    assert document.clusters[2] == "p. 9"


def test_rtf_output(make_style):
    engine = _engine(make_style, '<layout><text variable="title" font-weight="bold"/></layout>', fmt="rtf")

    document = _render(engine, [Reference("a", fields={"title": "Café {x}"})], _cluster(1, "a"))

    assert document.clusters[1] == "{\\b Caf\\u233? \\{x\\}}"


def test_rtf_astral_characters_use_surrogate_pairs():
    assert OutputFormat.RTF.escape("\U0001F600") == "\\u-10179?\\u-8704?"


def test_malformed_date_parts_do_not_break_other_clusters(make_style):
    engine = _engine(make_style, '<layout><date variable="issued"><date-part name="year"/></date></layout>')
    refs = [
        Reference("good", fields={"issued": {"date-parts": [[2020]]}}),
        Reference("undated", fields={"issued": {"date-parts": [["n.d."]]}}),
        Reference("blank", fields={"issued": {"date-parts": [[None]]}}),
    ]

    document = _render(engine, refs, _cluster(1, "good"), _cluster(2, "undated"), _cluster(3, "blank"))

    assert document.clusters[1] == "2020"
    assert document.clusters[2] == "n.d."
    assert document.clusters[3] == ""


def test_missing_reference_renders_placeholder(make_style):
    engine = _engine(make_style, '<layout delimiter="; "><text variable="title"/></layout>')
    cluster = Cluster(id=1, cites=(Cite("ghost", prefix="see "), Cite("a")))

    document = _render(engine, [Reference("a", fields={"title": "Alpha"})], cluster)

    assert document.clusters[1] == "see ???; Alpha"
    assert len(document.warnings) == 1
    assert isinstance(document.warnings[0], MissingReferenceWarning)
    assert document.warnings[0].ref_id == "ghost"


def test_bibliography_in_first_citation_order(make_style):
    engine = _engine(
        make_style,
        '<layout><text variable="title"/></layout>',
        bibliography='<bibliography><layout suffix="."><text variable="title"/></layout></bibliography>',
    )
    refs = [Reference("a", fields={"title": "Alpha"}), Reference("b", fields={"title": "Beta"})]

    document = _render(engine, refs, _cluster(1, "b"), _cluster(2, "a"), _cluster(3, "b", "ghost"))

    assert [(e.ref_id, e.text) for e in document.bibliography] == [("b", "Beta."), ("a", "Alpha.")]


def test_touched_flags_compare_with_previous_render(make_style):
    engine = _engine(make_style, '<layout><text variable="title"/></layout>')
    refs = [Reference("a", fields={"title": "Alpha"}), Reference("b", fields={"title": "Beta"})]
    clusters = (_cluster(1, "a"), _cluster(2, "b"))

    first = _render(engine, refs, *clusters)
    second = _render(engine, refs, *clusters, previous=first)
    refs[0] = Reference("a", fields={"title": "Alpha, revised"})
    third = _render(engine, refs, *clusters, _cluster(3, "a"), previous=second)

    assert first.changed() == [1, 2]
    assert second.changed() == []
    assert third.changed() == [1, 3]


def test_explicit_order_drives_positions(make_style):
    engine = _engine(
        make_style,
        '<layout><choose><if position="first"><text variable="title"/></if>'
        '<else><text value="again"/></else></choose></layout>',
    )
    refs = {"a": Reference("a", fields={"title": "Alpha"})}
    snapshot = ClusterSnapshot(
        (_cluster(1, "a"), _cluster(2, "a")),
        (ClusterPosition(2, 1), ClusterPosition(1, 2)),
    )

    document = engine.render(_cache(), refs, snapshot)

    assert document.order == (2, 1)
    assert document.clusters == {2: "Alpha", 1: "again"}


def test_module_macros_fill_in_for_the_style(make_style):
    module_xml = '<module><macro name="juris-title"><text variable="title" prefix="[" suffix="]"/></macro></module>'
    engine = _engine(
        make_style,
        '<layout><text macro="juris-title"/></layout>',
        extra='<include href="juris"/>',
    )
    cache = _cache()
    cache.modules["juris"] = Module.from_node("juris", reporter.parse(module_xml, DocumentKind.MODULE).root)

    with_module = _render(engine, [Reference("a", fields={"title": "Alpha"})], _cluster(1, "a"), cache=cache)
    without_module = _render(engine, [Reference("a", fields={"title": "Alpha"})], _cluster(1, "a"))

    assert with_module.clusters[1] == "[Alpha]"
    assert without_module.clusters[1] == ""


def test_output_format_parse():
    assert OutputFormat.parse("HTML") is OutputFormat.HTML
    with pytest.raises(ValueError, match="docx"):
        OutputFormat.parse("docx")
