import asyncio

import pytest

from citeproc_driver import (
    Cite,
    Cluster,
    ClusterPosition,
    Driver,
    FetchInProgressError,
    OrderError,
    Reference,
    StaticResourceFetcher,
    StyleValidationError,
    UnknownCluster,
)


@pytest.fixture()
def driver(title_edition_style, french_fetcher) -> Driver:
    driver = Driver(title_edition_style, french_fetcher, output_format="html")
    driver.insert_references(
        [Reference("foreign", fields={"title": "Le Petit Bouchon", "language": "fr-FR"})]
    )
    return driver


def test_invalid_style_fails_construction(french_fetcher):
    with pytest.raises(StyleValidationError) as excinfo:
        Driver("<style><citation/></style>", french_fetcher)

    assert [d.code for d in excinfo.value.diagnostics] == ["missing-version", "missing-layout"]


def test_style_warnings_are_kept(driver):
    assert [d.code for d in driver.warnings] == ["missing-version"]


def test_to_fetch_for_a_french_reference(driver):
    assert {r.name for r in driver.to_fetch()} == {"fr-FR", "fr", "en-US"}


def test_end_to_end_render_with_fetched_locale(driver):
    driver.init_clusters([Cluster(id=1, cites=(Cite("foreign", prefix="Yeah, "),))])

    report = asyncio.run(driver.fetch_all())

    assert [f.request.name for f in report.failures] == ["fr"]
    assert driver.built_cluster(1) == "Yeah, Le Petit Bouchon SUCCESS"
    assert {r.name for r in driver.to_fetch()} == {"fr"}


def test_built_cluster_on_known_and_unknown_ids(driver):
    driver.init_clusters([Cluster(id="c1", cites=(Cite("foreign"),))])

    assert driver.built_cluster("c1")
    with pytest.raises(UnknownCluster):
        driver.built_cluster("nope")


def test_second_render_touches_nothing(driver):
    driver.init_clusters(
        [Cluster(id=1, cites=(Cite("foreign"),)), Cluster(id=2, cites=(Cite("foreign"),))]
    )

    first = driver.render()
    second = driver.render()

    assert all(first.touched.values())
    assert not any(second.touched.values())


def test_removed_cluster_is_unknown(driver):
    driver.init_clusters([Cluster(id=1, cites=(Cite("foreign"),))])

    driver.remove_cluster(1)

    with pytest.raises(UnknownCluster):
        driver.built_cluster(1)
    assert 1 not in driver.render().clusters


@pytest.mark.parametrize(
    "positions",
    [
        [ClusterPosition(1, 3), ClusterPosition(2, 2)],
        [ClusterPosition(1, 1), ClusterPosition(1, 2)],
    ],
)
def test_bad_order_leaves_store_unchanged(driver, positions):
    driver.init_clusters(
        [Cluster(id=1, cites=(Cite("foreign"),)), Cluster(id=2, cites=(Cite("foreign"),))]
    )
    driver.set_cluster_order([ClusterPosition(1, 1), ClusterPosition(2, 2)])
    before = driver.cluster_order()

    with pytest.raises(OrderError):
        driver.set_cluster_order(positions)

    assert driver.cluster_order() == before


def test_second_fetch_while_first_outstanding_is_rejected(title_edition_style, make_locale):
    class GatedFetcher(StaticResourceFetcher):
        gate = None

        async def fetch_locale(self, lang):
            await self.gate.wait()
            return await super().fetch_locale(lang)

    fetcher = GatedFetcher(locales={"en-US": make_locale("en-US", {"edition": "ed."})})
    driver = Driver(title_edition_style, fetcher)

    async def scenario():
        fetcher.gate = asyncio.Event()
        first = asyncio.ensure_future(driver.fetch_all())
        await asyncio.sleep(0)
        with pytest.raises(FetchInProgressError):
            await driver.fetch_all()
        driver.insert_references([Reference("late", fields={"title": "Late"})])
        fetcher.gate.set()
        return await first

    report = asyncio.run(scenario())

    assert report.ok
    assert driver.to_fetch() == []


def test_cancelling_fetch_all_releases_the_batch(title_edition_style):
    class HangingFetcher(StaticResourceFetcher):
        async def fetch_locale(self, lang):
            await asyncio.sleep(3600)

    driver = Driver(title_edition_style, HangingFetcher())

    async def scenario():
        task = asyncio.ensure_future(driver.fetch_all())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert not driver.scheduler.in_progress


def test_preview_does_not_change_the_store(driver):
    driver.init_clusters([Cluster(id=1, cites=(Cite("foreign"),))])
    before = driver.cluster_order()

    inserted = driver.preview_cluster(Cluster(id=2, cites=(Cite("foreign", suffix="!"),)))
    replaced = driver.preview_cluster(Cluster(id=1, cites=(Cite("missing"),)))

    assert inserted == "Le Petit Bouchon!"
    assert replaced == "???"
    assert driver.cluster_order() == before
    assert driver.built_cluster(1) == "Le Petit Bouchon"


def test_missing_reference_warning_is_reported(driver):
    driver.init_clusters([Cluster(id=1, cites=(Cite("ghost"),))])

    document = driver.render()

    assert document.clusters[1] == "???"
    assert [w.ref_id for w in document.warnings] == ["ghost"]


def test_bibliography_without_layout_is_empty(driver):
    driver.init_clusters([Cluster(id=1, cites=(Cite("foreign"),))])

    assert driver.bibliography() == ()


def test_unknown_output_format_is_rejected(title_edition_style, french_fetcher):
    with pytest.raises(ValueError):
        Driver(title_edition_style, french_fetcher, output_format="docx")


def test_untagged_reference_uses_dialect_of_default_locale(make_style, make_locale):
    style = make_style(
        '<layout><text term="edition"/></layout>', attrs=' default-locale="de-AT"'
    )
    fetcher = StaticResourceFetcher(locales={"de-DE": make_locale("de-DE", {"edition": "Auflage"})})
    driver = Driver(style, fetcher)
    driver.insert_references([Reference("plain", fields={"title": "Ohne Sprache"})])
    driver.init_clusters([Cluster(id=1, cites=(Cite("plain"),))])

    assert [r.name for r in driver.to_fetch()] == ["de-AT", "de-DE", "en-US"]
    asyncio.run(driver.fetch_all())

    assert driver.built_cluster(1) == "Auflage"


def test_blank_names_variable_fails_construction(make_style, french_fetcher):
    style = make_style('<layout><names variable=""><label/></names></layout>')

    with pytest.raises(StyleValidationError) as excinfo:
        Driver(style, french_fetcher)

    assert [d.code for d in excinfo.value.diagnostics] == ["missing-attribute"]
