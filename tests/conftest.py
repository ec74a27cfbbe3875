import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

import pytest

from citeproc_driver.fetcher import StaticResourceFetcher

CSL_NS = "http://purl.org/net/xbiblio/csl"

TITLE_EDITION_LAYOUT = (
    '<layout><group delimiter=" "><text variable="title"/>'
    '<text term="edition" form="long"/></group></layout>'
)


def build_style(layout: str, bibliography: str = "", extra: str = "", attrs: str = "") -> str:
    return (
        f'<style xmlns="{CSL_NS}" version="1.0" class="note"{attrs}>\n'
        f"{extra}\n"
        f"<citation>{layout}</citation>\n"
        f"{bibliography}\n"
        "</style>"
    )


def build_locale(lang: str, terms: dict) -> str:
    body = "".join(f'<term name="{name}">{text}</term>' for name, text in terms.items())
    return (
        f'<locale xmlns="{CSL_NS}" version="1.0" xml:lang="{lang}">'
        f"<terms>{body}</terms></locale>"
    )


@pytest.fixture()
def make_style():
    """Return a builder for a minimal CSL style around a citation layout."""

    return build_style


@pytest.fixture()
def make_locale():
    return build_locale


@pytest.fixture()
def title_edition_style() -> str:
    return (
        f'<style xmlns="{CSL_NS}" class="note">'
        f"<citation>{TITLE_EDITION_LAYOUT}</citation></style>"
    )


@pytest.fixture()
def french_fetcher() -> StaticResourceFetcher:
    return StaticResourceFetcher(
        locales={
            "fr-FR": build_locale("fr-FR", {"edition": "SUCCESS", "and": "et"}),
            "en-US": build_locale("en-US", {"edition": "edition", "and": "and", "ibid": "ibid."}),
        }
    )
