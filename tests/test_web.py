import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from citeproc_driver.web import app


client = TestClient(app)


def _render_payload(style, locales, **overrides):
    payload = {
        "style": style,
        "format": "html",
        "references": [{"id": "foreign", "title": "Le Petit Bouchon", "language": "fr-FR"}],
        "clusters": [{"id": 1, "cites": [{"id": "foreign", "prefix": "Yeah, "}]}],
        "locales": locales,
    }
    payload.update(overrides)
    return payload


def test_health():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_validate_returns_positioned_diagnostics():
    response = client.post("/validate", json={"text": "<style>\n<citation/>\n</style>", "kind": "style"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    layout = next(d for d in body["diagnostics"] if d["code"] == "missing-layout")
    assert layout["line"] == 2
    assert layout["column"] == 1


def test_validate_rejects_unknown_kind():
    response = client.post("/validate", json={"text": "<style/>", "kind": "journal"})

    assert response.status_code == 422


def test_render_end_to_end(title_edition_style, make_locale):
    response = client.post(
        "/render",
        json=_render_payload(title_edition_style, {"fr-FR": make_locale("fr-FR", {"edition": "SUCCESS"})}),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["clusters"] == [{"id": 1, "text": "Yeah, Le Petit Bouchon SUCCESS", "touched": True}]
    assert {f["resource"] for f in body["fetch_failures"]} == {"locale:fr", "locale:en-US"}
    assert [w["code"] for w in body["style_warnings"]] == ["missing-version"]


def test_render_style_errors_are_422():
    response = client.post("/render", json=_render_payload("<style><citation/></style>", {}))

    assert response.status_code == 422
    codes = [d["code"] for d in response.json()["detail"]["diagnostics"]]
    assert "missing-layout" in codes


def test_render_unknown_format_is_400(title_edition_style):
    response = client.post("/render", json=_render_payload(title_edition_style, {}, format="docx"))

    assert response.status_code == 400


def test_render_order_errors_are_409(title_edition_style):
    payload = _render_payload(
        title_edition_style,
        {},
        clusters=[{"id": "a", "cites": []}, {"id": "b", "cites": []}],
        order=[{"id": "a", "note": 3}, {"id": "b", "note": 1}],
    )

    response = client.post("/render", json=payload)

    assert response.status_code == 409
    assert response.json()["detail"]["ids"] == ["a", "b"]
