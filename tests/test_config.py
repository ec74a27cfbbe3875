from citeproc_driver.config import DEFAULT_LOCALES_URL, load_settings


def test_defaults(monkeypatch, tmp_path):
    for name in ("LOCALES_URL", "MODULES_URL", "FETCH_TIMEOUT", "FETCH_RETRIES", "OUTPUT_FORMAT", "LOG_LEVEL"):
        monkeypatch.delenv(f"CITEPROC_{name}", raising=False)

    settings = load_settings(tmp_path / "missing.env")

    assert settings.locales_url == DEFAULT_LOCALES_URL
    assert settings.modules_url is None
    assert settings.fetch_retries == 3
    assert settings.output_format == "html"


def test_env_file_values(monkeypatch, tmp_path):
    monkeypatch.delenv("CITEPROC_FETCH_TIMEOUT", raising=False)
    monkeypatch.delenv("CITEPROC_MODULES_URL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "CITEPROC_FETCH_TIMEOUT=2.5\nCITEPROC_MODULES_URL=https://example.org/modules/{name}.xml\n"
    )

    settings = load_settings(env_file)

    assert settings.fetch_timeout == 2.5
    assert settings.modules_url == "https://example.org/modules/{name}.xml"
    monkeypatch.delenv("CITEPROC_FETCH_TIMEOUT")
    monkeypatch.delenv("CITEPROC_MODULES_URL")
