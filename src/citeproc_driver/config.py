"""Environment-driven settings for the CLI and the web service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_LOCALES_URL = (
    "https://raw.githubusercontent.com/citation-style-language/locales/master/"
    "locales-{lang}.xml"
)


@dataclass
class Settings:
    locales_url: str = DEFAULT_LOCALES_URL
    modules_url: Optional[str] = None
    fetch_timeout: float = 10.0
    fetch_retries: int = 3
    output_format: str = "html"
    log_level: str = "INFO"


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Read settings from the environment, after loading a ``.env`` file if present."""
    load_dotenv(dotenv_path=env_file)
    return Settings(
        locales_url=os.getenv("CITEPROC_LOCALES_URL", DEFAULT_LOCALES_URL),
        modules_url=os.getenv("CITEPROC_MODULES_URL") or None,
        fetch_timeout=float(os.getenv("CITEPROC_FETCH_TIMEOUT", "10")),
        fetch_retries=int(os.getenv("CITEPROC_FETCH_RETRIES", "3")),
        output_format=os.getenv("CITEPROC_OUTPUT_FORMAT", "html"),
        log_level=os.getenv("CITEPROC_LOG_LEVEL", "INFO"),
    )
