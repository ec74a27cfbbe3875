"""Host fetch capabilities and the one-batch-at-a-time fetch scheduler."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from .config import DEFAULT_LOCALES_URL
from .errors import FetchError, FetchInProgressError
from .locale import Locale
from .log import get_logger
from .models import ResourceKind, ResourceRequest
from .style import Module
from .validation import DocumentKind, ValidationReporter

logger = get_logger(__name__)


class ResourceFetcher:
    """Base interface for the host's asynchronous fetch capability.

    Both methods return the resource's XML text, or ``None`` when the host has
    no such resource. Raising counts as a failure too.
    """

    name: str = "base"

    async def fetch_locale(self, lang: str) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_module(self, name: str) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError


class StaticResourceFetcher(ResourceFetcher):
    """In-memory fetcher suitable for tests and embedded resources."""

    def __init__(
        self,
        locales: Optional[Dict[str, str]] = None,
        modules: Optional[Dict[str, str]] = None,
    ):
        self.locales = dict(locales or {})
        self.modules = dict(modules or {})
        self.name = "static"

    async def fetch_locale(self, lang: str) -> Optional[str]:
        return self.locales.get(lang)

    async def fetch_module(self, name: str) -> Optional[str]:
        return self.modules.get(name)


class DirectoryResourceFetcher(ResourceFetcher):
    """Reads ``locales-{lang}.xml`` and ``{name}.xml`` files from a directory."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = "directory"

    def _read(self, filename: str) -> Optional[str]:
        target = self.path / filename
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    async def fetch_locale(self, lang: str) -> Optional[str]:
        return self._read(f"locales-{lang}.xml")

    async def fetch_module(self, name: str) -> Optional[str]:
        return self._read(f"{name}.xml")


class HttpResourceFetcher(ResourceFetcher):
    """Fetches resources over HTTP, retrying transport errors and 5xx responses."""

    def __init__(
        self,
        locales_url: str = DEFAULT_LOCALES_URL,
        modules_url: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.locales_url = locales_url
        self.modules_url = modules_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.transport = transport
        self.name = "http"

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/xml, text/xml", "User-Agent": "citeproc-driver/0.1"}

    async def fetch_locale(self, lang: str) -> Optional[str]:
        return await self._get_with_retries(self.locales_url.format(lang=lang))

    async def fetch_module(self, name: str) -> Optional[str]:
        if not self.modules_url:
            return None
        return await self._get_with_retries(self.modules_url.format(name=name))

    async def _get_with_retries(self, url: str) -> Optional[str]:
        last_error: Optional[Exception] = None
        async with httpx.AsyncClient(
            timeout=self.timeout, headers=self._headers(), transport=self.transport
        ) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.get(url)
                    if response.status_code == 404:
                        return None
                    response.raise_for_status()
                    return response.text
                except httpx.RequestError as exc:
                    last_error = exc
                except httpx.HTTPStatusError as exc:
                    last_error = exc
                    if exc.response.status_code < 500:
                        break
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_factor * (2 ** (attempt - 1)))
        message = f"request for {url} failed"
        if last_error:
            message = f"{message}: {last_error}"
        raise RuntimeError(message)


class ResourceCache:
    """Parsed locales and modules, kept for the driver's lifetime."""

    def __init__(self) -> None:
        self.locales: Dict[str, Locale] = {}
        self.modules: Dict[str, Module] = {}

    def __contains__(self, request: object) -> bool:
        if not isinstance(request, ResourceRequest):
            return False
        if request.kind is ResourceKind.LOCALE:
            return request.name in self.locales
        return request.name in self.modules

    def __len__(self) -> int:
        return len(self.locales) + len(self.modules)


@dataclass(frozen=True)
class FetchReport:
    requested: Tuple[ResourceRequest, ...] = ()
    fetched: Tuple[ResourceRequest, ...] = ()
    failures: Tuple[FetchError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures


class FetchScheduler:
    """Issues one concurrent batch of fetches at a time and caches what succeeds."""

    def __init__(
        self,
        fetcher: ResourceFetcher,
        cache: ResourceCache,
        reporter: Optional[ValidationReporter] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.reporter = reporter or ValidationReporter()
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def pending(self, requests: Sequence[ResourceRequest]) -> List[ResourceRequest]:
        return [request for request in requests if request not in self.cache]

    async def run(self, requests: Sequence[ResourceRequest]) -> FetchReport:
        if self._in_progress:
            raise FetchInProgressError()
        self._in_progress = True
        try:
            pending = self.pending(requests)
            if not pending:
                return FetchReport()
            logger.info(
                "fetching %d resource(s) via %s: %s",
                len(pending),
                self.fetcher.name,
                ", ".join(str(r) for r in pending),
            )
            results = await asyncio.gather(
                *(self._fetch_one(request) for request in pending), return_exceptions=True
            )
            fetched: List[ResourceRequest] = []
            failures: List[FetchError] = []
            for request, result in zip(pending, results):
                failure = self._store(request, result)
                if failure is None:
                    fetched.append(request)
                else:
                    logger.warning("%s", failure)
                    failures.append(failure)
            logger.info("fetch batch done: %d fetched, %d failed", len(fetched), len(failures))
            return FetchReport(tuple(pending), tuple(fetched), tuple(failures))
        finally:
            self._in_progress = False

    async def _fetch_one(self, request: ResourceRequest) -> Optional[str]:
        if request.kind is ResourceKind.LOCALE:
            return await self.fetcher.fetch_locale(request.name)
        return await self.fetcher.fetch_module(request.name)

    def _store(self, request: ResourceRequest, result: object) -> Optional[FetchError]:
        if isinstance(result, asyncio.CancelledError):
            return FetchError(request, "cancelled")
        if isinstance(result, BaseException):
            return FetchError(request, f"{type(result).__name__}: {result}")
        if result is None:
            return FetchError(request, "not available")
        if not isinstance(result, str):
            return FetchError(request, f"expected XML text, got {type(result).__name__}")

        kind = DocumentKind.LOCALE if request.kind is ResourceKind.LOCALE else DocumentKind.MODULE
        parsed = self.reporter.parse(result, kind)
        if not parsed.ok or parsed.root is None:
            return FetchError(request, "invalid document", parsed.errors)
        if request.kind is ResourceKind.LOCALE:
            self.cache.locales[request.name] = Locale(
                lang=request.name, terms=Locale.from_node(parsed.root).terms
            )
        else:
            self.cache.modules[request.name] = Module.from_node(request.name, parsed.root)
        return None


__all__ = [
    "DirectoryResourceFetcher",
    "FetchReport",
    "FetchScheduler",
    "HttpResourceFetcher",
    "ResourceCache",
    "ResourceFetcher",
    "StaticResourceFetcher",
]
