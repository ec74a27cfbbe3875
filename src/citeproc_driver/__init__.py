"""Citation processing driver: style validation, resource fetching and incremental rendering."""

from .driver import Driver
from .errors import (
    DriverError,
    FetchError,
    FetchInProgressError,
    MissingReferenceWarning,
    OrderError,
    StyleValidationError,
    UnknownCluster,
)
from .fetcher import (
    DirectoryResourceFetcher,
    FetchReport,
    HttpResourceFetcher,
    ResourceFetcher,
    StaticResourceFetcher,
)
from .formatter import OutputFormat
from .models import (
    Cite,
    Cluster,
    ClusterPosition,
    Diagnostic,
    Locator,
    Reference,
    RenderedDocument,
    ResourceRequest,
)
from .validation import DocumentKind, ValidationReporter

__all__ = [
    "Driver",
    "DriverError",
    "FetchError",
    "FetchInProgressError",
    "MissingReferenceWarning",
    "OrderError",
    "StyleValidationError",
    "UnknownCluster",
    "DirectoryResourceFetcher",
    "FetchReport",
    "HttpResourceFetcher",
    "ResourceFetcher",
    "StaticResourceFetcher",
    "OutputFormat",
    "Cite",
    "Cluster",
    "ClusterPosition",
    "Diagnostic",
    "Locator",
    "Reference",
    "RenderedDocument",
    "ResourceRequest",
    "DocumentKind",
    "ValidationReporter",
]
