from __future__ import annotations


class BdxExporterError(Exception):
    """Base class for exporter errors."""


class TransportError(BdxExporterError):
    """A fetch failed: network error, timeout, browser failure or non-2xx status."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class ParseError(BdxExporterError):
    """A payload or page could not be turned into records."""


class ConfigurationError(BdxExporterError):
    """Startup configuration is missing or malformed."""
