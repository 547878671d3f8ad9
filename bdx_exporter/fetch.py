"""Fetchers for the 360view endpoints.

``HttpJsonFetcher`` posts to the TRH feed; ``PlaywrightPageFetcher`` renders
the dashboards in headless Chromium, since their tables are filled in by
JavaScript. Both raise ``TransportError`` for every kind of failure.
"""
from __future__ import annotations

from http.client import HTTPException
import logging
import time
from typing import Mapping, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from bdx_exporter.config import SessionConfig
from bdx_exporter.errors import TransportError
from bdx_exporter.models import RawPage

TRH_BODY = b"action=inf"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class PageFetcher(Protocol):
    def fetch(self, url: str, cookies: Mapping[str, str], timeout: float) -> RawPage: ...


class JsonFetcher(Protocol):
    def fetch_json(
        self, url: str, headers: Mapping[str, str], body: bytes, timeout: float
    ) -> bytes: ...


def session_cookies(session: SessionConfig) -> dict[str, str]:
    return {"sess_map": session.sess_map, "PHPSESSID": session.phpsessid}


def cookie_header(session: SessionConfig) -> str:
    return "; ".join(f"{name}={value}" for name, value in session_cookies(session).items())


def trh_headers(session: SessionConfig, referer: str) -> dict[str, str]:
    return {
        "Content-Type": FORM_CONTENT_TYPE,
        "Referer": referer,
        "Cookie": cookie_header(session),
    }


class HttpJsonFetcher:
    """POST a form body and return the raw response bytes.

    ``timeout`` bounds each socket operation (connect and every read), not the
    request as a whole, so a server that keeps trickling bytes can run past it.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch_json(
        self, url: str, headers: Mapping[str, str], body: bytes, timeout: float
    ) -> bytes:
        self.logger.debug("POST %s (%d bytes)", url, len(body))
        req = Request(url, data=body, headers=dict(headers), method="POST")
        try:
            with urlopen(req, timeout=timeout) as response:
                status = response.status
                payload = response.read()
        except HTTPError as exc:
            raise TransportError(url, f"HTTP {exc.code}") from exc
        except URLError as exc:
            raise TransportError(url, str(exc.reason)) from exc
        except (OSError, HTTPException) as exc:
            raise TransportError(url, str(exc) or exc.__class__.__name__) from exc
        if not 200 <= status < 300:
            raise TransportError(url, f"HTTP {status}")
        return payload


class PlaywrightPageFetcher:
    def __init__(
        self,
        cookie_domain: str | None = None,
        wait_selector: str = "table",
        settle_s: float = 2.0,
        headless: bool = True,
    ) -> None:
        self.cookie_domain = cookie_domain
        self.wait_selector = wait_selector
        self.settle_s = settle_s
        self.headless = headless
        self.logger = logging.getLogger(self.__class__.__name__)

    def _cookies(self, url: str, cookies: Mapping[str, str]) -> list[dict[str, str]]:
        domain = self.cookie_domain or urlparse(url).hostname or ""
        return [
            {"name": name, "value": value, "domain": domain, "path": "/"}
            for name, value in cookies.items()
            if value
        ]

    def fetch(self, url: str, cookies: Mapping[str, str], timeout: float) -> RawPage:
        deadline = time.monotonic() + timeout

        def remaining_ms() -> float:
            return max(1.0, (deadline - time.monotonic()) * 1000)

        self.logger.debug("Rendering %s", url)
        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(
                    headless=self.headless,
                    args=["--disable-gpu", "--no-sandbox"],
                )
                try:
                    context = browser.new_context()
                    context.add_cookies(self._cookies(url, cookies))
                    page = context.new_page()
                    page.goto(url, timeout=remaining_ms())
                    page.wait_for_selector(self.wait_selector, state="visible", timeout=remaining_ms())
                    page.wait_for_timeout(min(self.settle_s * 1000, remaining_ms()))
                    html = page.content()
                finally:
                    browser.close()
        except PlaywrightTimeoutError as exc:
            raise TransportError(url, f"timed out after {timeout:g}s") from exc
        except PlaywrightError as exc:
            raise TransportError(url, exc.message) from exc
        self.logger.debug("Rendered %s (%d bytes)", url, len(html))
        return RawPage(url=url, html=html)
