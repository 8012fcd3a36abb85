"""
Source Fetcher

A small retrying HTTP client for government websites that were never meant to
be machine-read. It knows about four kinds of trouble:

1. Flaky servers: retried a fixed number of times with linear backoff.
2. Missing documents (404): reported immediately, never retried.
3. Broken certificates on one specific host: certificate checks are turned off
   for that one request only, through the per-call `verify=False` option.
   We never touch the session defaults or environment variables, so the
   relaxed policy cannot leak into requests for other hosts.
4. Pages that only render in a real browser: a headless Chromium render is
   attempted, but only after the plain client has failed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from councilwatch.config import (
    BROWSER_FALLBACK_ENABLED,
    BROWSER_TIMEOUT_MS,
    FETCH_MAX_RETRIES,
    FETCH_RETRY_BACKOFF_SECONDS,
    FETCH_TIMEOUT_SECONDS,
    USER_AGENT,
)
from councilwatch.errors import FetchError, FetchTimeoutError, NotFoundError, UnreachableError
from councilwatch.metrics import record_browser_fallback, record_fetch, record_fetch_retry

logger = logging.getLogger("source-fetcher")

HTML_ACCEPT = "text/html,application/xhtml+xml"
DOCUMENT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf,*/*;q=0.8"
BINARY_ACCEPT = "application/pdf,*/*"


@dataclass
class FetchResult:
    url: str
    status_code: int
    content_type: str = ""
    text: str = ""
    content: bytes = b""
    via_browser: bool = False

    @property
    def is_pdf(self) -> bool:
        return "pdf" in (self.content_type or "").lower()

    @property
    def is_empty(self) -> bool:
        return not self.content and not (self.text or "").strip()


@dataclass
class FetchPolicy:
    """
    Per-source transport rules.

    `insecure_hosts` lists hostnames whose certificates we know are broken.
    `query_params` are merged into every URL fetched under this policy
    (the CVRD portal serves a plain layout with PrinterVersion=1).
    """
    headers: dict = field(default_factory=dict)
    insecure_hosts: frozenset = frozenset()
    browser_fallback: bool = False
    query_params: dict = field(default_factory=dict)

    def allows_insecure(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return host in self.insecure_hosts

    def prepare_url(self, url: str) -> str:
        if not self.query_params:
            return url
        parts = urlparse(url)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query.update(self.query_params)
        return urlunparse(parts._replace(query=urlencode(query)))


DEFAULT_POLICY = FetchPolicy()


def render_with_browser(url: str, *, ignore_https_errors: bool = False, timeout_ms: int = BROWSER_TIMEOUT_MS) -> str:
    """
    Loads a page in headless Chromium and returns the rendered HTML.

    The certificate override is set on this browser context only, and the
    browser is closed before we return.
    """
    with sync_playwright() as p:
        browser = p.chromium.launch(headless=True)
        try:
            context = browser.new_context(ignore_https_errors=ignore_https_errors)
            page = context.new_page()
            page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            return page.content()
        finally:
            browser.close()


class SourceFetcher:
    """
    Retrying fetcher shared by all source adapters in one invocation.

    `sleep` and `browser_renderer` are injectable so tests never wait and
    never launch a browser.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        max_retries: int = FETCH_MAX_RETRIES,
        backoff_seconds: float = FETCH_RETRY_BACKOFF_SECONDS,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        browser_renderer: Callable[..., str] = render_with_browser,
    ):
        self.session = session or requests.Session()
        # Ignore proxy settings from the host environment.
        self.session.trust_env = False
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.max_retries = max(0, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout
        self.sleep = sleep
        self.browser_renderer = browser_renderer

    def pause(self, seconds: float) -> None:
        """Politeness delay between successive requests to the same site."""
        if seconds > 0:
            self.sleep(seconds)

    def fetch(
        self,
        url: str,
        *,
        binary: bool = False,
        headers: dict | None = None,
        timeout: float | None = None,
        verify: bool = True,
        accept: str | None = None,
    ) -> FetchResult:
        """
        GET a URL with retries.

        Attempts = 1 + max_retries. Before retry N we wait backoff_seconds * N.
        A 404 raises NotFoundError on the spot. When every attempt fails the
        last error is raised: FetchTimeoutError if the final attempt timed out,
        otherwise UnreachableError.
        """
        request_headers = {"Accept": accept or (BINARY_ACCEPT if binary else HTML_ACCEPT)}
        request_headers.update(headers or {})

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception_type((UnreachableError, FetchTimeoutError)),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._get_once(
                    url,
                    request_headers,
                    timeout=timeout or self.timeout,
                    verify=verify,
                    binary=binary,
                    attempt_number=attempt.retry_state.attempt_number,
                )
        raise UnreachableError(f"Failed to fetch {url}", url=url, attempts=self.max_retries + 1)

    @staticmethod
    def _log_retry(retry_state) -> None:
        record_fetch_retry()
        error = retry_state.outcome.exception()
        logger.info(
            "fetch_retry url=%s attempt=%s wait_s=%.1f error=%s",
            getattr(error, "url", None), retry_state.attempt_number + 1, retry_state.next_action.sleep, error,
        )

    def _get_once(self, url, request_headers, *, timeout, verify, binary, attempt_number) -> FetchResult:
        try:
            response = self.session.get(
                url,
                headers=request_headers,
                timeout=timeout,
                verify=verify,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as exc:
            record_fetch("timeout")
            raise FetchTimeoutError(f"Timeout fetching {url}", url=url, attempts=attempt_number) from exc
        except requests.RequestException as exc:
            record_fetch("error")
            raise UnreachableError(f"Request failed for {url}: {exc}", url=url, attempts=attempt_number) from exc

        status = response.status_code
        if status == 404:
            record_fetch("not_found")
            raise NotFoundError(f"Not found: {url}", url=url, attempts=attempt_number, status_code=404)
        if not 200 <= status < 300:
            record_fetch("bad_status")
            raise UnreachableError(f"HTTP {status} for {url}", url=url, attempts=attempt_number, status_code=status)

        record_fetch("ok")
        return self._to_result(url, response, binary)

    def fetch_text(self, url: str, **kwargs) -> str:
        return self.fetch(url, **kwargs).text

    def fetch_bytes(self, url: str, **kwargs) -> bytes:
        return self.fetch(url, binary=True, **kwargs).content

    def fetch_document(self, url: str, policy: FetchPolicy = DEFAULT_POLICY) -> FetchResult:
        """
        Fetch a document of unknown type (HTML page or PDF) under a source policy.

        The browser path runs only when the plain path raised (anything but a
        404) or came back empty, and only for policies that opt in.
        """
        target = policy.prepare_url(url)
        verify = not policy.allows_insecure(target)
        try:
            result = self.fetch(target, headers=policy.headers, verify=verify, accept=DOCUMENT_ACCEPT)
            if result.is_empty:
                raise UnreachableError(f"Empty body from {target}", url=target, status_code=result.status_code)
            return result
        except NotFoundError:
            raise
        except FetchError as exc:
            if not (policy.browser_fallback and BROWSER_FALLBACK_ENABLED):
                raise
            logger.warning("Plain fetch failed for %s (%s), trying headless browser", target, exc)
            return self._render(target, ignore_https_errors=not verify, cause=exc)

    def _render(self, url: str, *, ignore_https_errors: bool, cause: Exception) -> FetchResult:
        try:
            html = self.browser_renderer(url, ignore_https_errors=ignore_https_errors, timeout_ms=BROWSER_TIMEOUT_MS)
        except PlaywrightError as exc:
            record_browser_fallback("error")
            raise UnreachableError(f"Browser render failed for {url}: {exc}", url=url) from exc
        if not (html or "").strip():
            record_browser_fallback("empty")
            raise UnreachableError(f"Browser render returned nothing for {url}", url=url) from cause
        record_browser_fallback("ok")
        return FetchResult(url=url, status_code=200, content_type="text/html", text=html, via_browser=True)

    @staticmethod
    def _to_result(url: str, response, binary: bool) -> FetchResult:
        content_type = (response.headers.get("Content-Type") or response.headers.get("content-type") or "")
        is_pdf = "pdf" in content_type.lower()
        if binary or is_pdf:
            return FetchResult(
                url=url,
                status_code=response.status_code,
                content_type=content_type,
                content=response.content or b"",
            )
        return FetchResult(
            url=url,
            status_code=response.status_code,
            content_type=content_type,
            text=response.text or "",
        )
