"""
Google Share URL Resolver

Resolves redirector URLs stored in latest_news to the article's real URL.
Two redirector shapes:
1. google.com/url?...&url=<encoded>  and  google.com/share?...&url=<encoded>
   → the destination is in the query string, no network call
2. share.google/<token>
   → HEAD request, follow redirects, take the final URL

Returns structured results with reason codes for logging.
"""

import re
import time
from dataclasses import dataclass
from enum import Enum
from urllib.parse import unquote, urlparse

import httpx

# User agent for requests
USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

REDIRECT_TIMEOUT = 10.0  # seconds
MAX_REDIRECTS = 10

QUERY_PARAM_PATHS = ("/share", "/url")
SHARE_HOST = "share.google"

# First url= parameter of a query string
_URL_PARAM_RE = re.compile(r'(?:^|&)url=([^&]+)')


class UrlKind(str, Enum):
    QUERY_PARAM = "query_param"        # google.com/url, google.com/share
    SHARE_REDIRECT = "share_redirect"  # share.google
    OTHER = "other"


class ReasonCode(str, Enum):
    """Reason codes for resolution results."""
    SUCCESS = "SUCCESS"

    NOT_REDIRECTOR = "NOT_REDIRECTOR"  # Not a known redirector URL
    QUERY_PARAM_MISSING = "QUERY_PARAM_MISSING"  # google.com link without url=
    UNCHANGED = "UNCHANGED"  # Resolved to the same URL
    REDIRECT_STUCK = "REDIRECT_STUCK"  # Destination is still a redirector

    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"

    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    URL_INVALID = "URL_INVALID"  # httpx rejects the stored URL


@dataclass
class ResolveResult:
    """Structured result from URL resolution."""
    success: bool
    resolved_url: str | None
    reason_code: ReasonCode
    kind: UrlKind
    http_status: int | None = None
    elapsed_ms: int = 0
    error_detail: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "resolved_url": self.resolved_url,
            "reason_code": self.reason_code.value,
            "kind": self.kind.value,
            "http_status": self.http_status,
            "elapsed_ms": self.elapsed_ms,
            "error_detail": self.error_detail,
        }


def classify_url(url: str | None) -> UrlKind:
    """Which redirector shape a URL has. Query-param links win over share.google."""
    if not url:
        return UrlKind.OTHER
    try:
        parsed = urlparse(url.strip())
        host = (parsed.hostname or "").lower()
    except ValueError:
        return UrlKind.OTHER

    if (host == "google.com" or host.endswith(".google.com")) and parsed.path.startswith(QUERY_PARAM_PATHS):
        return UrlKind.QUERY_PARAM
    if host == SHARE_HOST:
        return UrlKind.SHARE_REDIRECT
    return UrlKind.OTHER


def is_redirector_url(url: str | None) -> bool:
    """Check if URL is a Google Share / google.com/url / share.google redirector."""
    return classify_url(url) is not UrlKind.OTHER


def extract_query_url(url: str) -> str | None:
    """Percent-decoded value of the first url= query parameter, or None."""
    match = _URL_PARAM_RE.search(urlparse(url).query)
    if not match:
        return None
    return unquote(match.group(1)) or None


def create_http_client() -> httpx.Client:
    """HTTP client for share.google redirects."""
    return httpx.Client(
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
        timeout=REDIRECT_TIMEOUT,
    )


def follow_share_redirect(
    url: str,
    client: httpx.Client
) -> tuple[str | None, ReasonCode, int | None]:
    """
    HEAD the share link and follow redirects.
    Returns (final_url, reason_code, http_status).
    """
    try:
        response = client.head(url, follow_redirects=True, timeout=REDIRECT_TIMEOUT)
    except httpx.TooManyRedirects:
        return None, ReasonCode.TOO_MANY_REDIRECTS, None
    except httpx.TimeoutException:
        return None, ReasonCode.TIMEOUT, None
    except httpx.RequestError:
        return None, ReasonCode.NETWORK_ERROR, None
    except httpx.InvalidURL:
        return None, ReasonCode.URL_INVALID, None

    if response.status_code >= 500:
        return None, ReasonCode.HTTP_5XX, response.status_code
    if response.status_code >= 400:
        return None, ReasonCode.HTTP_4XX, response.status_code

    return str(response.url), ReasonCode.SUCCESS, response.status_code


def resolve_share_url(
    url: str,
    client: httpx.Client
) -> ResolveResult:
    """
    Resolve a redirector URL to the real article URL.

    - Query-param links: decode url= (no HTTP)
    - share.google links: HEAD with redirects followed
    - Anything else: NOT_REDIRECTOR

    A destination that is still a redirector is not accepted.
    """
    start_time = time.perf_counter()
    clean_url = url.strip()
    kind = classify_url(clean_url)

    def result(resolved: str | None, reason: ReasonCode, status: int | None = None,
               detail: str | None = None) -> ResolveResult:
        return ResolveResult(
            success=reason is ReasonCode.SUCCESS,
            resolved_url=resolved,
            reason_code=reason,
            kind=kind,
            http_status=status,
            elapsed_ms=int((time.perf_counter() - start_time) * 1000),
            error_detail=detail,
        )

    if kind is UrlKind.OTHER:
        return result(None, ReasonCode.NOT_REDIRECTOR)

    status = None
    if kind is UrlKind.QUERY_PARAM:
        resolved = extract_query_url(clean_url)
        if not resolved:
            return result(None, ReasonCode.QUERY_PARAM_MISSING, detail="no url= parameter")
    else:
        resolved, reason, status = follow_share_redirect(clean_url, client)
        if not resolved:
            return result(None, reason, status, detail=f"redirect failed: {reason.value}")

    if resolved == clean_url:
        return result(None, ReasonCode.UNCHANGED, status)
    if is_redirector_url(resolved):
        return result(None, ReasonCode.REDIRECT_STUCK, status, detail=resolved)

    return result(resolved, ReasonCode.SUCCESS, status)


def extract_hostname(url: str) -> str:
    """Hostname of an absolute http(s) URL.

    Raises:
        ValueError: URL cannot be parsed or has no host
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")
    return parsed.hostname
