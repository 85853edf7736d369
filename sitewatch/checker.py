"""HTTP health checks that classify a single probe into Up or Down."""

import logging

import requests

from .models import CheckOutcome, Down, Up

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0  # seconds

DEFAULT_USER_AGENT = "sitewatch/0.1"

# Upper bound on how much of an error body is kept as the Down message.
MAX_BODY_SIZE = 64 * 1024

_CHUNK_SIZE = 8192


def _is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


def _decode_header_value(value: str) -> str:
    """Re-decode a header value as UTF-8.

    http.client hands header values over as latin-1 text. Bytes that are not
    valid UTF-8 become U+FFFD instead of failing the probe.
    """
    try:
        raw = value.encode("latin-1")
    except UnicodeEncodeError:
        return value
    return raw.decode("utf-8", errors="replace")


def _parse_content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


def _read_error_body(response: requests.Response) -> str:
    """Read up to MAX_BODY_SIZE bytes of the body as text, best effort."""
    chunks: list[bytes] = []
    remaining = MAX_BODY_SIZE
    try:
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if not chunk:
                continue
            chunks.append(chunk[:remaining])
            remaining -= len(chunk)
            if remaining <= 0:
                break
    except (requests.RequestException, OSError) as e:
        logger.debug("Could not read error body from %s: %s", response.url, e)
        return f"HTTP {response.status_code}"

    body = b"".join(chunks).decode("utf-8", errors="replace")
    if not body:
        reason = response.reason or ""
        return f"HTTP {response.status_code} {reason}".strip()
    return body


class HealthChecker:
    """Performs one GET per probe and classifies the response.

    Redirects are followed and the final response is classified. Only 2xx
    counts as Up. Every failure, including malformed URLs, is returned as a
    Down outcome; probe() never raises for network problems.

    Example:
        checker = HealthChecker(timeout=5)
        outcome = checker.probe("https://example.com")
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the checker.

        Args:
            timeout: Default per-probe timeout in seconds.
            user_agent: User-Agent header sent with every probe.
            session: Optional session to reuse connections; one is created if omitted.
        """
        if timeout <= 0:
            raise ValueError(f"Probe timeout must be positive (got {timeout})")
        self.timeout = timeout
        self._user_agent = user_agent
        self._session = session or requests.Session()

    def probe(self, url: str, timeout: float | None = None) -> CheckOutcome:
        """Probe a URL once.

        Args:
            url: HTTP(S) URL to GET.
            timeout: Per-call timeout in seconds; falls back to the checker default.

        Returns:
            Up for a 2xx response, Down otherwise (status 0 if no response arrived).

        Raises:
            ValueError: If url is empty.
        """
        if not url:
            raise ValueError("URL cannot be empty")

        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            with self._session.get(
                url,
                timeout=effective_timeout,
                headers={"User-Agent": self._user_agent},
                allow_redirects=True,
                stream=True,
            ) as response:
                status_code = response.status_code
                if _is_success_status(status_code):
                    headers = {name: _decode_header_value(value) for name, value in response.headers.items()}
                    outcome: CheckOutcome = Up(
                        status_code=status_code,
                        headers=headers,
                        content_length=_parse_content_length(response.headers.get("Content-Length")),
                    )
                else:
                    outcome = Down(status_code=status_code, error_message=_read_error_body(response))

        except requests.RequestException as e:
            outcome = Down(status_code=0, error_message=str(e))

        except Exception as e:
            # urllib3 and idna can raise outside the RequestException tree on odd URLs
            outcome = Down(status_code=0, error_message=str(e) or e.__class__.__name__)

        if outcome.is_up():
            logger.debug("%s: UP (%d)", url, outcome.status_code)
        else:
            logger.warning("%s: DOWN (%d) %s", url, outcome.status_code, outcome.error_message[:200])
        return outcome

    def close(self) -> None:
        """Release pooled connections held by the session."""
        self._session.close()
