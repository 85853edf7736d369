"""HTTP API server exposing the registry snapshot as JSON."""

import errno
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

from .config import ApiConfig
from .models import WebsiteState
from .registry import MonitorRegistry

logger = logging.getLogger(__name__)

# Largest POST body accepted by /websites.
MAX_REQUEST_BODY = 16 * 1024


class ApiError(Exception):
    """Raised when an API operation fails."""
    pass


def _build_status_response(states: List[WebsiteState]) -> Dict[str, Any]:
    """Build the full status response with summary."""
    sites = [s.to_dict(include_history=False) for s in sorted(states, key=lambda s: s.url)]
    up_count = sum(1 for s in states if s.is_up)

    return {
        "websites": sites,
        "summary": {
            "total": len(states),
            "up": up_count,
            "down": len(states) - up_count,
        },
    }


class StatusHandler(BaseHTTPRequestHandler):
    """HTTP request handler for status API endpoints."""

    # Seconds a client may stay idle before its connection is dropped
    timeout = 10

    # Class-level reference set by factory
    registry: Optional[MonitorRegistry] = None

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use Python logging instead of stderr."""
        logger.debug("API %s - %s", self.address_string(), format % args)

    def _send_json(self, code: int, data: Dict[str, Any]) -> None:
        """Send a JSON response with the given status code."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def _send_error_json(self, code: int, message: str) -> None:
        """Send a JSON error response."""
        self._send_json(code, {"error": message})

    def do_GET(self) -> None:
        """Handle GET requests."""
        try:
            parts = urlsplit(self.path)
            if parts.path == "/health":
                self._send_json(200, {"status": "ok"})
            elif parts.path == "/status":
                self._handle_status_all()
            elif parts.path == "/history":
                self._handle_history(parse_qs(parts.query).get("url", [""])[0])
            else:
                self._send_error_json(404, "Not found")
        except Exception as e:
            logger.exception("Error handling request: %s", e)
            self._send_error_json(500, "Internal server error")

    def do_POST(self) -> None:
        """Handle POST requests."""
        try:
            if urlsplit(self.path).path == "/websites":
                self._handle_add_website()
            else:
                self._send_error_json(404, "Not found")
        except Exception as e:
            logger.exception("Error handling POST request: %s", e)
            self._send_error_json(500, "Internal server error")

    def _handle_status_all(self) -> None:
        """Handle GET /status endpoint."""
        if self.registry is None:
            self._send_error_json(503, "Registry not available")
            return

        states = list(self.registry.snapshot().values())
        self._send_json(200, _build_status_response(states))

    def _handle_history(self, url: str) -> None:
        """Handle GET /history?url=<url> endpoint."""
        if self.registry is None:
            self._send_error_json(503, "Registry not available")
            return
        if not url:
            self._send_error_json(400, "Query parameter 'url' is required")
            return

        state = self.registry.get(url)
        if state is None:
            self._send_error_json(404, f"URL '{url}' is not monitored")
            return

        self._send_json(200, state.to_dict(include_history=True))

    def _handle_add_website(self) -> None:
        """Handle POST /websites endpoint with a {"url": ...} body."""
        if self.registry is None:
            self._send_error_json(503, "Registry not available")
            return

        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            self._send_error_json(400, "Invalid Content-Length")
            return
        if length <= 0 or length > MAX_REQUEST_BODY:
            self._send_error_json(400, "Request body must be a JSON object")
            return

        try:
            payload = json.loads(self.rfile.read(length).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._send_error_json(400, "Request body must be valid JSON")
            return

        url = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            self._send_error_json(400, "Field 'url' must be an http:// or https:// URL")
            return

        self.registry.add_website(url)
        self._send_json(201, {"url": url})


def _create_handler_class(registry: MonitorRegistry) -> type:
    """Create a handler class with the registry bound."""

    class BoundStatusHandler(StatusHandler):
        pass

    BoundStatusHandler.registry = registry
    return BoundStatusHandler


class ApiServer:
    """Serves the registry over HTTP from a background thread.

    Each request is handled in its own daemon thread, so a slow or idle
    client cannot hold up other callers.
    """

    def __init__(self, config: ApiConfig, registry: MonitorRegistry) -> None:
        self.config = config
        self.registry = registry
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind the port and start serving.

        Raises:
            ApiError: If the port cannot be bound.
        """
        if self.is_running:
            logger.warning("API server is already running")
            return

        try:
            server = ThreadingHTTPServer(("", self.config.port), _create_handler_class(self.registry))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise ApiError(f"Port {self.config.port} is already in use")
            if e.errno == errno.EACCES:
                raise ApiError(f"Not permitted to bind port {self.config.port}")
            raise ApiError(f"Could not bind API port {self.config.port}: {e}")

        server.daemon_threads = True
        self._server = server
        self._thread = threading.Thread(target=server.serve_forever, name="api-server", daemon=True)
        self._thread.start()
        logger.info("API listening on port %d", self.config.port)

    def stop(self) -> None:
        """Stop serving and release the port."""
        if self._server is None:
            return

        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)

        self._server = None
        self._thread = None
        logger.info("API server stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
