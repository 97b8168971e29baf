"""Static file server shared by every project of a run.

Each page tags its requests with a ``test-project`` header holding the
project index, so one server on one port serves all project trees at once.
"""

from __future__ import annotations

import logging
import threading
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Sequence
from urllib.parse import parse_qs, urlsplit

from screenshot_runner.executor.capturer import PROJECT_HEADER

logger = logging.getLogger(__name__)


class ProjectRequestHandler(SimpleHTTPRequestHandler):
    """Serves files from the root of the project named by the request."""

    server: "StaticFileServer._Server"

    def _project_root(self) -> Path | None:
        marker = self.headers.get(PROJECT_HEADER)
        if marker is None:
            values = parse_qs(urlsplit(self.path).query).get(PROJECT_HEADER)
            marker = values[0] if values else None
        if marker is None:
            return None
        try:
            index = int(marker)
        except ValueError:
            return None
        roots = self.server.project_roots
        if not 0 <= index < len(roots):
            return None
        return roots[index]

    def _serve(self, method) -> None:
        root = self._project_root()
        if root is None:
            self.send_error(HTTPStatus.NOT_FOUND, "Unknown or missing project marker")
            return
        self.directory = str(root)
        method()

    def do_GET(self) -> None:  # noqa: N802
        self._serve(super().do_GET)

    def do_HEAD(self) -> None:  # noqa: N802
        self._serve(super().do_HEAD)

    def end_headers(self) -> None:
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class StaticFileServer:
    """Threaded HTTP server dispatching requests per project."""

    class _Server(ThreadingHTTPServer):
        daemon_threads = True
        project_roots: tuple[Path, ...] = ()

    def __init__(self, roots: Sequence[Path], port: int = 8080, host: str = "127.0.0.1"):
        self.roots = tuple(roots)
        self.host = host
        self.requested_port = port
        self._httpd: StaticFileServer._Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        if self._httpd is None:
            return self.requested_port
        return self._httpd.server_address[1]

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> "StaticFileServer":
        """Bind the port and serve on a background thread.

        Raises:
            OSError: if the port cannot be bound.
        """
        self._httpd = self._Server((self.host, self.requested_port), ProjectRequestHandler)
        self._httpd.project_roots = self.roots
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Starting test server on port: %d", self.port)
        return self

    def close(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        self._httpd = None
        self._thread = None
        logger.debug("Test server stopped")

    def __enter__(self) -> "StaticFileServer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()
