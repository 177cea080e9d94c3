"""HTTP front end for the reference portal backend."""
from __future__ import annotations

import json
import logging
import re
import signal
import threading
import time
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Tuple
from urllib.parse import parse_qsl, unquote, urlsplit

from .backend import PortalBackend
from .errors import GatingViolation, PortalError, RecordNotFound, ValidationError
from .identity import TicketContext
from .models import MediaFile, TicketScope, optional_text
from .placeholders import placeholder_png, view_key_for_filename

logger = logging.getLogger(__name__)

Response = Tuple[int, Any]
RouteHandler = Callable[[PortalBackend, List[str], Dict[str, str], Dict[str, Any]], Response]

_SEGMENT = r"([^/]+)"
_ROUTES: List[Tuple[str, Pattern[str], RouteHandler]] = []


def route(method: str, pattern: str) -> Callable[[RouteHandler], RouteHandler]:
    compiled = re.compile("^" + pattern.replace("{}", _SEGMENT) + "$")

    def register(func: RouteHandler) -> RouteHandler:
        _ROUTES.append((method, compiled, func))
        return func

    return register


def _context(query: Mapping[str, str], body: Mapping[str, Any]) -> TicketContext:
    merged: Dict[str, Any] = dict(query)
    merged.update({key: value for key, value in body.items() if key in TicketContext.__dataclass_fields__})
    return TicketContext.from_mapping(merged)


@route("GET", "/api/specs/{}/{}")
def _get_spec(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    return 200, backend.get_specification(*args).to_dict()


@route("POST", "/api/specs/{}/{}/media")
def _upload(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    file = MediaFile.from_payload(body.get("file"))
    spec = backend.upload_media(args[0], args[1], body.get("view_key"), file, body.get("actor") or "")
    return 201, spec.to_dict()


@route("POST", "/api/specs/{}/{}/media/{}/replace")
def _replace(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    file = MediaFile.from_payload(body.get("file"))
    return 200, backend.replace_media(args[0], args[1], args[2], file, body.get("actor") or "").to_dict()


@route("DELETE", "/api/specs/{}/{}/media/{}")
def _delete_media(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    return 200, backend.delete_media(*args).to_dict()


@route("PATCH", "/api/specs/{}/{}/media/{}/status")
def _media_status(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    spec = backend.set_media_status(args[0], args[1], args[2], body.get("status"), body.get("actor") or "")
    return 200, spec.to_dict()


@route("POST", "/api/specs/{}/{}/annotations")
def _add_annotation(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    media_id = body.get("media_id") or body.get("mediaId") or ""
    annotation = backend.add_annotation(
        args[0], args[1], media_id, body.get("x"), body.get("y"), body.get("note") or "", body.get("author") or ""
    )
    return 201, annotation.to_dict()


@route("DELETE", "/api/specs/{}/{}/annotations/{}")
def _delete_annotation(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    backend.delete_annotation(*args)
    return 204, None


@route("GET", "/api/tickets")
def _list_tickets(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    return 200, [ticket.to_dict() for ticket in backend.list_tickets(optional_text(query.get("order_id")))]


@route("POST", "/api/tickets")
def _create_ticket(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    scope = TicketScope(
        order_id=optional_text(body.get("order_id")) or "",
        position_id=optional_text(body.get("position_id")),
        view_key=optional_text(body.get("view_key")),
    )
    ticket = backend.create_ticket(scope, body.get("title") or "", body.get("priority"))
    return 201, ticket.to_dict()


@route("PATCH", "/api/tickets/{}")
def _ticket_status(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    ticket = backend.set_ticket_status(args[0], body.get("status"), _context(query, body))
    return 200, ticket.to_dict()


@route("DELETE", "/api/tickets/{}")
def _delete_ticket(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    backend.delete_ticket(args[0], _context(query, body))
    return 204, None


@route("POST", "/api/tickets/{}/comments")
def _add_comment(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    comment = backend.add_comment(args[0], body, _context(query, body))
    return 201, comment.to_dict()


@route("DELETE", "/api/tickets/{}/comments/{}")
def _delete_comment(backend: PortalBackend, args: List[str], query: Dict[str, str], body: Dict[str, Any]) -> Response:
    backend.delete_comment(args[0], args[1], _context(query, body))
    return 204, None


def dispatch(
    backend: PortalBackend,
    method: str,
    path: str,
    query: Optional[Mapping[str, str]] = None,
    body: Optional[Mapping[str, Any]] = None,
) -> Response:
    """Route one API request to the backend and return ``(status, payload)``.

    Status codes: 400 for validation errors, 404 for unknown records or
    routes, 409 when resolving is blocked by open tickets.
    """
    endpoint = path.rstrip("/") or "/"
    for route_method, pattern, handler in _ROUTES:
        if route_method != method.upper():
            continue
        match = pattern.match(endpoint)
        if not match:
            continue
        args = [unquote(value) for value in match.groups()]
        try:
            return handler(backend, args, dict(query or {}), dict(body or {}))
        except GatingViolation as exc:
            return 409, {"error": str(exc)}
        except ValidationError as exc:
            logger.info("Rejected %s %s: %s", method, endpoint, exc)
            return 400, {"error": str(exc)}
        except RecordNotFound as exc:
            return 404, {"error": str(exc)}
        except PortalError as exc:
            logger.warning("%s %s failed: %s", method, endpoint, exc)
            return 400, {"error": str(exc)}
    return 404, {"error": "Unknown endpoint"}


class PortalRequestHandler(SimpleHTTPRequestHandler):
    """JSON API plus placeholder images and uploaded files."""

    def __init__(self, *args, backend: PortalBackend, **kwargs) -> None:
        self.backend = backend
        super().__init__(*args, directory=str(backend.uploads_dir), **kwargs)

    def do_GET(self) -> None:  # pragma: no cover - exercised manually
        parts = urlsplit(self.path)
        if parts.path.startswith("/api/"):
            self._handle_api("GET")
        elif parts.path.startswith("/placeholders/"):
            self._send_placeholder(parts.path.rsplit("/", 1)[-1])
        elif parts.path.startswith("/uploads/"):
            self.path = self.path[len("/uploads"):]
            super().do_GET()
        else:
            self.send_error(404, "Unknown endpoint")

    def do_POST(self) -> None:  # pragma: no cover - exercised manually
        self._handle_api("POST")

    def do_PATCH(self) -> None:  # pragma: no cover - exercised manually
        self._handle_api("PATCH")

    def do_DELETE(self) -> None:  # pragma: no cover - exercised manually
        self._handle_api("DELETE")

    def _handle_api(self, method: str) -> None:
        parts = urlsplit(self.path)
        if not parts.path.startswith("/api/"):
            self.send_error(404, "Unknown endpoint")
            return
        try:
            body = self._read_payload()
        except ValueError:
            self._write_json({"error": "Invalid JSON"}, status=400)
            return
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        status, payload = dispatch(self.backend, method, parts.path, query, body)
        if payload is None:
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        self._write_json(payload, status=status)

    def _send_placeholder(self, filename: str) -> None:
        try:
            encoded = placeholder_png(view_key_for_filename(filename))
        except ValidationError:
            self.send_error(404, "Unknown placeholder")
            return
        self.send_response(200)
        self.send_header("Content-Type", "image/png")
        self.send_header("Content-Length", str(len(encoded)))
        self.send_header("Cache-Control", "public, max-age=86400")
        self.end_headers()
        self.wfile.write(encoded)

    def _read_payload(self) -> Dict[str, Any]:
        """Parse the JSON request body; an empty body is an empty object."""
        length = int(self.headers.get("Content-Length", "0") or 0)
        raw = self.rfile.read(length).decode("utf-8") if length else "{}"
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data

    def _write_json(self, data: Any, status: int = 200) -> None:
        encoded = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args) -> None:  # pragma: no cover
        logger.debug("%s - %s", self.address_string(), format % args)


class PortalWebServer:
    """Threaded HTTP server wrapper with background start and graceful stop."""

    def __init__(self, backend: PortalBackend, host: str = "127.0.0.1", port: int = 0) -> None:
        handler = partial(PortalRequestHandler, backend=backend)
        self.server = ThreadingHTTPServer((host, port), handler)
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()

    def wait_forever(self) -> None:
        """Block until Ctrl+C, then shut down."""
        try:
            signal.pause()
        except AttributeError:
            # Windows does not have pause()
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    @property
    def url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"
