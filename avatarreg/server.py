# avatarreg/server.py
"""
HTTP server for the avatar registry.

Provides a JSON API over a Registry. The caller identity arrives in the
X-Caller header and is assumed to be already authenticated upstream.

Endpoints:
    POST /avatars                   - Create an avatar
    GET  /avatars/:id               - Get an avatar
    POST /avatars/:id/update        - Update an avatar
    POST /avatars/:id/transfer      - Transfer an avatar
    POST /avatars/:id/deactivate    - Deactivate an avatar
    POST /avatars/:id/reactivate    - Reactivate an avatar
    GET  /owners/:identity          - Ids owned by an identity
    GET  /stats                     - Registry counters
    GET  /events                    - Emitted notifications
    POST /admin/pause               - Emergency pause (admin only)
    GET  /health                    - Liveness
"""

import json
import logging
import re
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

from .errors import Inactive, InvalidArgument, NotFound, RegistryError, Unauthorized
from .registry import Registry

logger = logging.getLogger(__name__)

CALLER_HEADER = "X-Caller"

_AVATAR_PATH = re.compile(r"^/avatars/(\d+)$")
_AVATAR_ACTION_PATH = re.compile(r"^/avatars/(\d+)/(update|transfer|deactivate|reactivate)$")

_ERROR_STATUS = {
    InvalidArgument: 400,
    Unauthorized: 403,
    NotFound: 404,
    Inactive: 409,
}


def error_status(error: RegistryError) -> int:
    """HTTP status for a registry error."""
    for error_cls, status in _ERROR_STATUS.items():
        if isinstance(error, error_cls):
            return status
    return 400


class RegistryServer:
    """
    HTTP server for the avatar registry.

    Usage:
        server = RegistryServer(registry, port=8080)
        server.start()  # Blocking
    """

    def __init__(self, registry: Registry, host: str = "127.0.0.1", port: int = 8080):
        self.registry = registry
        self.host = host
        self.port = port
        self._httpd: Optional[HTTPServer] = None

    def _create_handler(server_instance):
        """Create request handler with access to server instance."""

        class RequestHandler(BaseHTTPRequestHandler):
            server_ref = server_instance

            def log_message(self, format, *args):
                logger.debug(format % args)

            def _send_json(self, data: Any, status: int = 200):
                body = json.dumps(data).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _send_error(self, message: str, status: int = 400):
                self._send_json({"error": message}, status)

            def _read_json(self) -> Dict[str, Any]:
                content_length = int(self.headers.get("Content-Length", 0))
                if not content_length:
                    return {}
                data = json.loads(self.rfile.read(content_length).decode())
                if not isinstance(data, dict):
                    raise InvalidArgument("Request body must be a JSON object")
                return data

            def _caller(self) -> Optional[str]:
                return self.headers.get(CALLER_HEADER)

            def do_GET(self):
                registry = self.server_ref.registry
                path = urlparse(self.path).path

                try:
                    match = _AVATAR_PATH.match(path)
                    if match:
                        avatar = registry.get_avatar(int(match.group(1)))
                        self._send_json(avatar.to_dict())

                    elif path.startswith("/owners/"):
                        identity = unquote(path[len("/owners/"):])
                        self._send_json({
                            "identity": identity,
                            "avatar_ids": registry.get_owned_ids(identity),
                        })

                    elif path == "/stats":
                        self._send_json({
                            "total_records": registry.get_total_records(),
                            "next_id": registry.next_id,
                            "registered_users": len(registry.registered_users()),
                        })

                    elif path == "/events":
                        self._send_json({
                            "events": [e.to_dict() for e in registry.events.list()],
                        })

                    elif path == "/health":
                        self._send_json({"status": "ok"})

                    else:
                        self._send_error("Not found", 404)

                except RegistryError as e:
                    self._send_error(str(e), error_status(e))

            def do_POST(self):
                registry = self.server_ref.registry
                path = urlparse(self.path).path
                caller = self._caller()

                try:
                    data = self._read_json()

                    if path == "/avatars":
                        avatar_id = registry.create(
                            name=data.get("name", ""),
                            content_hash=data.get("content_hash", ""),
                            initial_attributes=data.get("attributes", []),
                            caller=caller,
                        )
                        self._send_json({"avatar_id": avatar_id}, 201)
                        return

                    if path == "/admin/pause":
                        registry.emergency_pause(caller=caller)
                        self._send_json({"status": "ok"})
                        return

                    match = _AVATAR_ACTION_PATH.match(path)
                    if not match:
                        self._send_error("Not found", 404)
                        return

                    avatar_id = int(match.group(1))
                    action = match.group(2)

                    if action == "update":
                        avatar = registry.update(
                            avatar_id,
                            new_name=data.get("name", ""),
                            new_content_hash=data.get("content_hash", ""),
                            level_increase=data.get("level_increase", 0),
                            new_attributes=data.get("attributes", []),
                            caller=caller,
                        )
                        self._send_json(avatar.to_dict())
                    elif action == "transfer":
                        registry.transfer(avatar_id, data.get("new_owner", ""), caller=caller)
                        self._send_json(registry.get_avatar(avatar_id).to_dict())
                    elif action == "deactivate":
                        registry.deactivate(avatar_id, caller=caller)
                        self._send_json(registry.get_avatar(avatar_id).to_dict())
                    else:
                        registry.reactivate(avatar_id, caller=caller)
                        self._send_json(registry.get_avatar(avatar_id).to_dict())

                except json.JSONDecodeError as e:
                    self._send_error(f"Invalid JSON: {e}")
                except RegistryError as e:
                    self._send_error(str(e), error_status(e))
                except (TypeError, ValueError) as e:
                    self._send_error(str(e))

        return RequestHandler

    def bind(self) -> HTTPServer:
        """Bind the listening socket. Port 0 picks a free port."""
        if self._httpd is None:
            self._httpd = HTTPServer((self.host, self.port), self._create_handler())
            self.port = self._httpd.server_address[1]
        return self._httpd

    def start(self):
        """Start the HTTP server (blocking)."""
        httpd = self.bind()
        logger.info(f"Registry server starting on {self.host}:{self.port}")
        print(f"Registry server running on http://{self.host}:{self.port}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nShutting down...")
            httpd.shutdown()

    def start_background(self) -> threading.Thread:
        """Start the server in a background thread."""
        httpd = self.bind()
        thread = threading.Thread(target=httpd.serve_forever)
        thread.daemon = True
        thread.start()
        logger.info(f"Registry server running in background on {self.host}:{self.port}")
        return thread

    def stop(self):
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
