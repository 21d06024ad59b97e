"""Stand-in for the SDK's functions server, for supervisor and discovery tests.

Behaviour is driven by environment variables:
- FAKE_EXIT_CODE: exit immediately with this code (simulates a startup crash).
- FAKE_ENV_DUMP: write the process environment as JSON to this path.
- FAKE_MANIFEST: file served at /__/functions.yaml (500 when unset).
- FAKE_IGNORE_QUIT: acknowledge /__/quitquitquit but keep running.
- FAKE_NOISY_STDOUT: before binding, write invalid UTF-8 and more output than
  a pipe buffer holds.
"""

from __future__ import annotations

import json
import os
import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer


class Handler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        if self.path == "/__/quitquitquit":
            self._reply(200, b"ok")
            if not os.environ.get("FAKE_IGNORE_QUIT"):
                threading.Thread(target=self.server.shutdown, daemon=True).start()
        elif self.path == "/__/functions.yaml":
            manifest = os.environ.get("FAKE_MANIFEST")
            if not manifest:
                self._reply(500, b"no manifest configured")
                return
            with open(manifest, "rb") as f:
                self._reply(200, f.read())
        else:
            self._reply(404, b"not found")

    def _reply(self, status: int, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        print(format % args, flush=True)


def main() -> None:
    if "FAKE_EXIT_CODE" in os.environ:
        sys.exit(int(os.environ["FAKE_EXIT_CODE"]))
    dump = os.environ.get("FAKE_ENV_DUMP")
    if dump:
        with open(dump, "w", encoding="utf-8") as f:
            json.dump(dict(os.environ), f)
    if os.environ.get("FAKE_NOISY_STDOUT"):
        sys.stdout.buffer.write(b"\xff\xfe bad bytes\n")
        for i in range(4000):
            sys.stdout.buffer.write(f"{i:05d} {'x' * 93}\n".encode())
        sys.stdout.buffer.flush()

    server = HTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler)
    print(f"serving on {server.server_port}", flush=True)
    server.serve_forever()


if __name__ == "__main__":
    main()
