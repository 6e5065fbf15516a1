from http.server import BaseHTTPRequestHandler
from datetime import datetime, timezone
import json
import os
import sys


# Ensure project root is on path so we can import the extractor
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.append(PROJECT_ROOT)

from block_to_jcr import extract_from_payload, read_json_body  # noqa: E402


def _api_log(level: str, event: str, **kwargs) -> None:
    """Structured stdout log; all keys JSON-serializable."""
    payload = {"ts": datetime.now(timezone.utc).isoformat(), "level": level, "event": event, **{k: v for k, v in kwargs.items() if v is not None}}
    print(json.dumps(payload, default=str, ensure_ascii=False), flush=True)


class handler(BaseHTTPRequestHandler):
    def do_POST(self):
        payload, error = read_json_body(self)
        if error:
            _api_log("WARN", "extract_unreadable_body", error=error)
            self._send_json({"error": error}, status=400)
            return

        try:
            result = extract_from_payload(payload)
        except ValueError as exc:
            _api_log("WARN", "extract_bad_request", error=str(exc))
            self._send_json({"error": str(exc)}, status=400)
            return
        except Exception as exc:
            _api_log("ERROR", "extract_failed", error=str(exc))
            self._send_json({"error": f"Extraction failed: {exc}"}, status=500)
            return

        _api_log("INFO", "extract_done", blocks=len(result["blocks"]), diagnostics=len(result["diagnostics"]))
        self._send_json(result, status=200)

    def do_GET(self):
        self._send_json({"error": "Use POST to submit HTML and schema."}, status=405)

    def log_message(self, format, *args):
        _api_log("DEBUG", "http_request", line=format % args)

    def _send_json(self, payload, status=200):
        body = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
