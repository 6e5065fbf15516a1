from http.server import BaseHTTPRequestHandler, HTTPServer
import json
import logging
import os

from block_to_jcr import extract_from_payload, read_json_body


class DevHandler(BaseHTTPRequestHandler):
    def _set_headers(self, status=200):
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def _send_json(self, payload, status=200):
        self._set_headers(status)
        self.wfile.write(json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8"))

    def do_OPTIONS(self):
        self._set_headers(204)

    def do_POST(self):
        if self.path == "/extract":
            return self._handle_extract()

        self._send_json({"error": "Not found"}, status=404)

    def _handle_extract(self):
        payload, error = read_json_body(self)
        if error:
            self._send_json({"error": error}, status=400)
            return

        try:
            result = extract_from_payload(payload)
        except ValueError as exc:
            self._send_json({"error": str(exc)}, status=400)
            return
        except Exception as exc:
            self._send_json({"error": f"Extraction failed: {exc}"}, status=500)
            return

        self._send_json(result, status=200)


def run():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    port = int(os.environ.get("DEV_EXTRACT_PORT", "5005"))
    server = HTTPServer(("0.0.0.0", port), DevHandler)
    print(f"Dev API running on http://localhost:{port}")
    print(f"- POST http://localhost:{port}/extract")
    server.serve_forever()


if __name__ == "__main__":
    run()
