"""
Lightweight mock registry API for live async e2e testing.

Point TELNYX_API_BASE_URL at http://<host>:8080/v2.

Endpoints:
- POST /v2/10dlc/brand              -> records request, returns a new brandId
- POST /v2/10dlc/campaignBuilder    -> records request, returns a new campaignId
- GET  /v2/10dlc/brand/<id>         -> brand status (MOCK_IDENTITY_STATUS, default VERIFIED)
- GET  /v2/10dlc/campaign/<id>      -> campaign status (MOCK_CAMPAIGN_STATUS, default MNO_PROVISIONED)
- GET  /_last                       -> returns last recorded request
- POST /_reset                      -> clears recorded requests
- GET  /_health                     -> returns 200

Set MOCK_FAIL_STATUS (e.g. 503) to answer every registry call with that status.
"""
import itertools
import json
import os
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional


LAST_REQUEST: Optional[dict] = None
REQUEST_COUNT = 0
_ids = itertools.count(1)


class Handler(BaseHTTPRequestHandler):
    def _send_json(self, status_code: int, payload: dict) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _record(self) -> dict:
        global LAST_REQUEST, REQUEST_COUNT

        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length).decode("utf-8") if length else ""
        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            payload = {"_raw": raw}

        REQUEST_COUNT += 1
        LAST_REQUEST = {
            "method": self.command,
            "path": self.path,
            "headers": {k.lower(): v for k, v in self.headers.items()},
            "payload": payload,
        }
        return payload

    def _forced_failure(self) -> bool:
        fail_status = os.getenv("MOCK_FAIL_STATUS")
        if not fail_status:
            return False
        self._send_json(int(fail_status), {"errors": [{"title": "Mock failure", "detail": "Forced by MOCK_FAIL_STATUS"}]})
        return True

    def do_GET(self):  # noqa: N802
        if self.path == "/_health":
            return self._send_json(200, {"status": "ok"})

        if self.path == "/_last":
            return self._send_json(200, {"last": LAST_REQUEST, "count": REQUEST_COUNT})

        if self.path.startswith("/v2/10dlc/brand/"):
            self._record()
            if self._forced_failure():
                return None
            brand_id = self.path.rsplit("/", 1)[-1]
            return self._send_json(200, {"data": {
                "brandId": brand_id,
                "status": "OK",
                "identityStatus": os.getenv("MOCK_IDENTITY_STATUS", "VERIFIED"),
            }})

        if self.path.startswith("/v2/10dlc/campaign/"):
            self._record()
            if self._forced_failure():
                return None
            campaign_id = self.path.rsplit("/", 1)[-1]
            return self._send_json(200, {"data": {
                "campaignId": campaign_id,
                "campaignStatus": os.getenv("MOCK_CAMPAIGN_STATUS", "MNO_PROVISIONED"),
            }})

        return self._send_json(404, {"errors": [{"code": "10005", "title": "Resource not found"}]})

    def do_POST(self):  # noqa: N802
        global LAST_REQUEST, REQUEST_COUNT

        if self.path == "/_reset":
            LAST_REQUEST = None
            REQUEST_COUNT = 0
            return self._send_json(200, {"status": "reset"})

        if self.path == "/v2/10dlc/brand":
            payload = self._record()
            if self._forced_failure():
                return None
            n = next(_ids)
            return self._send_json(200, {"data": {
                "brandId": f"MOCK-B{n}",
                "tcrBrandId": f"BMOCK{n}",
                "displayName": payload.get("displayName"),
                "identityStatus": "UNVERIFIED",
            }})

        if self.path == "/v2/10dlc/campaignBuilder":
            payload = self._record()
            if self._forced_failure():
                return None
            return self._send_json(200, {"data": {
                "campaignId": f"MOCK-C{next(_ids)}",
                "brandId": payload.get("brandId"),
                "campaignStatus": "TCR_PENDING",
            }})

        return self._send_json(404, {"errors": [{"code": "10005", "title": "Resource not found"}]})

    def log_message(self, format, *args):  # noqa: A003
        # Silence default logging to keep test output clean.
        return


def main() -> None:
    port = int(os.getenv("MOCK_REGISTRY_PORT", "8080"))
    server = HTTPServer(("0.0.0.0", port), Handler)
    server.serve_forever()


if __name__ == "__main__":
    main()
