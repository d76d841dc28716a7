"""
Integration test for the backend HTTP surface.

Starts the real server on an ephemeral port and drives it over HTTP.
"""

import json
import threading
import urllib.error
import urllib.request
from http.server import ThreadingHTTPServer

import pytest

from backend import main as backend_main


pytestmark = pytest.mark.integration


@pytest.fixture
def base_url(monkeypatch):
    runtime = backend_main.Runtime()
    runtime.start()
    monkeypatch.setattr(backend_main, "RUNTIME", runtime)

    server = ThreadingHTTPServer(("127.0.0.1", 0), backend_main.BackendHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        runtime.close()


def _request(url, payload=None):
    data = None if payload is None else json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(url, data=data, method="GET" if data is None else "POST")
    request.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status, json.loads(response.read())
    except urllib.error.HTTPError as e:
        return e.code, json.loads(e.read())


class TestBackendApi:
    """Test the REST endpoints end to end."""

    def test_health_and_unknown_route(self, base_url):
        assert _request(f"{base_url}/health") == (200, {"status": "ok", "detector_running": False})
        assert _request(f"{base_url}/nope")[0] == 404

    def test_data_requires_running_detector(self, base_url, insulin_record):
        status, body = _request(f"{base_url}/api/data", insulin_record)

        assert status == 409

    def test_submit_detect_review_acknowledge(self, base_url, insulin_record):
        assert _request(f"{base_url}/api/detector/start", {}) == (200, {"detector_running": True})

        status, body = _request(f"{base_url}/api/data", [insulin_record, {"medicineName": "Insulin"}])
        assert (status, body) == (202, {"accepted": 1, "rejected": 1})

        assert _request(f"{base_url}/api/detector/run", {})[0] == 200

        status, body = _request(f"{base_url}/api/anomalies?limit=10")
        assert status == 200
        assert body["total_count"] == 1
        anomaly = body["anomalies"][0]
        assert anomaly["rule_id"] == "complete-stockout"
        assert anomaly["severity"] == "critical"

        status, body = _request(
            f"{base_url}/api/anomalies/{anomaly['id']}/status",
            {"status": "investigating", "reviewed_by": "pharmacist"},
        )
        assert status == 200
        assert body["status"] == "investigating"

        status, body = _request(f"{base_url}/api/alerts")
        alert = body["alerts"][0]
        assert alert["status"] == "sent"
        assert alert["rule"]["channels"] == ["email", "sms", "slack"]

        status, body = _request(
            f"{base_url}/api/alerts/{alert['id']}/acknowledge", {"acknowledged_by": "pharmacist"}
        )
        assert status == 200
        assert body["status"] == "acknowledged"

        status, body = _request(f"{base_url}/api/stats")
        assert body["detection"]["total_anomalies"] == 1
        assert body["alerts"]["by_status"] == {"acknowledged": 1}

    def test_review_errors(self, base_url):
        assert _request(f"{base_url}/api/anomalies/missing/status", {"status": "resolved"})[0] == 404
        assert _request(f"{base_url}/api/anomalies/missing/status", {"reviewed_by": "x"})[0] == 400
        assert _request(f"{base_url}/api/alerts/missing/acknowledge", {"acknowledged_by": "x"})[0] == 404
        assert _request(f"{base_url}/api/alerts/missing/acknowledge", {"other": "x"})[0] == 400

    def test_rule_toggle(self, base_url):
        assert _request(f"{base_url}/api/rules/complete-stockout/disable", {}) == (
            200,
            {"rule_id": "complete-stockout", "enabled": False},
        )
        status, body = _request(f"{base_url}/api/rules")
        assert status == 200
        assert len(body["rules"]) == 14
        assert _request(f"{base_url}/api/rules/unknown/enable", {})[0] == 404
