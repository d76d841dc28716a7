"""
Minimal backend HTTP server for the MedWatch anomaly engine.

Exposes the detector, anomaly review, alert acknowledgement and rule
management without introducing new dependencies. The detection engine and
alert manager live on an asyncio loop in a background thread; request
handlers submit coroutines to that loop.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Coroutine, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from dotenv import load_dotenv

from backend.alerts import AlertManager, default_channels
from backend.storage import InMemoryStore
from src.anomaly import DetectionEngine
from src.core.exceptions import EngineNotRunningError, NotFoundError
from src.core.logging_config import setup_logging

load_dotenv()

logger = logging.getLogger("backend")

REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))


def _webhook_endpoints() -> List[str]:
    raw = os.getenv("WEBHOOK_ENDPOINTS", "")
    return [e.strip() for e in raw.split(",") if e.strip()]


class Runtime:
    """Event loop thread plus the engine, alert manager and store it drives."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_loop, name="medwatch-loop", daemon=True)
        self.store = InMemoryStore()
        self.alerts = AlertManager(channels=default_channels(_webhook_endpoints()))
        self.engine = DetectionEngine(
            data_source=self.store,
            store=self.store,
            alert_handler=self.alerts.send_alert,
        )

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> None:
        self.thread.start()

    def call(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(REQUEST_TIMEOUT_SECONDS)

    def close(self) -> None:
        self.call(self.engine.stop())
        self.call(self.alerts.shutdown())
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)


RUNTIME: Optional[Runtime] = None


def _runtime() -> Runtime:
    if RUNTIME is None:
        raise RuntimeError("Backend runtime not started")
    return RUNTIME


class BackendHandler(BaseHTTPRequestHandler):
    server_version = "MedWatchBackend/1.0"

    def _send_json(self, status: int, payload: Any) -> None:
        body = json.dumps(payload, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> Optional[Any]:
        length = int(self.headers.get("Content-Length", "0"))
        if length <= 0:
            return None
        data = self.rfile.read(length)
        try:
            return json.loads(data.decode("utf-8"))
        except json.JSONDecodeError:
            return None

    def _parts(self) -> List[str]:
        return [p for p in urlparse(self.path).path.split("/") if p]

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.end_headers()

    def do_GET(self) -> None:
        runtime = _runtime()
        url = urlparse(self.path)
        query = parse_qs(url.query)

        if url.path == "/health":
            self._send_json(200, {"status": "ok", "detector_running": runtime.engine.is_running})
            return

        if url.path == "/api/stats":
            self._send_json(
                200,
                {
                    "detection": runtime.engine.get_statistics(),
                    "alerts": runtime.alerts.get_alert_stats(),
                },
            )
            return

        if url.path == "/api/anomalies":
            limit = int(query.get("limit", ["50"])[0])
            anomalies = runtime.engine.get_recent_anomalies(limit)
            self._send_json(
                200,
                {
                    "anomalies": [a.model_dump(mode="json") for a in anomalies],
                    "total_count": len(anomalies),
                },
            )
            return

        if url.path == "/api/alerts":
            limit = int(query.get("limit", ["50"])[0])
            alerts = runtime.alerts.get_recent_alerts(limit)
            self._send_json(
                200,
                {
                    "alerts": [a.model_dump(mode="json") for a in alerts],
                    "total_count": len(alerts),
                },
            )
            return

        if url.path == "/api/rules":
            self._send_json(200, {"rules": runtime.engine.rule_engine.get_rule_stats()})
            return

        self._send_json(404, {"detail": "Not found"})

    def do_POST(self) -> None:
        parts = self._parts()

        if parts == ["api", "data"]:
            self._handle_data()
            return

        if parts[:2] == ["api", "detector"] and len(parts) == 3:
            self._handle_detector(parts[2])
            return

        if len(parts) == 4 and parts[:2] == ["api", "anomalies"] and parts[3] == "status":
            self._handle_anomaly_status(parts[2])
            return

        if len(parts) == 4 and parts[:2] == ["api", "alerts"] and parts[3] == "acknowledge":
            self._handle_acknowledge(parts[2])
            return

        if len(parts) == 4 and parts[:2] == ["api", "rules"] and parts[3] in ("enable", "disable"):
            self._handle_rule_toggle(parts[2], parts[3] == "enable")
            return

        self._send_json(404, {"detail": "Not found"})

    def _handle_data(self) -> None:
        payload = self._read_json()
        if payload is None:
            self._send_json(400, {"detail": "Expected a JSON object or list"})
            return

        records = payload if isinstance(payload, list) else [payload]
        runtime = _runtime()
        accepted = 0
        try:
            for record in records:
                if runtime.call(runtime.engine.submit(record)):
                    accepted += 1
        except EngineNotRunningError as e:
            self._send_json(409, {"detail": str(e)})
            return

        self._send_json(
            202,
            {"accepted": accepted, "rejected": len(records) - accepted},
        )

    def _handle_detector(self, action: str) -> None:
        runtime = _runtime()
        if action == "start":
            runtime.call(runtime.engine.start())
        elif action == "stop":
            runtime.call(runtime.engine.stop())
        elif action == "run":
            anomalies = runtime.call(runtime.engine.process_batch())
            self._send_json(200, {"anomalies_detected": len(anomalies)})
            return
        else:
            self._send_json(404, {"detail": f"Unknown detector action: {action}"})
            return
        self._send_json(200, {"detector_running": runtime.engine.is_running})

    def _handle_anomaly_status(self, anomaly_id: str) -> None:
        payload = self._read_json() or {}
        status = payload.get("status")
        if not status:
            self._send_json(400, {"detail": "Missing status"})
            return

        runtime = _runtime()
        try:
            anomaly = runtime.call(
                runtime.engine.update_anomaly_status(
                    anomaly_id, status, reviewed_by=payload.get("reviewed_by")
                )
            )
        except NotFoundError as e:
            self._send_json(404, {"detail": str(e)})
            return
        except ValueError as e:
            self._send_json(400, {"detail": str(e)})
            return
        self._send_json(200, anomaly.model_dump(mode="json"))

    def _handle_acknowledge(self, alert_id: str) -> None:
        payload = self._read_json() or {}
        acknowledged_by = payload.get("acknowledged_by")
        if not acknowledged_by:
            self._send_json(400, {"detail": "Missing acknowledged_by"})
            return

        runtime = _runtime()
        try:
            alert = runtime.call(runtime.alerts.acknowledge_alert(alert_id, acknowledged_by))
        except NotFoundError as e:
            self._send_json(404, {"detail": str(e)})
            return
        self._send_json(200, alert.model_dump(mode="json"))

    def _handle_rule_toggle(self, rule_id: str, enable: bool) -> None:
        rules = _runtime().engine.rule_engine
        changed = rules.enable_rule(rule_id) if enable else rules.disable_rule(rule_id)
        if not changed:
            self._send_json(404, {"detail": f"Rule not found: {rule_id}"})
            return
        self._send_json(200, {"rule_id": rule_id, "enabled": enable})


def run(host: str, port: int, autostart: bool) -> None:
    global RUNTIME
    RUNTIME = Runtime()
    RUNTIME.start()
    if autostart:
        RUNTIME.call(RUNTIME.engine.start())

    logger.info("Starting backend server on %s:%s", host, port)
    server = ThreadingHTTPServer((host, port), BackendHandler)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
        RUNTIME.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="MedWatch anomaly engine backend server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-autostart", action="store_true", help="Do not start the detector on launch")
    args = parser.parse_args()

    setup_logging()
    run(args.host, args.port, autostart=not args.no_autostart)


if __name__ == "__main__":
    main()
