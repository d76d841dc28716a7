"""
In-memory data source and anomaly store.

Stands in for a persistent database: pending data points are handed out
once, anomalies are kept by id and listed newest first.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping

from src.anomaly.schema import Anomaly
from src.core.exceptions import NotFoundError


class InMemoryStore:
    """Implements both DataSource and AnomalyStore."""

    def __init__(self) -> None:
        self._pending: List[Mapping[str, Any]] = []
        self._anomalies: Dict[str, Anomaly] = {}
        self._lock = asyncio.Lock()

    async def add_pending(self, record: Mapping[str, Any]) -> None:
        async with self._lock:
            self._pending.append(record)

    async def list_pending(self) -> List[Mapping[str, Any]]:
        """Return and clear pending data points."""
        async with self._lock:
            pending, self._pending = self._pending, []
        return pending

    async def save(self, anomaly: Anomaly) -> None:
        async with self._lock:
            self._anomalies[anomaly.id] = anomaly

    async def update_status(self, anomaly_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock:
            anomaly = self._anomalies.get(anomaly_id)
            if anomaly is None:
                raise NotFoundError(f"Anomaly not found: {anomaly_id}")
            for key, value in fields.items():
                setattr(anomaly, key, value)

    async def list(self, limit: int = 100) -> List[Anomaly]:
        async with self._lock:
            anomalies = list(self._anomalies.values())
        anomalies.sort(key=lambda a: a.detected_at, reverse=True)
        return anomalies[:limit]

    @property
    def pending_count(self) -> int:
        return len(self._pending)
