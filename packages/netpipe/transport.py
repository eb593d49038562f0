"""Listener that forwards captured entries to the log relay over HTTP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .utils import epoch_ms

logger = logging.getLogger(__name__)


@dataclass
class TransportStats:
    total_sent: int = 0
    total_failed: int = 0
    last_success_time: Optional[int] = None
    last_failure_time: Optional[int] = None


class RelayTransport:
    """Batches entries and POSTs them to ``http://<host>:<port><path>``.

    Delivery is best effort: a failed batch is logged, counted and dropped.
    """

    def __init__(
        self,
        *,
        server_host: str = "localhost",
        server_port: int = 3001,
        server_path: str = "/api/logs",
        batch_size: int = 10,
        timeout: float = 5.0,
        application_name: Optional[str] = None,
        session_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.endpoint = f"http://{server_host}:{server_port}{server_path}"
        self.batch_size = batch_size
        self.timeout = timeout
        self.application_name = application_name
        self.session_id = session_id
        self.stats = TransportStats()

        self._session = session if session is not None else requests.Session()
        self._batch: List[Dict[str, Any]] = []

    def __call__(self, entry: Dict[str, Any]) -> None:
        self.send(entry)

    def send(self, entry: Optional[Dict[str, Any]]) -> None:
        if not entry:
            return
        self._batch.append({**entry, "transportTimestamp": epoch_ms()})
        if len(self._batch) >= self.batch_size:
            self.flush()

    @property
    def pending(self) -> int:
        return len(self._batch)

    def flush(self) -> bool:
        """Send every pending entry. Returns ``True`` when the relay accepted them."""

        if not self._batch:
            return True

        batch, self._batch = self._batch, []
        payload = {
            "logs": batch,
            "metadata": {
                "applicationName": self.application_name,
                "sessionId": self.session_id,
                "timestamp": epoch_ms(),
                "batchSize": len(batch),
            },
        }
        headers = {}
        if self.application_name:
            headers["X-Application-Name"] = self.application_name
        if self.session_id:
            headers["X-Session-Id"] = self.session_id

        try:
            response = self._session.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            self.stats.total_failed += len(batch)
            self.stats.last_failure_time = epoch_ms()
            logger.warning(f"Dropped {len(batch)} entries, relay at {self.endpoint} failed: {exc}")
            return False

        self.stats.total_sent += len(batch)
        self.stats.last_success_time = epoch_ms()
        return True

    def close(self) -> None:
        self.flush()
        self._session.close()
