"""The entry point embedding applications use.

``NetworkCapture`` wires the sanitizer, analyzer and formatter into an
interceptor, keeps the most recent entries in a bounded queue and fans every
entry out to the registered listeners.
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from .analyzer import NetworkAnalyzer
from .config import CaptureConfig
from .formatter import NetworkFormatter
from .interceptor import NetworkInterceptor
from .sanitizer import NetworkSanitizer
from .surfaces import NetworkSurfaces

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Any]


class NetworkCapture:
    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        surfaces: Optional[NetworkSurfaces] = None,
    ):
        self.config = config or CaptureConfig()
        self.surfaces = surfaces or NetworkSurfaces.default()

        self.sanitizer = NetworkSanitizer(self.config.sanitize_policy)
        self.analyzer = NetworkAnalyzer(self.config.environment, self.config.branch)
        self.formatter = NetworkFormatter(self.config, self.sanitizer, self.analyzer)
        self.interceptor = NetworkInterceptor(
            self.config, self.formatter, self._notify_listeners
        )

        self.is_capturing = False
        self._listeners: List[Listener] = []
        self._queue: deque = deque(maxlen=self.config.max_queue_size)

    def start(self) -> None:
        if self.is_capturing:
            return
        self.interceptor.install(self.surfaces)
        self.is_capturing = True
        logger.info(
            f"Network capture started for {self.config.application_name or 'unnamed application'}"
        )

    def stop(self) -> None:
        if not self.is_capturing:
            return
        self.interceptor.uninstall()
        self.is_capturing = False
        logger.info("Network capture stopped")

    # Listeners -------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        if not callable(listener):
            logger.warning(f"Ignoring non-callable listener {listener!r}")
            return
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # Queue -----------------------------------------------------------------

    def get_network_data(self) -> List[Dict[str, Any]]:
        return list(self._queue)

    def clear_network_data(self) -> None:
        self._queue.clear()

    @property
    def active_request_count(self) -> int:
        return len(self.interceptor.active_requests)

    def _notify_listeners(self, entry: Dict[str, Any]) -> None:
        self._queue.append(entry)

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as exc:
                logger.error(f"Network capture listener {listener!r} failed: {exc}", exc_info=True)


@contextmanager
def capture_network(
    config: Optional[CaptureConfig] = None,
    surfaces: Optional[NetworkSurfaces] = None,
    *,
    listeners: Optional[List[Listener]] = None,
) -> Iterator[NetworkCapture]:
    """Capture network traffic within the managed block."""

    capture = NetworkCapture(config, surfaces)
    for listener in listeners or []:
        capture.add_listener(listener)
    capture.start()
    try:
        yield capture
    finally:
        capture.stop()
