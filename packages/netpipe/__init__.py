"""Client-facing exports for netpipe."""

from ._version import __version__
from .analyzer import NetworkAnalyzer
from .capture import NetworkCapture, capture_network
from .clients import EventRequest, HTTPXClient, ObserverList, RequestsClient
from .config import CaptureConfig, SanitizePolicy
from .errors import InstrumentationError, InvalidStateError, NetpipeError, RequestAborted
from .formatter import NetworkFormatter
from .interceptor import NetworkInterceptor
from .models import FormData, OutboundRequest
from .sanitizer import NetworkSanitizer
from .surfaces import NetworkSurfaces
from .transport import RelayTransport

__all__ = [
    "__version__",
    "CaptureConfig",
    "EventRequest",
    "FormData",
    "HTTPXClient",
    "InstrumentationError",
    "InvalidStateError",
    "NetpipeError",
    "NetworkAnalyzer",
    "NetworkCapture",
    "NetworkFormatter",
    "NetworkInterceptor",
    "NetworkSanitizer",
    "NetworkSurfaces",
    "ObserverList",
    "OutboundRequest",
    "RelayTransport",
    "RequestAborted",
    "RequestsClient",
    "SanitizePolicy",
    "capture_network",
]
