"""
Middleware modules for request/response processing.

Includes:
- Security headers
- Request timing and usage logging
"""

from .request_logging import RequestLoggingMiddleware
from .security import SecurityHeadersMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
