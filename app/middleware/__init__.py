"""
Middleware components for request processing.

- Request context (request ID bound to every log line)
- CORS for the academy web dashboard
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = [
    "CORSMiddleware",
    "RequestContextMiddleware",
]
