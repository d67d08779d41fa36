"""HTTP middleware."""

from console_core.middleware.request_log import RequestLogMiddleware

__all__ = ["RequestLogMiddleware"]
