"""HTTP transport."""

from console_core.transport.http_app import create_http_app

__all__ = ["create_http_app"]
