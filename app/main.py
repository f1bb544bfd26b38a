"""ASGI entrypoint for the identity and access control API."""

from .core.app_factory import create_application

app = create_application()

__all__ = ("app",)
