"""HTTP and websocket service mode for ``uifork watch``."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
