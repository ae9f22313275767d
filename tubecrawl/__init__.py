"""Convenience package exposing the FastAPI app for ``python -m tubecrawl``."""

from __future__ import annotations

from app.main import app, create_app

__all__ = ["app", "create_app"]
