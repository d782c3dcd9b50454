"""FastAPI application exposing dialogue tree endpoints."""

from .app import create_app

__all__ = ["create_app"]
