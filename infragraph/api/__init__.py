"""REST API layer for infragraph.

Exposes:
    create_app -- FastAPI application factory.
"""

from infragraph.api.app import create_app

__all__ = ["create_app"]
