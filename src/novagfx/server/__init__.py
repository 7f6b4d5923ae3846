"""HTTP surface for running interactive apps headlessly."""

from .factory import create_app

__all__ = ["create_app"]
