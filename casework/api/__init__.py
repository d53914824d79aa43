"""HTTP API for the casework service."""

from .endpoints import router, init_dependencies

__all__ = ["router", "init_dependencies"]
