"""Minimal HTTP service with health and system-information endpoints."""

__version__ = "1.0.0"

__all__ = ["__version__"]
