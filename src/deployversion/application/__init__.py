"""Application services and runtime wiring."""

from .runtime import Runtime, build_runtime

__all__ = ["Runtime", "build_runtime"]
