"""Exceptions raised by community detection and model training."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or missing configuration (unknown algorithm, malformed parameter, ...)."""


class CommunityDetectionError(RuntimeError):
    """A community-detection backend failed on the given graph."""

    def __init__(self, algorithm: str, message: str) -> None:
        super().__init__(f"{algorithm}: {message}")
        self.algorithm = algorithm


class MalformedGraphError(CommunityDetectionError):
    """The input graph violates the backend's contract (shape, weights)."""


class TrainingDivergedError(RuntimeError):
    """Training loss became NaN or infinite."""
