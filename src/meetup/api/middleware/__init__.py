"""API middleware package."""

from src.meetup.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
