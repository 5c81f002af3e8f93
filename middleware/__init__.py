"""HTTP middleware for the LLM relay."""

from .correlation import CORRELATION_HEADER, CorrelationMiddleware

__all__ = ["CORRELATION_HEADER", "CorrelationMiddleware"]
