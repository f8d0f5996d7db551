"""Users API with request observability (metrics, tracing, structured logs)."""

__version__ = "1.0.0"
