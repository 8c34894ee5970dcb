"""Observability helpers: structlog JSON logging, request context, Sentry tracing."""
