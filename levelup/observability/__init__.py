"""
Observability module for the progression engine's caller-side store.

This module provides:
- Error context and breadcrumbs with Sentry
- Metrics collection with Prometheus
"""

__all__ = ["context", "metrics"]
