"""
Shared utilities for the credential gate.

This package aggregates common building blocks consumed by the gate service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- jitter: Randomized pacing for upstream calls
- base_service: FastAPI service skeleton

Do not import from service packages into shared/.
"""
