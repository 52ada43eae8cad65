"""
Shared utilities for the permission engine.

This package aggregates common building blocks consumed by the service
packages:

- config: Settings via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
