"""Core infrastructure -- configuration-independent building blocks.

Provides the async database engine, structlog configuration, Prometheus
sync metrics, timestamp parsing, and the pipeline's exception hierarchy.
"""
