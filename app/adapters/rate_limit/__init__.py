"""Rate limiting adapters.

This package provides a small abstraction layer so the API can start with an
in-memory fixed-window limiter and later migrate to a shared store without
changing the HTTP layer.
"""
