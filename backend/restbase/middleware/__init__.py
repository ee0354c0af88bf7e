"""
RestBase: Middleware Package
=============================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    - Request ID runs first so every log line of the request can carry it.
    - Logging measures the full handler duration and the final status code.
"""
