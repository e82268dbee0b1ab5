# Middleware package init
"""
ClimbApp Backend — Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Handler

    Responses pass back through the chain in reverse, so the request id is
    in the response headers and the access log sees the final status code.
"""
