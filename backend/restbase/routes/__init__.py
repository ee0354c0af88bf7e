"""
RestBase: Routes Package
=========================

Fixed routes that exist regardless of which resources are mounted.

Route Inventory:
    - health.py:  GET /health   (service health check)

Resource routes are generated per record type by ResourceController.router.
"""
