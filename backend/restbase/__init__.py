"""
RestBase: Package Initializer
==============================

What: Generic CRUD endpoints over SQLAlchemy record types for FastAPI apps.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   App factory, middleware, health   │  ← main.py, middleware/, routes/
    ├─────────────────────────────────────┤
    │   ResourceController + hooks        │  ← resources/
    ├─────────────────────────────────────┤
    │   Query builder                     │  ← query.py
    ├─────────────────────────────────────┤
    │   Record store (async SQLAlchemy)   │  ← database.py + your models
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
