"""
RestBase: Resources Package
============================

What:  The generic resource controller and its extension points.

Module Inventory:
    - controller.py:     ResourceController (operations + APIRouter)
    - hooks.py:          ResourceHooks, Action, default hook functions
    - fields.py:         Fillable-field whitelisting for request bodies
    - serialization.py:  Record → JSON conversion
"""

from restbase.resources.controller import ResourceController
from restbase.resources.hooks import Action, FieldMap, ResourceHooks

__all__ = ["Action", "FieldMap", "ResourceController", "ResourceHooks"]
