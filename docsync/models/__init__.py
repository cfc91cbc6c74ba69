"""
Models layer.

- model: Model base class and its operations
- hooks: before/after hook pipeline
- registry: declared and client-bound classes
- datamodel: system model holding schema documents
- model_list: live query results
- references: lazy relation values
"""

from .datamodel import DataModel
from .hooks import MAX_ATTEMPTS, RETRY, Abort, HookPayload, Transaction
from .model import Model
from .model_list import ModelList
from .references import Reference, ReferenceList
from .registry import ModelRegistry

__all__ = [
    "DataModel",
    "MAX_ATTEMPTS",
    "RETRY",
    "Abort",
    "HookPayload",
    "Transaction",
    "Model",
    "ModelList",
    "Reference",
    "ReferenceList",
    "ModelRegistry",
]
