"""
Transport layer.

The core describes remote operations (operations.CATALOGUE) and hands them to
an OperationExecutor. HttpExecutor carries them over httpx.
"""

from .executor import OperationExecutor, RealtimeBridge
from .http import HttpExecutor, HttpExecutorConfig
from .operations import CATALOGUE, OperationDescriptor, Scope

__all__ = [
    "OperationExecutor",
    "RealtimeBridge",
    "HttpExecutor",
    "HttpExecutorConfig",
    "CATALOGUE",
    "OperationDescriptor",
    "Scope",
]
