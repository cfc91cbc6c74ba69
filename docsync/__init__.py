"""
docsync - client-side data access for schema-driven document stores.

docsync binds declared models to a remote document store and keeps what it
reads consistent:

- **Schema Engine**: Lazy, format-aware reads with conditional fields
- **Validation**: Every field and validator failure aggregated at once
- **Hook Pipeline**: Ordered before/after hooks with abort and retry
- **Identity Map**: One instance per document, never regressing to older data
- **Request Dedup**: Concurrent equal queries share one request
- **Live Lists**: Query results that follow create, update and delete events

Quick Start:
    >>> from docsync import Client, Model, SchemaDefinition, FieldDefinition
    >>> from docsync.transport import HttpExecutor
    >>>
    >>> class Post(Model):
    ...     slug = "posts"
    ...     schema = SchemaDefinition(fields={"title": FieldDefinition(type="text")})
    >>>
    >>> client = Client(HttpExecutor.from_options(options), options=options)
    >>> Posts = client.model(Post)
    >>> posts = await Posts.get_list({"filter": {"title": "Hello"}})
"""

__version__ = "0.1.0"

from .cache.events import CrudEvent, Operation, UpdaterEvent
from .client import Client
from .config import ClientOptions, get_options
from .errors import CoreError, ErrorCodes, TransportError, ValidationError
from .models import RETRY, Abort, DataModel, HookPayload, Model, ModelList, ModelRegistry
from .schema import (
    ConditionalFields,
    FieldDefinition,
    FieldTypes,
    SchemaDefinition,
    ValidatorDefinition,
    ValidatorTypes,
)

__all__ = [
    "__version__",
    # Client
    "Client",
    "ClientOptions",
    "get_options",
    # Models
    "Model",
    "ModelList",
    "ModelRegistry",
    "DataModel",
    "HookPayload",
    "Abort",
    "RETRY",
    # Schema
    "SchemaDefinition",
    "FieldDefinition",
    "ValidatorDefinition",
    "ConditionalFields",
    "FieldTypes",
    "ValidatorTypes",
    # Events
    "CrudEvent",
    "UpdaterEvent",
    "Operation",
    # Errors
    "CoreError",
    "ErrorCodes",
    "TransportError",
    "ValidationError",
]
