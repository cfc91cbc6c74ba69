"""
Client configuration for docsync.

Options are plain pydantic models so they can be built in code, loaded from
the environment, or validated from a dict.

Security:
    Credentials use SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.

Usage:
    options = ClientOptions(project="my-project", access_token="...")

    # Or from DOCSYNC_* environment variables
    options = get_options()
"""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ClientOptions(BaseModel):
    """Options for a docsync Client."""

    model_config = ConfigDict(frozen=True)

    # Target
    project: str | None = Field(None, description="Project id, required for project-scoped operations")
    environment: str = Field("master", description="Remote environment name")
    base_url: str = Field("http://localhost:3000", description="Remote store base URL")

    # Credentials
    access_token: SecretStr | None = Field(None, description="Bearer token for secured operations")

    # Caching
    disable_cache: bool | list[str] = Field(
        False, description="Disable the request-dedup cache (everywhere or for the listed slugs)"
    )
    disable_store: bool | list[str] = Field(
        False, description="Do not keep fetched instances in the identity map"
    )

    # Writes
    validate_writes: bool = Field(True, description="Validate create payloads locally before sending")

    # Transport
    timeout: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=0)

    def cache_disabled_for(self, slug: str) -> bool:
        if isinstance(self.disable_cache, bool):
            return self.disable_cache
        return slug in self.disable_cache

    def store_disabled_for(self, slug: str) -> bool:
        if isinstance(self.disable_store, bool):
            return self.disable_store
        return slug in self.disable_store


def _split_list(raw: str | None) -> bool | list[str]:
    """Parse a boolean or comma-separated slug list."""
    if not raw:
        return False
    if raw.lower() in ("true", "1", "yes"):
        return True
    if raw.lower() in ("false", "0", "no"):
        return False
    return [s.strip() for s in raw.split(",") if s.strip()]


@lru_cache()
def get_options() -> ClientOptions:
    """
    Get client options from environment.

    Uses lru_cache for singleton pattern.
    """
    return ClientOptions(
        project=os.getenv("DOCSYNC_PROJECT"),
        environment=os.getenv("DOCSYNC_ENVIRONMENT", "master"),
        base_url=os.getenv("DOCSYNC_BASE_URL", "http://localhost:3000"),
        access_token=os.getenv("DOCSYNC_ACCESS_TOKEN"),
        disable_cache=_split_list(os.getenv("DOCSYNC_DISABLE_CACHE")),
        disable_store=_split_list(os.getenv("DOCSYNC_DISABLE_STORE")),
        validate_writes=os.getenv("DOCSYNC_VALIDATE_WRITES", "true").lower() == "true",
        timeout=float(os.getenv("DOCSYNC_TIMEOUT", "30")),
        max_retries=int(os.getenv("DOCSYNC_MAX_RETRIES", "3")),
    )
