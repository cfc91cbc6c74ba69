"""
Pytest configuration and fixtures for docsync tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from docsync.models import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from docsync import Client, ClientOptions  # noqa: E402
from docsync.testing import MemoryExecutor  # noqa: E402

from declarations import Account, Post  # noqa: E402


@pytest.fixture
def executor():
    """In-memory executor with the relations used by the test models."""
    return MemoryExecutor(
        relations={
            "posts": {"author": "accounts", "reviewers": "accounts"},
            "accounts": {"company": "companies"},
        }
    )


@pytest.fixture
def client(executor):
    """Client bound to the in-memory executor, with a fresh registry."""
    return Client(executor, options=ClientOptions(project="test-project"))


@pytest.fixture
def accounts(client):
    return client.model(Account)


@pytest.fixture
def posts(client):
    return client.model(Post)


@pytest.fixture
def seeded(executor):
    """One company, two accounts and three posts already stored remotely."""
    executor.seed("companies", [{"_id": "c1", "name": "Acme"}])
    executor.seed(
        "accounts",
        [
            {"_id": "a1", "name": "Ada", "email": "ada@example.com", "company": "c1"},
            {"_id": "a2", "name": "Grace", "email": "grace@example.com"},
        ],
    )
    executor.seed(
        "posts",
        [
            {"_id": "p1", "title": "First", "status": "draft", "author": "a1", "reviewers": ["a2"]},
            {"_id": "p2", "title": "Second", "status": "draft", "author": "a2", "reviewers": []},
            {"_id": "p3", "title": "Third", "status": "published", "author": "a1", "reviewers": ["a1", "a2"]},
        ],
    )
    executor.reset_calls()
    return executor
