"""
In-Memory Models Example

This example runs the data-access core against the in-memory executor:
1. Declare models with a schema
2. Register hooks around operations
3. Populate relations and keep a list in sync

Run: python examples/01-in-memory-models/main.py
"""

import asyncio

from docsync import Client, ClientOptions, FieldDefinition, Model, SchemaDefinition, ValidatorDefinition
from docsync.errors import ValidationError
from docsync.testing import MemoryExecutor

# =============================================================================
# Models
# =============================================================================


class Author(Model):
    slug = "authors"
    schema = SchemaDefinition(
        fields={"name": FieldDefinition(type="text")},
        validators=[ValidatorDefinition(type="required", field="name")],
    )


class Article(Model):
    slug = "articles"
    schema = SchemaDefinition(
        fields={
            "title": FieldDefinition(type="text"),
            "author": FieldDefinition(type="relation", ref="authors"),
            "status": FieldDefinition(type="enum", values=["draft", "published"], default="draft"),
        },
        validators=[ValidatorDefinition(type="required", field="title")],
    )


def stamp_title(payload):
    """Before hook: normalise titles on create."""
    data = payload.args["payload"]
    if isinstance(data.get("title"), str):
        data["title"] = data["title"].strip().title()


# =============================================================================
# Main
# =============================================================================


async def main():
    executor = MemoryExecutor(relations={"articles": {"author": "authors"}})
    client = Client(executor, options=ClientOptions(project="demo"))

    authors = client.model(Author)
    articles = client.model(Article)
    articles.hook("before", "create_one", stamp_title)

    ada = await authors.create({"name": "Ada"})
    await articles.create({"title": "  notes on the engine ", "author": ada.id, "status": "draft"})

    # Validation reports every problem at once
    try:
        await articles.create({"status": "archived"})
    except ValidationError as e:
        print(f"Rejected: {e.paths}")

    # Populated authors land in the authors cache
    drafts = await articles.get_list({"filter": {"status": "draft"}, "populate": ["author"]})
    author = await drafts[0]["author"]
    print(f"{drafts[0]['title']} by {author['name']}")

    # Keep the list in sync with later writes
    changed = asyncio.Event()
    unsubscribe = drafts.subscribe(lambda items: changed.set())

    await articles.create({"title": "second draft", "author": ada.id, "status": "draft"})
    await asyncio.wait_for(changed.wait(), timeout=1.0)
    print(f"Drafts now: {[a['title'] for a in drafts]}")

    unsubscribe()
    print(f"Remote calls: {[c.action for c in executor.calls]}")


if __name__ == "__main__":
    asyncio.run(main())
