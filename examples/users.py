#!/usr/bin/env python3
"""
IndexKV walk-through: a users collection indexed by email and username.

Usage:
    python examples/users.py

Environment:
    INDEXKV_BACKEND: memory (default) or sqlite
    INDEXKV_SQLITE_PATH: database file when INDEXKV_BACKEND=sqlite
    INDEXKV_OPTIMISTIC_CHECKS: true to make concurrent writers conflict
"""

import asyncio
import json

from indexkv import Collection, IndexKvConfig, RecordShape, field, open_store, setup_logging

UserShape = RecordShape(
    "User",
    (
        field("username", "str", required=True),
        field("password", "str", required=True, min_length=8, max_length=32),
        field("email", "str", required=True, format="email"),
        field("firstname", "str"),
        field("lastname", "str"),
    ),
)


def show(label, record):
    print(f"\n[{label}]")
    print(json.dumps(record, indent=2))


async def main():
    config = IndexKvConfig.from_env()
    setup_logging(config)
    config.log_config()

    store = open_store(config)
    users = Collection.from_defaults(
        UserShape,
        store=store,
        name="users",
        indexes=["email", "username"],
        defaults=config.collections,
    )

    try:
        await users.create(
            {
                "email": "aze@aze.com",
                "username": "aze",
                "password": "azeazeaze",
            }
        )

        user = await users.find_one({"email": "aze@aze.com"})
        show("find_one by email", user)
        show("find_by_id", await users.find_by_id(user["id"]))

        await users.update_by_id(user["id"], {"firstname": "John"})
        await users.update_one({"id": user["id"]}, {"lastname": "Doe"})
        show("after updates", await users.find_one({"username": "aze"}))

        await users.delete_by_id(user["id"])
        # Already gone: returns None
        print(f"\n[delete_one again] {await users.delete_one({'email': user['email']})}")
        print(f"[find_one after delete] {await users.find_one({'username': 'aze'})}")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
