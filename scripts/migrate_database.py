#!/usr/bin/env python3
"""
Create the conversations, messages and analytics tables.
Usage: DATABASE_URL=postgresql://... python scripts/migrate_database.py
"""

import sys

from sqlalchemy.exc import SQLAlchemyError

from chat_relay.config import get_settings
from chat_relay.database import Base, Database


def main():
    settings = get_settings()
    if not settings.database_url:
        print("Missing DATABASE_URL env var", file=sys.stderr)
        sys.exit(1)

    database = Database(settings.database_url, pool_size=settings.database_pool_size)
    try:
        database.open()
        database.create_all()
    except SQLAlchemyError as exc:
        print(f"Migration failed: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        database.close()

    print("Tables ready: " + ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()
