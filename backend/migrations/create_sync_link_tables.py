"""
Database Migration: Create Sync Link Tables

Creates the link store table used by the reconciliation engine to remember
which left/right records were already paired in earlier passes.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect

from database.connection import Base, get_engine
from database.link_models import SyncLinkDB


def create_tables(engine=None) -> list:
    """Create the sync link tables. Returns the names of tables created."""
    engine = engine or get_engine()
    print("Creating sync link tables...")

    existing = set(inspect(engine).get_table_names())
    tables = [SyncLinkDB.__table__]
    Base.metadata.create_all(engine, tables=tables)

    created = []
    for i, table in enumerate(tables):
        if table.name in existing:
            print(f"  ✓ Table {i+1}/{len(tables)} {table.name} (already exists)")
        else:
            print(f"  ✓ Table {i+1}/{len(tables)} {table.name} created")
            created.append(table.name)

    print("\n✅ Sync link tables ready!")
    return created


if __name__ == "__main__":
    create_tables()
