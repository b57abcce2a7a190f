#!/usr/bin/env python3
"""
Migration script for the scheduler tables.
Creates missing tables, back-fills columns added after the first release, makes sure
the partial unique indexes exist, then rebuilds any broken queue positions.
"""

import sys
from pathlib import Path

from sqlalchemy import inspect, text

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from app.database import PARTIAL_INDEX_DIALECTS, SessionLocal, engine, init_db

_COLUMNS = {
    "companies": {
        "queue_version": "INTEGER NOT NULL DEFAULT 0",
    },
    "interviews": {
        "passed_at": "TIMESTAMP",
        "cancelled_at": "TIMESTAMP",
    },
}

_INDEXES = {
    "uq_interviews_active_student_company": (
        "CREATE UNIQUE INDEX uq_interviews_active_student_company ON interviews (student_id, company_id) "
        "WHERE status IN ('waiting', 'in_progress')"
    ),
    "uq_interviews_company_in_progress": (
        "CREATE UNIQUE INDEX uq_interviews_company_in_progress ON interviews (company_id) "
        "WHERE status = 'in_progress'"
    ),
}


def migrate():
    print("Initializing database with all models...")
    init_db()
    print("✓ Database initialized successfully")

    inspector = inspect(engine)
    for table, columns in _COLUMNS.items():
        existing = {c["name"] for c in inspector.get_columns(table)}
        added = []
        for col, col_type in columns.items():
            if col in existing:
                continue
            try:
                with engine.begin() as conn:
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col} {col_type}"))
                added.append(col)
            except Exception as e:
                print(f"✗ Failed to add column {table}.{col}: {e}")
        if added:
            print(f"✓ Added {table} columns: {', '.join(added)}")
        else:
            print(f"✓ {table} columns already up to date")

    # Partial indexes need a dialect that supports WHERE on CREATE INDEX (SQLite, PostgreSQL).
    if engine.dialect.name in PARTIAL_INDEX_DIALECTS:
        existing_index_names = {i.get("name") for i in inspector.get_indexes("interviews") if i.get("name")}
        for name, ddl in _INDEXES.items():
            if name in existing_index_names:
                print(f"✓ Unique index already exists: {name}")
                continue
            try:
                with engine.begin() as conn:
                    conn.execute(text(ddl))
                print(f"✓ Added unique index: {name}")
            except Exception as e:
                # Usually duplicate active rows left by an older build; fix the data and re-run.
                print(f"⚠ Could not add unique index {name}: {e}")
    else:
        print(f"⚠ {engine.dialect.name}: partial unique indexes skipped; row locks still serialize writers")

    from app.services.scheduling import repair_queue_positions

    db = SessionLocal()
    try:
        result = repair_queue_positions(db)
    finally:
        db.close()
    print(f"✓ Checked {result['companies_checked']} queues, repaired {len(result['repaired'])}")
    return True


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
