#!/usr/bin/env python3
"""
Seed the supplement and rule catalog.
Run with: python scripts/seed_catalog.py [path/to/catalog.json]
Uses DATABASE_URL (or .env) like the API does.
"""
import sys
from pathlib import Path

from biostate.catalog import seed_catalog
from biostate.db.database import engine, Base, SessionLocal

print("Connecting to database...")
Base.metadata.create_all(bind=engine)

path = Path(sys.argv[1]) if len(sys.argv) > 1 else None

db = SessionLocal()
try:
    counts = seed_catalog(db, path)
finally:
    db.close()

for table, count in counts.items():
    print(f"✓ {table}: {count}")

print("\nCatalog seeded!")
