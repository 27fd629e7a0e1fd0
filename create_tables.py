"""
Simple script to create the threads and messages tables.
Run this once to set up the session store in the configured database.

Usage: python create_tables.py
"""

from sqlalchemy import inspect
from config import Settings
from database import create_db_engine
from models import Base, Thread, Message  # Import models to register them

if __name__ == "__main__":
    settings = Settings()
    print(f"Creating tables in {settings.database_url} ...")
    engine = create_db_engine(settings)
    
    # Create all tables
    Base.metadata.create_all(bind=engine)
    
    # Verify tables were created
    existing = set(inspect(engine).get_table_names())
    for table in (Thread.__tablename__, Message.__tablename__):
        if table in existing:
            print(f"✓ {table} table created successfully!")
        else:
            print(f"✗ Failed to create {table} table")
    
    engine.dispose()
