"""
Migration script to create all database tables

Run this script to create all database tables:
    python -m movielog.migrations.create_all_tables
"""

import sys
import os

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from movielog.database import engine, Base
# Import all models to ensure they're registered with Base
import movielog.models  # noqa: F401


def create_tables(bind=None):
    """Create all database tables"""
    print("=" * 60)
    print("Creating all database tables...")
    print("=" * 60)

    try:
        Base.metadata.create_all(bind=bind or engine)

        print("\n✅ All tables created successfully!")
        print("\nTables created:")
        for table in Base.metadata.sorted_tables:
            print(f"   - {table.name}")
        print("=" * 60)

    except Exception as e:
        print(f"\n❌ Error creating tables: {e}")
        raise


if __name__ == "__main__":
    create_tables()
