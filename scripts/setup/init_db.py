# scripts/setup/init_db.py
"""
Initialize database — creates all tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from plaza_engine.database import create_tables, engine
from plaza_engine.config import settings
from sqlalchemy import inspect, text


def main():
    print("🗄️  Plaza Engine DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    print("✅ All tables created")

    inspector = inspect(engine)
    tables = sorted(inspector.get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        indexes = [ix["name"] for ix in inspector.get_indexes(t) if ix.get("unique")]
        suffix = f"  (unique: {', '.join(indexes)})" if indexes else ""
        print(f"   ✓ {t}{suffix}")

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn plaza_engine.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
