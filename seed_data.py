import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from soundmap.backend import build_backend
from soundmap.config import settings

def seed_database():
    print(f"🌱 Seeding database at: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'localhost'}")

    backend = build_backend(settings)
    backend.setup_tables()

    try:
        created = backend.seed()
    except Exception as e:
        print(f"❌ Error seeding database: {e}")
        raise

    if not created:
        print("✅ Database already has data!")
        return
    print(f"✅ Database seeded with {len(created)} clips!")

if __name__ == "__main__":
    seed_database()
