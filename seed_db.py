"""
Script to seed a local database with sample owners, listings, a conversation and notifications.
Run with: python seed_db.py
"""
from dotenv import load_dotenv
from sqlalchemy.orm import Session

# Load environment variables before settings are read
load_dotenv()

import app.realtime  # noqa: E402,F401  registers the realtime commit hooks
from app.db.session import SessionLocal, init_db  # noqa: E402
from app.seed.seed_data import seed_db  # noqa: E402


def main():
    print("Creating tables...")
    init_db()

    print("Seeding database...")
    db: Session = SessionLocal()
    try:
        seed_db(db)
    finally:
        db.close()
    print("Done!")


if __name__ == "__main__":
    main()
