"""
Seed invitation codes for the closed beta.
Run with: python -m seeds.seed_invitation_codes [count]
"""
import sys

from loguru import logger

from app.db.session import get_db_session
from app.services import invitation_service

DEFAULT_COUNT = 50


def seed_invitation_codes(count: int = DEFAULT_COUNT) -> list:
    with get_db_session() as db:
        codes = invitation_service.generate_codes(db, count, created_by="seed")
        created = [c.code for c in codes]

    logger.info(f"Seeded {len(created)} invitation codes")
    return created


if __name__ == "__main__":
    count = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_COUNT
    for code in seed_invitation_codes(count):
        print(code)
