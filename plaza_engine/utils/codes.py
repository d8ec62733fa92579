# plaza_engine/utils/codes.py
"""Human-shareable reservation codes: RES-YYYYMMDD-XXXXXX."""

import secrets
from datetime import datetime

# No 0/O or 1/I/L: codes get read out loud and typed from tickets
CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
CODE_LENGTH = 6


def new_reservation_code(day: datetime) -> str:
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    return f"RES-{day:%Y%m%d}-{suffix}"
