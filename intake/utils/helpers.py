"""
Identifiers and timestamps shared by the sequencer and the submission path
"""

import secrets
from datetime import datetime, timezone

SESSION_TOKEN_BYTES = 6
OPPORTUNITY_TOKEN_BYTES = 4


def generate_session_id():
    """Random 12-char lowercase hex token naming one conversation"""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_opportunity_id(now=None):
    """
    Identifier stored in the opportunity_id column.

    Shape is OPP-<year>-<8 uppercase hex>, with the year taken from now
    (UTC clock when None).
    """
    now = now or datetime.now(timezone.utc)
    return f"OPP-{now.year}-{secrets.token_hex(OPPORTUNITY_TOKEN_BYTES).upper()}"


def utc_timestamp():
    """ISO-8601 UTC timestamp, e.g. '2025-11-26T15:30:45.123456+00:00'"""
    return datetime.now(timezone.utc).isoformat()
