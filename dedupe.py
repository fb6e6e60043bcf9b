import hashlib
from datetime import date
from typing import Union

from schema import Direction, ParsedTransaction

HASH_LENGTH = 32


def compute_dedupe_hash(
    transaction_date: date,
    description: str,
    amount_paise: int,
    direction: Union[Direction, str],
) -> str:
    """
    Content fingerprint used as the per-user uniqueness key.

    Canonical form is ``YYYY-MM-DD|description|amount|DIRECTION`` with the
    description lowercased and trimmed; the SHA-256 hex digest is cut to
    32 characters.
    """
    direction_value = direction.value if isinstance(direction, Direction) else str(direction)
    canonical = (
        f"{transaction_date.isoformat()}|{description.lower().strip()}|{int(amount_paise)}|{direction_value}"
    )
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:HASH_LENGTH]


def hash_transaction(transaction: ParsedTransaction) -> str:
    return compute_dedupe_hash(
        transaction.date,
        transaction.description,
        transaction.amount_paise,
        transaction.direction,
    )
