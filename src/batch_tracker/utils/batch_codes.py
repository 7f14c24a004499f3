"""Batch code generation utilities.

Batch codes are human-readable identifiers scoped to one product. They are
built from the product title, the product's batch sequence number and the
creation date:

    <Prefix>-<Sequence>-<DDMMYYYY>

Prefix Algorithm:
    1. Split the title on whitespace and keep at most the first 3 words
    2. Strip every character that is not an ASCII letter from each word
    3. Keep the first two letters: first upper-cased, second lower-cased
    4. Concatenate the non-empty parts
    5. Fall back to "PROD" when no word yields a letter

Examples:
    >>> generate_batch_code("Aceite de Oliva", 1, date(2025, 12, 15))
    'AcDeOl-1-15122025'

    >>> generate_batch_code("Azúcar", 1, date(2025, 12, 15))
    'Az-1-15122025'

    >>> generate_batch_code("1000 ml", 4, date(2025, 1, 5))
    'Ml-4-05012025'

    >>> generate_batch_code("123 456", 2, date(2025, 1, 5))
    'PROD-2-05012025'
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Optional

from .constants import (
    BATCH_CODE_DATE_FORMAT,
    BATCH_CODE_FALLBACK_PREFIX,
    BATCH_CODE_MAX_WORDS,
)
from .datetime_utils import today

_NON_LETTERS = re.compile(r"[^A-Za-z]")
_CODE_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z]+)-(?P<sequence>\d+)-(?P<date>\d{8})$")


def build_prefix(title: Optional[str]) -> str:
    """Build the batch code prefix for a product title.

    Args:
        title: Product display title

    Returns:
        Concatenated two-letter word prefixes, or "PROD" when the title
        contains no ASCII letters in its first three words.
    """
    words = (title or "").split()[:BATCH_CODE_MAX_WORDS]

    parts = []
    for word in words:
        cleaned = _NON_LETTERS.sub("", word)
        if not cleaned:
            continue
        parts.append(cleaned[0].upper() + cleaned[1:2].lower())

    prefix = "".join(parts)
    return prefix or BATCH_CODE_FALLBACK_PREFIX


def generate_batch_code(title: Optional[str], sequence: int, on_date: Optional[date] = None) -> str:
    """Generate a batch code from title, sequence number and date.

    Pure function: the same inputs always give the same code.

    Args:
        title: Product display title
        sequence: Per-product batch sequence number (1 for the first batch)
        on_date: Creation date (defaults to today)

    Returns:
        Code of the form <Prefix>-<Sequence>-<DDMMYYYY>

    Raises:
        ValueError: If sequence is not a positive integer
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise ValueError(f"Batch sequence must be a positive integer, got {sequence!r}")

    on_date = on_date or today()
    return f"{build_prefix(title)}-{sequence}-{on_date.strftime(BATCH_CODE_DATE_FORMAT)}"


def parse_batch_code(code: str) -> Optional[Dict[str, Any]]:
    """Split a batch code into its components.

    Args:
        code: Batch code such as "AcDeOl-3-15122025"

    Returns:
        Dict with "prefix", "sequence" (int) and "date" (date) keys,
        or None if the code is not well formed.
    """
    match = _CODE_PATTERN.match((code or "").strip())
    if not match:
        return None

    try:
        created = datetime.strptime(match.group("date"), BATCH_CODE_DATE_FORMAT).date()
    except ValueError:
        return None

    return {
        "prefix": match.group("prefix"),
        "sequence": int(match.group("sequence")),
        "date": created,
    }
