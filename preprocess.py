import re
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union

import pandas as pd
from dateutil import parser

logger = logging.getLogger(__name__)

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

DMY_PATTERN = re.compile(r'^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$')
YMD_PATTERN = re.compile(r'^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$')
D_MON_Y_PATTERN = re.compile(
    r'^(\d{1,2})\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+(\d{2,4})$',
    re.IGNORECASE,
)

# Currency symbols and codes, thousands separators, whitespace, plus signs.
# Parentheses are kept, so an accounting negative like "(1,200.00)" does not parse.
AMOUNT_NOISE = re.compile(r'(?:₹|\$|€|£|INR|Rs\.?|[,\s+])', re.IGNORECASE)
LEADING_NUMBER = re.compile(r'^-?(?:\d+(?:\.\d*)?|\.\d+)')


def _year(value: str) -> int:
    """Two-digit years belong to the 2000s."""
    return 2000 + int(value) if len(value) == 2 else int(value)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a statement date string into a calendar date.

    Formats are tried in order: D/M/Y or D-M-Y, Y-M-D, "D Mon Y", then a
    generic dateutil parse. A format that matches but names an impossible
    date falls through to the next one.

    Args:
        value: Raw date cell

    Returns:
        The parsed date, or None when nothing fits
    """
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None

    value = str(value).strip()
    if not value:
        return None

    match = DMY_PATTERN.match(value)
    if match:
        d, m, y = match.groups()
        parsed = _safe_date(_year(y), int(m), int(d))
        if parsed:
            return parsed

    match = YMD_PATTERN.match(value)
    if match:
        y, m, d = match.groups()
        parsed = _safe_date(int(y), int(m), int(d))
        if parsed:
            return parsed

    match = D_MON_Y_PATTERN.match(value)
    if match:
        d, mon, y = match.groups()
        parsed = _safe_date(_year(y), MONTHS[mon.lower()[:3]], int(d))
        if parsed:
            return parsed

    try:
        return parser.parse(value).date()
    except (ValueError, OverflowError):
        logger.debug(f"Could not parse date: {value!r}")
        return None


def parse_amount(value: Union[str, float, int, None]) -> int:
    """
    Convert a currency-formatted amount into non-negative minor units (paise).

    The sign is dropped; direction is decided by column semantics elsewhere.
    Only the leading number is read, so trailing markers such as ``Dr``/``Cr``
    are ignored. Empty, dash-only, parenthesized and unparseable input all
    give 0.
    """
    if value is None:
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if pd.isna(value):
            return 0
        amount = Decimal(repr(value))
    else:
        raw = str(value).strip()
        if not raw or raw == '-':
            return 0

        match = LEADING_NUMBER.match(AMOUNT_NOISE.sub('', raw))
        if not match:
            logger.debug(f"Could not parse amount: {value!r}")
            return 0
        amount = Decimal(match.group(0))

    if not amount.is_finite():
        return 0

    return int((abs(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


class DataPreprocessor:
    """Cleans raw tables and text blocks before extraction."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def preprocess_structured_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Trim headers and cells, and drop rows with no content at all.

        Args:
            df: Raw DataFrame read with string dtype

        Returns:
            Cleaned DataFrame
        """
        df = df.copy()
        df.columns = [str(col).strip() for col in df.columns]
        df = df.fillna('')
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()

        non_empty = (df != '').any(axis=1)
        dropped = int((~non_empty).sum())
        if dropped:
            self.logger.debug(f"Dropped {dropped} empty rows")
        df = df[non_empty].reset_index(drop=True)

        self.logger.info(f"After preprocessing: {len(df)} rows remain")
        return df

    def preprocess_text_data(self, text_data: Union[str, List[str]]) -> List[str]:
        """
        Split text blocks into trimmed, non-empty lines.

        Args:
            text_data: Raw text or list of page texts

        Returns:
            List of cleaned text lines
        """
        if isinstance(text_data, str):
            text_data = [text_data]

        lines = []
        for text_block in text_data:
            for line in text_block.split('\n'):
                line = line.strip()
                if line:
                    lines.append(line)

        self.logger.info(f"Preprocessed text data: {len(lines)} lines")
        return lines
