import re
import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from errors import SchemaError

logger = logging.getLogger(__name__)

DEFAULT_COLUMN_CANDIDATES = {
    'date': ['date', 'txn date', 'transaction date', 'value date', 'posting date', 'trans date'],
    'description': ['description', 'particulars', 'narration', 'remarks', 'transaction details', 'details'],
    'amount': ['amount', 'transaction amount', 'txn amount'],
    'debit': ['debit', 'withdrawal', 'debit amount', 'dr', 'withdrawals'],
    'credit': ['credit', 'deposit', 'credit amount', 'cr', 'deposits'],
    'type': ['type', 'dr/cr', 'transaction type', 'cr/dr'],
}


def normalize_header(header: str) -> str:
    """Lowercase, trim, and keep only letters, digits and spaces."""
    return re.sub(r'[^a-z0-9 ]', '', str(header).lower().strip())


class ColumnMap(BaseModel):
    """Original header names found for each column role."""

    date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    type: Optional[str] = None

    @property
    def has_debit_credit(self) -> bool:
        return bool(self.debit or self.credit)


class ColumnDetector:
    """Locates date/description/amount/debit/credit/type columns by header synonyms."""

    def __init__(self, candidates: Optional[Dict[str, List[str]]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.candidates = dict(DEFAULT_COLUMN_CANDIDATES)
        if candidates:
            self.candidates.update(candidates)

    def find_column(self, headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
        """Return the original header of the first candidate present, in candidate order."""
        normalized = [normalize_header(h) for h in headers]
        for candidate in candidates:
            key = normalize_header(candidate)
            if key in normalized:
                return headers[normalized.index(key)]
        return None

    def detect(self, headers: Sequence[str]) -> ColumnMap:
        """
        Map header names to column roles without validating the result.

        Args:
            headers: Header row of the parsed table

        Returns:
            ColumnMap with None for every role that was not found
        """
        headers = list(headers)
        found = {
            role: self.find_column(headers, names)
            for role, names in self.candidates.items()
        }
        column_map = ColumnMap(**found)
        self.logger.info(f"Column mapping: {column_map.model_dump(exclude_none=True)}")
        return column_map

    def detect_required(self, headers: Sequence[str]) -> ColumnMap:
        """
        Detect columns and raise SchemaError when a required role is missing.

        A date column, a description column, and at least one of
        amount/debit/credit are required.
        """
        column_map = self.detect(headers)

        if not column_map.date:
            raise SchemaError(
                f"No date column found. Expected: {', '.join(self.candidates['date'][:3])}"
            )
        if not column_map.description:
            raise SchemaError(
                f"No description column found. Expected: {', '.join(self.candidates['description'][:3])}"
            )
        if not (column_map.amount or column_map.debit or column_map.credit):
            raise SchemaError("No amount column found. Expected: amount, debit, credit")

        return column_map
