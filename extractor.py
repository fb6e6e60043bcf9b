import re
import logging
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from column_detector import ColumnDetector, ColumnMap
from errors import EmptyStatementError
from file_loader import FileLoader
from preprocess import DataPreprocessor, parse_amount, parse_date
from schema import Direction, ParsedTransaction

logger = logging.getLogger(__name__)

CREDIT_TYPE_TOKENS = ('cr', 'credit')
DEBIT_TYPE_TOKENS = ('dr', 'debit')

# "25,000.00 Dr" / "50000.00 CR"
AMOUNT_MARKER = re.compile(r'(?<![a-z])(cr|dr)\.?\s*$', re.IGNORECASE)


class TransactionExtractor:
    """Extracts canonical transactions from tabular statement data."""

    def __init__(self, detector: Optional[ColumnDetector] = None, loader: Optional[FileLoader] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.detector = detector or ColumnDetector()
        self.loader = loader or FileLoader()
        self.preprocessor = DataPreprocessor()

    def extract_from_csv_text(self, csv_text: str) -> Tuple[ParsedTransaction, ...]:
        """Parse CSV text and extract its transactions."""
        df = self.loader.load_csv_text(csv_text)
        return self.extract_from_structured_data(df)

    def extract_from_structured_data(self, df: pd.DataFrame) -> Tuple[ParsedTransaction, ...]:
        """
        Extract transactions from a parsed CSV table.

        Rows with an unparseable date, an empty description or a zero amount
        are skipped silently.

        Args:
            df: Table with one statement line per row

        Returns:
            Tuple of parsed transactions, in row order

        Raises:
            EmptyStatementError: the table has no data rows
            SchemaError: a required column is missing
        """
        if df.empty:
            raise EmptyStatementError("CSV is empty")

        df = self.preprocessor.preprocess_structured_data(df)
        column_map = self.detector.detect_required(df.columns.tolist())

        self.logger.info(f"Extracting transactions from structured data ({len(df)} rows)")

        transactions = []
        for idx, row in enumerate(df.to_dict(orient='records')):
            transaction = self._extract_transaction_from_row(row, column_map)
            if transaction is None:
                self.logger.debug(f"Skipped row {idx}")
                continue
            transactions.append(transaction)

        self.logger.info(f"Extracted {len(transactions)} transactions from structured data")
        return tuple(transactions)

    def _extract_transaction_from_row(self, row: Dict[str, Any], column_map: ColumnMap) -> Optional[ParsedTransaction]:
        """Build one transaction from a row, or None when the row is not a transaction."""
        transaction_date = parse_date(row.get(column_map.date, ''))
        if not transaction_date:
            return None

        description = str(row.get(column_map.description, '') or '').strip()
        if not description:
            return None

        if column_map.has_debit_credit:
            resolved = self._resolve_debit_credit(row, column_map)
        else:
            resolved = self._resolve_single_amount(row, column_map)

        if resolved is None:
            return None

        amount_paise, direction = resolved
        return ParsedTransaction(
            date=transaction_date,
            description=description,
            amount_paise=amount_paise,
            direction=direction,
            raw_row={str(key): str(value) for key, value in row.items()},
        )

    def _resolve_debit_credit(self, row: Dict[str, Any], column_map: ColumnMap) -> Optional[Tuple[int, Direction]]:
        """Separate debit/credit columns: credit wins, then debit, else the row is dropped."""
        debit = parse_amount(row.get(column_map.debit, '')) if column_map.debit else 0
        credit = parse_amount(row.get(column_map.credit, '')) if column_map.credit else 0

        if credit > 0:
            return credit, Direction.INFLOW
        if debit > 0:
            return debit, Direction.OUTFLOW
        return None

    def _resolve_single_amount(self, row: Dict[str, Any], column_map: ColumnMap) -> Optional[Tuple[int, Direction]]:
        """
        Single amount column. Direction priority: type column, then a trailing
        Dr/Cr marker on the amount, then a minus sign in the raw amount, then INFLOW.
        """
        raw_amount = str(row.get(column_map.amount, '') or '')
        amount_paise = parse_amount(raw_amount)
        if amount_paise == 0:
            return None

        type_value = str(row.get(column_map.type, '') or '').lower() if column_map.type else ''
        if not type_value:
            marker = AMOUNT_MARKER.search(raw_amount)
            type_value = marker.group(1).lower() if marker else ''

        if any(token in type_value for token in CREDIT_TYPE_TOKENS):
            direction = Direction.INFLOW
        elif any(token in type_value for token in DEBIT_TYPE_TOKENS):
            direction = Direction.OUTFLOW
        elif '-' in raw_amount:
            direction = Direction.OUTFLOW
        else:
            direction = Direction.INFLOW

        return amount_paise, direction
