import csv
import io
import os
import logging
from pathlib import Path
from typing import List, Tuple, Union

import pandas as pd
import pdfplumber

from errors import (
    EmptyStatementError,
    StatementParseError,
    UnreadablePdfError,
    UnsupportedFileError,
)

logger = logging.getLogger(__name__)


def file_kind(filename: str) -> str:
    """Return 'csv' or 'pdf' for a statement filename."""
    suffix = Path(filename or '').suffix.lower()
    if suffix == '.csv':
        return 'csv'
    if suffix == '.pdf':
        return 'pdf'
    raise UnsupportedFileError("Please upload a CSV or PDF file")


class FileLoader:
    """Handles decoding of uploaded CSV and PDF statements."""

    ENCODINGS = ['utf-8-sig', 'cp1252', 'latin1']

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def load_file(self, file_path: str) -> Tuple[str, bytes]:
        """
        Read a statement from disk.

        Args:
            file_path: Path to the file

        Returns:
            Tuple of (file_kind, raw bytes)
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        kind = file_kind(file_path)
        self.logger.info(f"Loading {kind} file: {file_path}")

        with open(file_path, 'rb') as f:
            return kind, f.read()

    def decode_text(self, content: Union[bytes, str]) -> str:
        """Decode CSV bytes, trying common encodings in turn."""
        if isinstance(content, str):
            return content

        for encoding in self.ENCODINGS:
            try:
                text = content.decode(encoding)
                self.logger.debug(f"Decoded CSV with {encoding} encoding")
                return text
            except UnicodeDecodeError:
                continue

        raise StatementParseError(f"Could not decode CSV file with any of the tried encodings: {self.ENCODINGS}")

    def load_csv_text(self, csv_text: str) -> pd.DataFrame:
        """
        Parse CSV text into a string-typed DataFrame.

        The first row is the header. Blank lines are skipped, rows with too
        few cells are padded with empty strings and rows with too many are
        truncated to the header width.
        """
        if not csv_text or not csv_text.strip():
            raise EmptyStatementError("CSV is empty")

        read_options = dict(
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            index_col=False,
            engine='python',
        )

        try:
            header = pd.read_csv(io.StringIO(csv_text), nrows=0, **read_options).columns
            width = len(header)
            df = pd.read_csv(
                io.StringIO(csv_text),
                on_bad_lines=lambda fields: fields[:width],
                **read_options,
            )
        except pd.errors.EmptyDataError:
            raise EmptyStatementError("CSV is empty")
        except (pd.errors.ParserError, csv.Error) as e:
            self.logger.error(f"Error parsing CSV: {str(e)}")
            raise StatementParseError("Failed to parse CSV format")

        if df.empty:
            raise EmptyStatementError("CSV is empty")

        self.logger.info(f"Loaded CSV with {len(df)} rows and columns {list(df.columns)}")
        return df.fillna('')

    def load_pdf_pages(self, content: bytes) -> List[str]:
        """Extract the text of each PDF page using pdfplumber."""
        pages_text = []

        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                for i, page in enumerate(pdf.pages):
                    text = page.extract_text() or ''
                    pages_text.append(text)
                    self.logger.debug(f"Extracted {len(text)} characters from page {i+1}")
        except Exception as e:
            self.logger.error(f"PDF text extraction error: {str(e)}")
            raise UnreadablePdfError(
                "Could not extract text from PDF. The file may be scanned/image-based. "
                "Please download CSV from your bank instead."
            ) from e

        if not any(text.strip() for text in pages_text):
            self.logger.warning("No text extracted from PDF - may be image-only")

        return pages_text

    def load_pdf_text(self, content: bytes) -> str:
        """Extract all PDF text as one string, one page per line block."""
        return '\n'.join(self.load_pdf_pages(content))
