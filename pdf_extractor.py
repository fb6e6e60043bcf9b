"""
PDF statement extraction.

Two interchangeable strategies turn PDF bytes into parsed transactions:

* ``LocalPdfExtractor`` pattern-matches the extracted text against a known
  columnar layout and guesses direction from a keyword table.
* ``AIPdfExtractor`` asks a language model to rewrite the text as
  ``date,description,debit,credit`` CSV and runs that through the CSV
  extractor.

The caller picks one; neither falls back to the other.
"""
import re
import time
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from errors import CompletionError, EmptyStatementError, StatementError, UnreadablePdfError
from extractor import TransactionExtractor
from file_loader import FileLoader
from preprocess import DataPreprocessor, parse_amount, parse_date
from schema import Direction, ParsedTransaction

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 200


class DirectionRule(BaseModel):
    """
    Keyword rule for guessing a transaction's direction from its description.

    The rule matches when every ``contains`` keyword occurs in the lowercased
    description and, if set, the description starts with ``startswith``.
    """

    direction: Direction
    contains: Tuple[str, ...] = ()
    startswith: Optional[str] = None

    def matches(self, description: str) -> bool:
        text = description.lower()
        if self.startswith and not text.startswith(self.startswith):
            return False
        return all(keyword in text for keyword in self.contains)


def _inflow(*keywords: str) -> DirectionRule:
    return DirectionRule(direction=Direction.INFLOW, contains=keywords)


def _outflow(*keywords: str, startswith: Optional[str] = None) -> DirectionRule:
    return DirectionRule(direction=Direction.OUTFLOW, contains=keywords, startswith=startswith)


# ICICI-style layout: DATE | MODE | PARTICULARS | DEPOSITS | WITHDRAWALS | BALANCE
MODE_LAYOUT_RULES = (
    _inflow('neft-', 'send from'),
    _inflow('salary'),
    _inflow('credit'),
    _inflow('refund'),
    _inflow('cashback'),
    _inflow('reversal'),
    _inflow('interest'),
    _outflow(startswith='upi/'),
    _outflow(startswith='ach/'),
    _outflow(startswith='bil/'),
    _outflow('withdrawal'),
    _outflow('payment'),
    _outflow('transfer'),
)

SIMPLE_LAYOUT_RULES = (
    _inflow('salary'),
    _inflow('credit'),
    _inflow('deposit'),
    _inflow('refund'),
    _inflow('neft', 'from'),
)

MODE_LAYOUT_PATTERN = re.compile(
    r'(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\s+(?:NET BANKING\s+)?([A-Z]{2,}[/\-][^\d]+?)\s+([\d,]+\.\d{2})\s+([\d,]+\.\d{2})?',
    re.IGNORECASE,
)
SIMPLE_LAYOUT_PATTERN = re.compile(r'(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\s+(.+?)\s+([\d,]+\.\d{2})')
SUMMARY_MARKERS = ('B/F', 'BALANCE', 'TOTAL')

CSV_PROMPT_TEMPLATE = """You are a bank statement parser. Convert this bank statement text to CSV format.

BANK STATEMENT TEXT:
{chunk}

OUTPUT FORMAT:
Output a CSV with these exact columns: date,description,debit,credit

Rules:
- date: Transaction date (keep original format like DD-MM-YYYY or DD/MM/YYYY)
- description: Transaction narration/particulars (remove commas, replace with spaces)
- debit: Amount withdrawn/debited (leave empty if credit)
- credit: Amount deposited/credited (leave empty if debit)
- Skip any lines that are not transactions (headers, footers, summaries)

Output ONLY the CSV data. No markdown, no code blocks, no explanations.
Start with header row, then transactions found in this text.

Example:
date,description,debit,credit
15-12-2024,UPI-SWIGGY-123456,450.00,
14-12-2024,SALARY DECEMBER,,50000.00"""


def guess_direction(
    description: str,
    rules: Sequence[DirectionRule],
    default: Direction = Direction.OUTFLOW,
) -> Direction:
    """Return the direction of the first matching rule, or the default."""
    for rule in rules:
        if rule.matches(description):
            return rule.direction
    return default


def chunk_text(text: str, max_chars: int = 4000) -> List[str]:
    """
    Split text into chunks of at most ``max_chars`` on line boundaries.

    A single line longer than ``max_chars`` becomes a chunk of its own.
    """
    if len(text) <= max_chars:
        return [text]

    chunks = []
    current = ''
    for line in text.split('\n'):
        if not current:
            current = line
        elif len(current) + 1 + len(line) > max_chars:
            chunks.append(current)
            current = line
        else:
            current += '\n' + line
    if current:
        chunks.append(current)
    return chunks


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence the model may wrap its CSV in."""
    text = text.strip()
    if text.lower().startswith('```csv'):
        text = text[6:]
    elif text.startswith('```'):
        text = text[3:]
    if text.endswith('```'):
        text = text[:-3]
    return text.strip()


class LocalPdfExtractor:
    """Regex extraction tuned to a columnar Indian bank statement layout."""

    def __init__(
        self,
        text_extractor: Optional[Callable[[bytes], str]] = None,
        mode_rules: Sequence[DirectionRule] = MODE_LAYOUT_RULES,
        simple_rules: Sequence[DirectionRule] = SIMPLE_LAYOUT_RULES,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.text_extractor = text_extractor or FileLoader().load_pdf_text
        self.preprocessor = DataPreprocessor()
        self.mode_rules = tuple(mode_rules)
        self.simple_rules = tuple(simple_rules)

    def extract(self, content: bytes) -> Tuple[ParsedTransaction, ...]:
        text = self.text_extractor(content)
        return self.extract_from_text(text)

    def extract_from_text(self, text: str) -> Tuple[ParsedTransaction, ...]:
        """
        Recover transactions from raw statement text.

        The mode-prefixed layout is tried first; the generic
        ``date text amount`` layout is used only when it finds nothing.
        """
        joined = ' '.join(self.preprocessor.preprocess_text_data(text))

        transactions = self._extract_mode_layout(joined)
        if not transactions:
            self.logger.info("No mode-prefixed transactions found, trying simple layout")
            transactions = self._extract_simple_layout(joined)

        self.logger.info(f"Extracted {len(transactions)} transactions from PDF text")
        return tuple(transactions)

    def _extract_mode_layout(self, text: str) -> List[ParsedTransaction]:
        transactions = []
        for match in MODE_LAYOUT_PATTERN.finditer(text):
            date_str, description, amount_str, _balance = match.groups()

            transaction_date = parse_date(date_str)
            if not transaction_date:
                continue

            description = re.sub(r'/+$', '', description.strip()).strip()
            if len(description) < 3:
                continue

            amount_paise = parse_amount(amount_str)
            if amount_paise == 0:
                continue

            transactions.append(ParsedTransaction(
                date=transaction_date,
                description=description[:MAX_DESCRIPTION_LENGTH],
                amount_paise=amount_paise,
                direction=guess_direction(description, self.mode_rules),
                raw_row={'original': match.group(0)},
            ))
        return transactions

    def _extract_simple_layout(self, text: str) -> List[ParsedTransaction]:
        transactions = []
        for match in SIMPLE_LAYOUT_PATTERN.finditer(text):
            date_str, description, amount_str = match.groups()

            transaction_date = parse_date(date_str)
            if not transaction_date:
                continue

            if any(marker in description for marker in SUMMARY_MARKERS):
                continue

            description = description.strip()[:MAX_DESCRIPTION_LENGTH]
            if len(description) < 3:
                continue

            amount_paise = parse_amount(amount_str)
            if amount_paise == 0:
                continue

            transactions.append(ParsedTransaction(
                date=transaction_date,
                description=description,
                amount_paise=amount_paise,
                direction=guess_direction(description, self.simple_rules),
                raw_row={'original': match.group(0)},
            ))
        return transactions


class AIPdfExtractor:
    """Language-model assisted extraction: text -> CSV -> CSV extractor."""

    def __init__(
        self,
        client,
        text_extractor: Optional[Callable[[bytes], str]] = None,
        csv_extractor: Optional[TransactionExtractor] = None,
        chunk_size: int = 4000,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        chunk_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.client = client
        self.text_extractor = text_extractor or FileLoader().load_pdf_text
        self.csv_extractor = csv_extractor or TransactionExtractor()
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.chunk_delay = chunk_delay
        self.sleep = sleep

    def extract(self, content: bytes) -> Tuple[ParsedTransaction, ...]:
        text = self.text_extractor(content)
        return self.extract_from_text(text)

    def extract_from_text(self, text: str) -> Tuple[ParsedTransaction, ...]:
        """
        Convert statement text chunk by chunk and collect the results.

        A chunk that keeps failing, or whose output is not usable CSV, is
        skipped; the other chunks still count.

        Raises:
            UnreadablePdfError: the text is too short to be a text PDF
            EmptyStatementError: no chunk produced a transaction
        """
        if not text or len(text.strip()) < MIN_TEXT_LENGTH:
            raise UnreadablePdfError(
                "PDF appears to be empty or image-based. Please download CSV from your bank instead."
            )

        self.logger.info(f"Extracted {len(text)} characters from PDF")
        chunks = chunk_text(text, self.chunk_size)
        self.logger.info(f"Split into {len(chunks)} chunks for processing")

        results = []
        for idx, chunk in enumerate(chunks):
            results.append(self._process_chunk(idx, len(chunks), chunk))
            if idx < len(chunks) - 1:
                self.sleep(self.chunk_delay)

        transactions = tuple(tx for chunk_result in results for tx in chunk_result)
        if not transactions:
            raise EmptyStatementError("No transactions found in PDF. The document may not be a bank statement.")

        self.logger.info(f"Successfully parsed {len(transactions)} total transactions from PDF")
        return transactions

    def _process_chunk(self, idx: int, total: int, chunk: str) -> Tuple[ParsedTransaction, ...]:
        """Convert one chunk, retrying retryable completion errors with exponential backoff."""
        self.logger.info(f"Processing chunk {idx + 1}/{total} ({len(chunk)} chars)")
        prompt = CSV_PROMPT_TEMPLATE.format(chunk=chunk)

        for attempt in range(self.max_retries + 1):
            try:
                csv_text = strip_code_fences(self.client.complete(prompt))
                self.logger.debug(f"Chunk {idx + 1} CSV (first 200 chars): {csv_text[:200]}")
                transactions = self.csv_extractor.extract_from_csv_text(csv_text)
                self.logger.info(f"Found {len(transactions)} transactions in chunk {idx + 1}")
                return transactions
            except CompletionError as e:
                if e.retryable and attempt < self.max_retries:
                    wait = self.backoff_base * (2 ** attempt)
                    self.logger.warning(
                        f"Chunk {idx + 1} attempt {attempt + 1} failed ({e}); retrying in {wait:g}s"
                    )
                    self.sleep(wait)
                    continue
                self.logger.warning(f"Skipping chunk {idx + 1}: {e}")
                return ()
            except StatementError as e:
                self.logger.warning(f"Skipping chunk {idx + 1}: model output not usable ({e.message})")
                return ()
        return ()
