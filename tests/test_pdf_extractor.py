from datetime import date

import pytest

from conftest import SAMPLE_CSV, StubCompletionClient
from errors import CompletionError, EmptyStatementError, UnreadablePdfError
from pdf_extractor import (
    MODE_LAYOUT_RULES,
    SIMPLE_LAYOUT_RULES,
    AIPdfExtractor,
    DirectionRule,
    LocalPdfExtractor,
    chunk_text,
    guess_direction,
    strip_code_fences,
)
from schema import Direction

STATEMENT_TEXT = "ACME BANK STATEMENT\nAccount 1234\n" + "Opening line of text for the page.\n" * 4


def text_of(text):
    return lambda content: text


# Chunking and cleanup


def test_chunk_text_short_input_is_one_chunk():
    assert chunk_text("abc", max_chars=10) == ["abc"]


def test_chunk_text_respects_limit_on_line_boundaries():
    text = "\n".join(["x" * 30] * 10)
    chunks = chunk_text(text, max_chars=100)

    assert len(chunks) > 1
    assert all(len(chunk) <= 100 for chunk in chunks)
    assert "\n".join(chunks) == text


def test_chunk_text_keeps_overlong_line_whole():
    long_line = "y" * 250
    chunks = chunk_text(f"short\n{long_line}\ntail", max_chars=100)
    assert chunks == ["short", long_line, "tail"]


@pytest.mark.parametrize("raw", [
    "```csv\ndate,description\n```",
    "```\ndate,description\n```",
    "  date,description  ",
])
def test_strip_code_fences(raw):
    assert strip_code_fences(raw) == "date,description"


# Direction keywords


@pytest.mark.parametrize("description, expected", [
    ("UPI/SWIGGY/123", Direction.OUTFLOW),
    ("ACH/HDFC MF", Direction.OUTFLOW),
    ("NEFT-ACME CORP SEND FROM XYZ", Direction.INFLOW),
    ("SALARY DEC", Direction.INFLOW),
    ("INTEREST PAID", Direction.INFLOW),
    ("BIL/ELECTRICITY", Direction.OUTFLOW),
    ("SOMETHING ELSE", Direction.OUTFLOW),
])
def test_mode_layout_direction(description, expected):
    assert guess_direction(description, MODE_LAYOUT_RULES) == expected


def test_simple_layout_neft_needs_from():
    assert guess_direction("NEFT FROM CLIENT", SIMPLE_LAYOUT_RULES) == Direction.INFLOW
    assert guess_direction("NEFT TO VENDOR", SIMPLE_LAYOUT_RULES) == Direction.OUTFLOW


def test_direction_rules_are_injectable():
    rules = [DirectionRule(direction=Direction.INFLOW, contains=("dividend",))]
    assert guess_direction("Dividend payout", rules) == Direction.INFLOW
    assert guess_direction("Card spend", rules, default=Direction.INFLOW) == Direction.INFLOW
    assert guess_direction("Card spend", rules) == Direction.OUTFLOW


# Local strategy


def test_local_mode_layout():
    text = (
        "DATE MODE PARTICULARS DEPOSITS WITHDRAWALS BALANCE\n"
        "01-12-2024 UPI/SWIGGY/FOOD 450.00 10,000.00\n"
        "02-12-2024 NEFT-ACME CORP SEND FROM 50,000.00 60,000.00\n"
    )
    swiggy, neft = LocalPdfExtractor(text_extractor=text_of(text)).extract(b"%PDF")

    assert swiggy.date == date(2024, 12, 1)
    assert swiggy.description == "UPI/SWIGGY/FOOD"
    assert swiggy.amount_paise == 45000
    assert swiggy.direction == Direction.OUTFLOW
    assert swiggy.raw_row["original"].startswith("01-12-2024 UPI/SWIGGY/FOOD")

    assert neft.description == "NEFT-ACME CORP SEND FROM"
    assert neft.amount_paise == 5000000
    assert neft.direction == Direction.INFLOW


def test_local_simple_layout_skips_summary_lines():
    text = (
        "Statement of account\n"
        "05/12/2024 Coffee shop 120.50\n"
        "06/12/2024 Salary credit 50000.00\n"
        "07/12/2024 Closing BALANCE 999.00\n"
    )
    transactions = LocalPdfExtractor().extract_from_text(text)

    assert [t.description for t in transactions] == ["Coffee shop", "Salary credit"]
    assert [t.direction for t in transactions] == [Direction.OUTFLOW, Direction.INFLOW]
    assert transactions[0].amount_paise == 12050


def test_local_returns_empty_tuple_for_unrecognized_text():
    assert LocalPdfExtractor().extract_from_text("nothing that looks like a transaction") == ()


# AI strategy


def test_ai_converts_text_through_csv(sleep):
    client = StubCompletionClient(["```csv\n" + SAMPLE_CSV + "```"])
    extractor = AIPdfExtractor(client, text_extractor=text_of(STATEMENT_TEXT), sleep=sleep)

    swiggy, salary = extractor.extract(b"%PDF")

    assert swiggy.amount_paise == 45000
    assert swiggy.direction == Direction.OUTFLOW
    assert salary.direction == Direction.INFLOW
    assert "date,description,debit,credit" in client.prompts[0]
    assert "ACME BANK STATEMENT" in client.prompts[0]
    assert sleep.calls == []


def test_ai_retries_rate_limits_with_backoff(sleep):
    client = StubCompletionClient([
        CompletionError("rate limited", status_code=429),
        CompletionError("payload too large", status_code=413),
        SAMPLE_CSV,
    ])
    extractor = AIPdfExtractor(client, sleep=sleep)

    transactions = extractor.extract_from_text(STATEMENT_TEXT)

    assert len(transactions) == 2
    assert sleep.calls == [2.0, 4.0]


def test_ai_gives_up_after_max_retries(sleep):
    client = StubCompletionClient([CompletionError("server error", status_code=503)] * 4)
    extractor = AIPdfExtractor(client, sleep=sleep)

    with pytest.raises(EmptyStatementError, match="No transactions found in PDF"):
        extractor.extract_from_text(STATEMENT_TEXT)

    assert len(client.prompts) == 4
    assert sleep.calls == [2.0, 4.0, 8.0]


def test_ai_does_not_retry_client_errors(sleep):
    client = StubCompletionClient([CompletionError("bad key", status_code=401)])
    extractor = AIPdfExtractor(client, sleep=sleep)

    with pytest.raises(EmptyStatementError):
        extractor.extract_from_text(STATEMENT_TEXT)

    assert len(client.prompts) == 1
    assert sleep.calls == []


def test_ai_skips_unusable_chunk_and_keeps_the_rest(sleep):
    text = ("a" * 80) + "\n" + ("b" * 80)
    client = StubCompletionClient(["Sorry, I cannot help with that.", SAMPLE_CSV])
    extractor = AIPdfExtractor(client, chunk_size=100, sleep=sleep)

    transactions = extractor.extract_from_text(text)

    assert len(client.prompts) == 2
    assert len(transactions) == 2
    assert sleep.calls == [1.0]


def test_ai_rejects_image_only_pdf(sleep):
    client = StubCompletionClient([])
    extractor = AIPdfExtractor(client, sleep=sleep)

    with pytest.raises(UnreadablePdfError, match="empty or image-based"):
        extractor.extract_from_text("   short   ")

    assert client.prompts == []
