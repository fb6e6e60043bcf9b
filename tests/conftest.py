import itertools

import pytest

from blob_store import LocalBlobStore
from config import Settings
from importer import StatementImporter
from storage import LedgerStore

SAMPLE_CSV = (
    "date,description,debit,credit\n"
    "15-12-2024,UPI-SWIGGY-123456,450.00,\n"
    "14-12-2024,SALARY DECEMBER,,50000.00\n"
)


class StubCompletionClient:
    """Replays canned completions; an exception in the list is raised instead."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'statements.db'}",
        blob_storage_dir=str(tmp_path / 'uploads'),
        pdf_strategy='local',
    )


@pytest.fixture
def store(settings):
    ledger = LedgerStore(settings.database_url)
    ledger.create_schema()
    yield ledger
    ledger.engine.dispose()


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.blob_storage_dir)


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def clock():
    ticks = itertools.count(1_734_000_000)
    return lambda: next(ticks)


@pytest.fixture
def make_importer(store, blob_store, settings, sleep, clock):
    def factory(**kwargs):
        options = dict(store=store, blob_store=blob_store, settings=settings, sleep=sleep, clock=clock)
        options.update(kwargs)
        return StatementImporter(**options)
    return factory


@pytest.fixture
def importer(make_importer):
    return make_importer()
