"""
Import orchestration: archive, parse, insert, and track one statement upload.
"""
import time
import logging
from typing import Callable, Optional, Tuple, Union

from blob_store import LocalBlobStore
from categorizer import TransactionCategorizer
from config import Settings
from dedupe import hash_transaction
from errors import (
    DuplicateTransactionError,
    EmptyStatementError,
    StatementError,
    UnsupportedFileError,
)
from extractor import TransactionExtractor
from file_loader import FileLoader
from llm_client import CompletionClient
from pdf_extractor import AIPdfExtractor, LocalPdfExtractor
from schema import UNCATEGORIZED, ImportResult, ParsedTransaction
from storage import LedgerStore

logger = logging.getLogger(__name__)

KIND_CSV = 'csv'
KIND_PDF = 'pdf'
KIND_CSV_TEXT = 'csv_text'
KINDS = {KIND_CSV, KIND_PDF, KIND_CSV_TEXT}

STRATEGY_AI = 'ai'
STRATEGY_LOCAL = 'local'


class StatementImporter:
    """Runs one upload end to end: archive -> Upload record -> parse -> insert -> status."""

    def __init__(
        self,
        store: LedgerStore,
        blob_store: LocalBlobStore,
        settings: Optional[Settings] = None,
        completion_client=None,
        categorizer: Optional[TransactionCategorizer] = None,
        pdf_text_extractor: Optional[Callable[[bytes], str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.blob_store = blob_store
        self.settings = settings or Settings()
        self.completion_client = completion_client
        self.categorizer = categorizer
        self.loader = FileLoader()
        self.pdf_text_extractor = pdf_text_extractor or self.loader.load_pdf_text
        self.csv_extractor = TransactionExtractor(loader=self.loader)
        self.sleep = sleep
        self.clock = clock

    def import_statement(
        self,
        user_id: str,
        filename: str,
        content: Union[bytes, str],
        kind: str,
        strategy: Optional[str] = None,
    ) -> ImportResult:
        """
        Import one statement for a user.

        Args:
            user_id: Owner of the upload
            filename: Original filename, used for the archive path and the Upload record
            content: Raw file bytes, or CSV text for client-converted PDFs
            kind: 'csv', 'pdf' or 'csv_text'
            strategy: PDF strategy, 'ai' or 'local'; defaults to settings

        Returns:
            ImportResult with imported/skipped/total counts

        Raises:
            StatementError: parse failures (400) after the Upload is marked FAILED,
                or a StorageError (500) before any record is written. Errors
                raised while inserting also mark the Upload FAILED and propagate.
        """
        if kind not in KINDS:
            raise UnsupportedFileError("Please upload a CSV or PDF file")

        is_pdf = kind == KIND_PDF
        if is_pdf:
            strategy = self._resolve_strategy(strategy)

        # Step 1: archive the original file
        storage_path = f"{user_id}/{int(self.clock() * 1000)}-{filename}"
        self.blob_store.upload(
            self.settings.storage_bucket,
            storage_path,
            content,
            content_type="application/pdf" if is_pdf else "text/csv",
        )

        # Step 2: track the attempt
        upload = self.store.create_upload(
            user_id=user_id,
            original_filename=filename,
            storage_bucket=self.settings.storage_bucket,
            storage_path=storage_path,
        )

        # Step 3: parse everything before inserting anything
        try:
            transactions = self._parse(kind, content, strategy)
            if not transactions:
                raise EmptyStatementError("No valid transactions found")
        except StatementError as e:
            self.logger.error(f"Import of {filename} failed: {e.message}")
            self.store.mark_upload_failed(upload.id, e.message)
            raise

        # Step 4: insert sequentially, duplicates are skips
        try:
            imported, skipped = self._insert_all(user_id, upload.id, transactions)
        except Exception as e:
            self.logger.error(f"Import of {filename} failed while inserting: {str(e)}")
            self.store.mark_upload_failed(upload.id, "Failed to save transactions")
            raise

        self.store.mark_upload_imported(upload.id)
        self.logger.info(
            f"Imported {filename}: {imported} new, {skipped} duplicates, {len(transactions)} total"
        )
        return ImportResult(
            success=True,
            imported=imported,
            skipped=skipped,
            total=len(transactions),
            format=KIND_PDF if is_pdf else KIND_CSV,
            upload_id=upload.id,
        )

    def _resolve_strategy(self, strategy: Optional[str]) -> str:
        strategy = (strategy or self.settings.pdf_strategy).lower()
        if strategy not in {STRATEGY_AI, STRATEGY_LOCAL}:
            raise UnsupportedFileError(f"Unknown PDF strategy: {strategy}")
        return strategy

    def _parse(self, kind: str, content: Union[bytes, str], strategy: Optional[str]) -> Tuple[ParsedTransaction, ...]:
        if kind == KIND_PDF:
            self.logger.info(f"Parsing PDF with {strategy} strategy")
            if isinstance(content, str):
                content = content.encode('utf-8')
            return self._pdf_extractor(strategy).extract(content)

        self.logger.info("Parsing CSV")
        csv_text = self.loader.decode_text(content)
        return self.csv_extractor.extract_from_csv_text(csv_text)

    def _pdf_extractor(self, strategy: str):
        if strategy == STRATEGY_LOCAL:
            return LocalPdfExtractor(text_extractor=self.pdf_text_extractor)

        client = self.completion_client
        if client is None:
            # Raises ConfigurationError when no API key is configured
            client = CompletionClient(
                api_key=self.settings.groq_api_key,
                base_url=self.settings.llm_base_url,
                model=self.settings.llm_model,
                timeout=self.settings.llm_timeout,
            )
            self.completion_client = client

        return AIPdfExtractor(
            client,
            text_extractor=self.pdf_text_extractor,
            csv_extractor=self.csv_extractor,
            chunk_size=self.settings.pdf_chunk_size,
            sleep=self.sleep,
        )

    def _insert_all(self, user_id: str, upload_id: int, transactions) -> Tuple[int, int]:
        imported = 0
        skipped = 0
        for transaction in transactions:
            category = UNCATEGORIZED
            if self.categorizer is not None:
                category = self.categorizer.categorize(transaction.description, transaction.direction)
            try:
                self.store.insert_transaction(
                    user_id,
                    transaction,
                    dedupe_hash=hash_transaction(transaction),
                    category=category,
                    upload_id=upload_id,
                )
                imported += 1
            except DuplicateTransactionError:
                skipped += 1
        return imported, skipped


def build_importer(settings: Settings, store: Optional[LedgerStore] = None) -> StatementImporter:
    """Wire an importer from settings, creating the database schema if needed."""
    if store is None:
        store = LedgerStore(settings.database_url)
        store.create_schema()
    categorizer = TransactionCategorizer() if settings.auto_categorize else None
    return StatementImporter(
        store=store,
        blob_store=LocalBlobStore(settings.blob_storage_dir),
        settings=settings,
        categorizer=categorizer,
    )
