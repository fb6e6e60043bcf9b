"""
HTTP surface for statement uploads, cash snapshots and transaction listing.

Authentication happens upstream; the caller's identity arrives in the
``X-User-Id`` header. Every error body has the shape ``{"error": message}``.
"""
import logging
import math
from datetime import date
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from errors import NotFoundError, StatementError
from file_loader import file_kind
from importer import KIND_CSV_TEXT, StatementImporter, build_importer
from schema import UNCATEGORIZED, Direction, ParsedTransaction
from snapshot import category_breakdown, format_inr, snapshot_for_user

logger = logging.getLogger(__name__)


def get_importer(request: Request) -> StatementImporter:
    return request.app.state.importer


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def _parse_iso_date(value: Any) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


def create_app(settings: Optional[Settings] = None, importer: Optional[StatementImporter] = None) -> FastAPI:
    """Build the FastAPI app; tests pass a pre-wired importer."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    app = FastAPI(title="Bank Statement Import")
    app.state.importer = importer or build_importer(settings)

    @app.exception_handler(StatementError)
    async def statement_error_handler(request: Request, exc: StatementError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.post("/api/import/bank-statement")
    def import_bank_statement(
        file: Optional[UploadFile] = File(None),
        csvText: Optional[str] = Form(None),
        originalFilename: Optional[str] = Form(None),
        strategy: Optional[str] = Form(None),
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        if csvText and originalFilename:
            # PDF already converted to CSV in the browser
            logger.info("Received client-processed PDF as CSV")
            result = importer.import_statement(user_id, originalFilename, csvText, KIND_CSV_TEXT)
        elif file is not None and file.filename:
            kind = file_kind(file.filename)
            content = file.file.read()
            result = importer.import_statement(user_id, file.filename, content, kind, strategy=strategy)
        else:
            raise HTTPException(status_code=400, detail="No file provided")
        return result.model_dump()

    @app.post("/api/cash")
    def add_cash_snapshot(
        body: Dict[str, Any] = Body(...),
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        cash = body.get("cashOnHandPaise")
        if isinstance(cash, bool) or not isinstance(cash, (int, float)) or not math.isfinite(cash) or cash < 0:
            raise HTTPException(status_code=400, detail="Invalid amount")
        importer.store.add_cash_snapshot(user_id, int(round(cash)))
        return {"success": True}

    @app.get("/api/transactions")
    def list_transactions(
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        return [record.to_dict() for record in importer.store.list_transactions(user_id, limit=100)]

    @app.post("/api/transactions")
    def create_transaction(
        body: Dict[str, Any] = Body(...),
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        required = ("date", "description", "amountPaise", "direction")
        if any(not body.get(field) for field in required):
            raise HTTPException(
                status_code=400,
                detail="Missing required fields: date, description, amountPaise, direction",
            )
        try:
            transaction = ParsedTransaction(
                date=_parse_iso_date(body["date"]),
                description=body["description"],
                amount_paise=body["amountPaise"],
                direction=body["direction"],
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid transaction: {e.errors()[0]['msg']}")
        record = importer.store.create_transaction(user_id, transaction, body.get("category") or UNCATEGORIZED)
        return record.to_dict()

    @app.patch("/api/transactions/{transaction_id}")
    def update_transaction(
        transaction_id: int,
        body: Dict[str, Any] = Body(...),
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        direction = body.get("direction")
        if direction is not None and direction not in {d.value for d in Direction}:
            raise HTTPException(status_code=400, detail="Invalid direction")
        amount = body.get("amountPaise")
        if amount is not None and (not isinstance(amount, int) or isinstance(amount, bool) or amount < 0):
            raise HTTPException(status_code=400, detail="Invalid amount")

        record = importer.store.update_transaction(
            user_id,
            transaction_id,
            transaction_date=_parse_iso_date(body["date"]) if body.get("date") else None,
            description=body.get("description"),
            amount_paise=amount,
            direction=direction,
            category=body.get("category"),
        )
        return record.to_dict()

    @app.delete("/api/transactions/{transaction_id}")
    def delete_transaction(
        transaction_id: int,
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        if not importer.store.delete_transaction(user_id, transaction_id):
            raise NotFoundError("Transaction not found")
        return {"success": True}

    @app.delete("/api/transactions")
    def clear_transactions(
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        deleted = importer.store.clear_transactions(user_id)
        return {"success": True, "deleted": deleted}

    @app.get("/api/snapshot")
    def get_snapshot(
        user_id: str = Depends(get_user_id),
        importer: StatementImporter = Depends(get_importer),
    ):
        snapshot = snapshot_for_user(importer.store, user_id)
        if snapshot is None:
            return {"snapshot": None}

        window = importer.store.transactions_between(user_id, snapshot.from_date, snapshot.to_date)
        return {
            "snapshot": {
                "from": snapshot.from_date.isoformat(),
                "to": snapshot.to_date.isoformat(),
                "inflowsPaise": snapshot.inflows_paise,
                "outflowsPaise": snapshot.outflows_paise,
                "burnMonthlyPaise": snapshot.burn_monthly_paise,
                "runwayMonths": snapshot.runway_months,
                "cashOnHandPaise": snapshot.cash_on_hand_paise,
                "burnMonthly": format_inr(snapshot.burn_monthly_paise),
            },
            "categoryBreakdown": [
                {"category": category, "totalPaise": total}
                for category, total in category_breakdown(window)
            ],
        }

    return app
