"""
Cash burn and runway.

Burn is outflow minus inflow over a trailing 30-day window, floored at zero.
Runway is cash on hand divided by that burn, in months.
"""
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from schema import CashflowSnapshot, Direction

WINDOW_DAYS = 30


def _direction(item) -> str:
    direction = item['direction'] if isinstance(item, dict) else item.direction
    return direction.value if isinstance(direction, Direction) else str(direction)


def _amount(item) -> int:
    return item['amount_paise'] if isinstance(item, dict) else item.amount_paise


def compute_burn_and_runway(
    latest_tx_date: date,
    cash_on_hand_paise: Optional[int],
    transactions: Iterable,
) -> CashflowSnapshot:
    """
    Summarize the given transactions into burn and runway.

    Args:
        latest_tx_date: End of the window
        cash_on_hand_paise: Latest cash snapshot, or None when unknown
        transactions: Objects or dicts with ``direction`` and ``amount_paise``,
            already limited to the window

    Returns:
        CashflowSnapshot; runway is None when cash is unknown or burn is zero
    """
    transactions = list(transactions)
    outflows = sum(_amount(t) for t in transactions if _direction(t) == Direction.OUTFLOW.value)
    inflows = sum(_amount(t) for t in transactions if _direction(t) == Direction.INFLOW.value)

    burn = max(0, outflows - inflows)
    runway = None
    if cash_on_hand_paise is not None and burn > 0:
        runway = cash_on_hand_paise / burn

    return CashflowSnapshot(
        from_date=latest_tx_date - timedelta(days=WINDOW_DAYS),
        to_date=latest_tx_date,
        inflows_paise=inflows,
        outflows_paise=outflows,
        burn_monthly_paise=burn,
        runway_months=runway,
        cash_on_hand_paise=cash_on_hand_paise,
    )


def snapshot_for_user(store, user_id: str) -> Optional[CashflowSnapshot]:
    """Burn and runway for the 30 days ending at the user's latest transaction."""
    latest = store.latest_transaction_date(user_id)
    if latest is None:
        return None

    window = store.transactions_between(user_id, latest - timedelta(days=WINDOW_DAYS), latest)
    cash = store.latest_cash_snapshot(user_id)
    return compute_burn_and_runway(
        latest_tx_date=latest,
        cash_on_hand_paise=cash.cash_on_hand_paise if cash else None,
        transactions=window,
    )


def category_breakdown(transactions: Iterable) -> List[Tuple[str, int]]:
    """Outflow totals per category, largest first."""
    totals: Dict[str, int] = {}
    for t in transactions:
        if _direction(t) != Direction.OUTFLOW.value:
            continue
        category = t['category'] if isinstance(t, dict) else t.category
        totals[category] = totals.get(category, 0) + _amount(t)
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def _group_indian(digits: str) -> str:
    """12345678 -> 1,23,45,678"""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ','.join(groups + [tail])


def format_inr(paise: int) -> str:
    """Whole rupees with Indian digit grouping, e.g. ``₹1,23,457``."""
    rupees = int((Decimal(paise) / 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    sign = '-' if rupees < 0 else ''
    return f"{sign}₹{_group_indian(str(abs(rupees)))}"
