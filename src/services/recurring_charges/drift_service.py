"""
Price Drift Service.

Turns a recurring charge's transaction history into price change events and
summarises the overall drift between its first and current amounts.
"""

import logging
from datetime import date
from decimal import Decimal, Overflow, ROUND_HALF_UP, localcontext
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from models.transaction import Transaction
from models.recurring_charge import DriftMetrics, PriceChangeEvent, RecurringCharge
from services.recurring_charges.config import DriftConfig, DEFAULT_DRIFT_CONFIG

logger = logging.getLogger(__name__)

PERCENT_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWELVE = Decimal("12")
GROWTH_PRECISION = 34


def _percent(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the four decimals
        ctx.prec = max(ctx.prec, value.adjusted() + 6)
        return value.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def _annualized_percent(first_amount: Decimal, current_amount: Decimal, months_tracked: int) -> Decimal:
    try:
        with localcontext() as ctx:
            ctx.prec = GROWTH_PRECISION
            growth = (current_amount / first_amount) ** (TWELVE / months_tracked)
            annualized = (growth - 1) * HUNDRED
    except Overflow:
        logger.warning(
            f"Annualized drift overflowed for {first_amount} -> {current_amount} over {months_tracked} months"
        )
        return _percent(ZERO)
    return _percent(annualized)


def months_between(first_date: date, last_date: date) -> int:
    """Whole calendar months from first_date to last_date, never negative."""
    delta = relativedelta(last_date, first_date)
    return max(0, delta.years * 12 + delta.months)


def calculate_drift_metrics(
    first_amount: Decimal,
    current_amount: Decimal,
    first_date: date,
    last_date: date
) -> DriftMetrics:
    """
    Calculate drift between a charge's first and current amounts.

    The annualized increase is a compound-growth extrapolation,
    ``((current / first) ** (12 / months) - 1) * 100``. It is reported
    unclamped and computed in Decimal, so a one-month window can produce very
    large values. Degenerate inputs (first amount <= 0, a negative current
    amount, less than one whole month tracked, or growth beyond the Decimal
    exponent range) yield 0 rather than raising.
    """
    total_change = current_amount - first_amount
    months_tracked = months_between(first_date, last_date)

    if first_amount > 0:
        percent_change = _percent(total_change / first_amount * HUNDRED)
    else:
        percent_change = _percent(ZERO)

    annualized_increase = _percent(ZERO)
    if first_amount > 0 and current_amount >= 0 and months_tracked > 0:
        annualized_increase = _annualized_percent(first_amount, current_amount, months_tracked)

    return DriftMetrics(
        total_change=total_change,
        percent_change=percent_change,
        annualized_increase=annualized_increase,
        months_tracked=months_tracked,
    )


class PriceDriftService:
    """Detects price changes for recurring charges."""

    def __init__(self, config: Optional[DriftConfig] = None):
        self.config = config or DEFAULT_DRIFT_CONFIG

    def charge_history(self, transactions: List[Transaction], charge: RecurringCharge) -> List[Transaction]:
        """Non-pending transactions of the charge's merchant, oldest first."""
        history = [
            tx for tx in transactions
            if tx.merchant_id == charge.merchant_id and not tx.pending
        ]
        history.sort(key=lambda tx: tx.date)
        return history

    def detect_price_changes(
        self,
        transactions: List[Transaction],
        charge: RecurringCharge
    ) -> List[PriceChangeEvent]:
        """
        Emit an event for every adjacent pair of charges whose amount moved
        by more than the configured percentage.

        Args:
            transactions: The user's transactions (any merchant, any order)
            charge: The recurring charge being examined

        Returns:
            Events in ascending date order
        """
        history = self.charge_history(transactions, charge)
        events: List[PriceChangeEvent] = []

        for prev, curr in zip(history, history[1:]):
            change = curr.amount - prev.amount
            raw_percent = change / prev.amount * HUNDRED if prev.amount > 0 else ZERO

            # threshold applies to the unrounded ratio
            if abs(raw_percent) <= self.config.price_change_threshold_pct:
                continue
            change_percent = _percent(raw_percent)

            events.append(PriceChangeEvent(
                recurring_charge_id=charge.recurring_charge_id,
                user_id=charge.user_id,
                merchant_id=charge.merchant_id,
                previous_amount=prev.amount,
                new_amount=curr.amount,
                change_amount=change,
                change_percent=change_percent,
                detected_at=curr.date,
                transaction_id=curr.transaction_id,
            ))

        if events:
            logger.info(
                f"Detected {len(events)} price changes for charge {charge.recurring_charge_id}",
                extra={'merchant_id': str(charge.merchant_id)}
            )
        return events

    def advance_charge(self, transactions: List[Transaction], charge: RecurringCharge) -> bool:
        """
        Move the charge's current amount and last-seen date to its latest
        transaction.

        Returns:
            True if the charge changed
        """
        history = self.charge_history(transactions, charge)
        if not history:
            return False
        latest = history[-1]
        return charge.advance_to(latest.amount, latest.date)
