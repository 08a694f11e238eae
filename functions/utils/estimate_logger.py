"""Estimate Breakdown Logger for the roof pricing engine.

Provides highly visible, formatted console output for estimate breakdowns
and ledger replays, alongside structured structlog events.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from models.adjustment import PriceAdjustmentRecord
from models.pricing import PricingResult

logger = structlog.get_logger()

# Visual markers for different log types
BANNER_WIDTH = 80
ESTIMATE_BANNER_CHAR = "═"
LEDGER_BANNER_CHAR = "─"


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog console output at the given level."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _money(value: Decimal) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def log_estimate_breakdown(result: PricingResult, estimate_id: Optional[str] = None) -> None:
    """Print an estimate's band and adjustment lines."""
    timestamp = datetime.now(timezone.utc).isoformat()

    print("\n")
    print(ESTIMATE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(ESTIMATE_BANNER_CHAR, "ESTIMATE BREAKDOWN"))
    print(ESTIMATE_BANNER_CHAR * BANNER_WIDTH)
    if estimate_id:
        print(f"║ Estimate ID  : {estimate_id}")
    print(f"║ Timestamp    : {timestamp}")
    print(f"║ Low          : {_money(result.price_low)}")
    print(f"║ Likely       : {_money(result.price_likely)}")
    print(f"║ High         : {_money(result.price_high)}")
    print(ESTIMATE_BANNER_CHAR * BANNER_WIDTH)
    print("║ ADJUSTMENTS:")
    for adj in result.adjustments:
        print(f"║   • [{adj.category}] {adj.name}: {_money(adj.impact)} ({adj.description})")
    print(ESTIMATE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "estimate_breakdown_logged",
        estimate_id=estimate_id,
        price_likely=str(result.price_likely),
        adjustment_count=len(result.adjustments)
    )


def log_ledger_replay(
    estimate_id: str,
    original_price: Decimal,
    records: Iterable[PriceAdjustmentRecord],
    final_price: Decimal
) -> None:
    """Print each replay step of an adjustment ledger."""
    records = list(records)

    print("\n")
    print(LEDGER_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(LEDGER_BANNER_CHAR, f"LEDGER REPLAY: {estimate_id}"))
    print(LEDGER_BANNER_CHAR * BANNER_WIDTH)
    print(f"│ Original     : {_money(original_price)}")
    if not records:
        print("│ No adjustments remain")
    for record in records:
        print(
            f"│   • {record.adjustment_type.value} {record.adjustment_value}"
            f" @ {record.created_at.isoformat()}"
        )
    print(f"│ Final        : {_money(final_price)}")
    print(LEDGER_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "ledger_replayed",
        estimate_id=estimate_id,
        original_price=str(original_price),
        steps=len(records),
        final_price=str(final_price)
    )
