"""
Data quality checks for the fulfillment sources.

Two kinds of findings:
- reference-integrity problems (orphan orders/events, unknown event kinds):
  the offending rows are excluded from the run and counted
- anomalies (negative durations, orders with no events): kept in the
  aggregates and only reported
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from transforms.order_metrics import DURATION_COLUMNS


@dataclass
class DataQualityReport:
    """Counts per check, plus one human-readable message per non-zero finding."""

    excluded: Dict[str, int] = field(default_factory=dict)
    flagged: Dict[str, int] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)

    def exclude(self, check: str, count: int, message: str) -> None:
        self.excluded[check] = self.excluded.get(check, 0) + count
        if count:
            self.messages.append(f"{check}: {count} {message}")

    def flag(self, check: str, count: int, message: str) -> None:
        self.flagged[check] = self.flagged.get(check, 0) + count
        if count:
            self.messages.append(f"{check}: {count} {message}")

    @property
    def total_excluded(self) -> int:
        return sum(self.excluded.values())


def split_orphan_orders(orders_df: DataFrame, products_df: DataFrame) -> Tuple[DataFrame, DataFrame]:
    """
    Separates orders whose product_id is missing from the product dimension.

    Returns:
        (valid_orders, orphan_orders)
    """
    products = products_df.select("product_id").distinct()
    valid = orders_df.join(products, on="product_id", how="left_semi")
    orphans = orders_df.join(products, on="product_id", how="left_anti")
    return valid, orphans


def split_orphan_events(events_df: DataFrame, orders_df: DataFrame) -> Tuple[DataFrame, DataFrame]:
    """
    Separates events that cannot be attributed to a stage of an existing order.

    An event is an orphan when its order_id is not in orders_df or its
    event_kind did not normalise to a known stage (NULL).

    Args:
        events_df: Events after normalize_event_kinds().
        orders_df: The full order feed, not just the incremental window.

    Returns:
        (valid_events, orphan_events)
    """
    order_ids = orders_df.select("order_id").distinct()
    known_kind = events_df.filter(f.col("event_kind").isNotNull())

    valid = known_kind.join(order_ids, on="order_id", how="left_semi")
    orphans = (
        known_kind.join(order_ids, on="order_id", how="left_anti")
        .unionByName(events_df.filter(f.col("event_kind").isNull()))
    )
    return valid, orphans


def flag_duration_anomalies(order_metrics_df: DataFrame) -> DataFrame:
    """
    Orders whose metrics are defined but suspicious.

    - negative_duration: any stage duration below zero (events out of order)
    - no_fulfillment_events: not a single stage resolved

    Returns:
        order_id, order_date, product_id and the two boolean flags, for flagged orders only.
    """
    negative = f.lit(False)
    for duration in DURATION_COLUMNS:
        negative = negative | f.coalesce(f.col(duration) < 0, f.lit(False))

    return (
        order_metrics_df
        .select(
            "order_id",
            "order_date",
            "product_id",
            negative.alias("negative_duration"),
            (~f.col("has_fulfillment_events")).alias("no_fulfillment_events"),
        )
        .filter(f.col("negative_duration") | f.col("no_fulfillment_events"))
    )
