"""
Daily product aggregation — nine average stage durations per (date, product).

No Spark globals, no Delta calls, no side effects.
"""

from datetime import datetime

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from transforms.date_grid import GRID_KEYS, PRODUCT_ATTRIBUTES
from transforms.order_metrics import DURATION_COLUMNS

# (column prefix, flag the slice is restricted to)
SLICES = [
    ("", None),
    ("us_", "is_us_customer"),
    ("contractor_", "has_contractor_support"),
]

AVERAGE_COLUMNS = [
    f"avg_{prefix}{duration}"
    for prefix, _ in SLICES
    for duration in DURATION_COLUMNS
]

OUTPUT_COLUMNS = GRID_KEYS + PRODUCT_ATTRIBUTES + AVERAGE_COLUMNS + ["computed_at_utc"]


def aggregate_order_metrics(order_metrics_df: DataFrame) -> DataFrame:
    """
    Groups order metrics by (order_date, product_id) and averages each duration per slice.

    NULL durations drop out of their own average's denominator only, so an order
    that never shipped still counts towards the pack and deliver averages.
    A slice with no contributing orders is NULL here; materialize_grid() zero-fills it.

    Returns:
        date_day, product_id and the nine AVERAGE_COLUMNS.
    """
    averages = []
    for prefix, flag in SLICES:
        for duration in DURATION_COLUMNS:
            value = f.col(duration) if flag is None else f.when(f.col(flag), f.col(duration))
            averages.append(f.avg(value).alias(f"avg_{prefix}{duration}"))

    return (
        order_metrics_df
        .groupBy(f.col("order_date").alias("date_day"), "product_id")
        .agg(*averages)
    )


def materialize_grid(grid_df: DataFrame, aggregates_df: DataFrame, computed_at: datetime) -> DataFrame:
    """
    Left-joins aggregates onto the date × product grid, one output row per grid cell.

    Averages with no data default to 0.0, so "no orders" and "zero days" are
    indistinguishable in the output.

    Args:
        grid_df:       Output of build_date_product_grid().
        aggregates_df: Output of aggregate_order_metrics().
        computed_at:   Timestamp stamped on every row as computed_at_utc.

    Returns:
        DataFrame with OUTPUT_COLUMNS.
    """
    return (
        grid_df
        .join(aggregates_df, on=GRID_KEYS, how="left")
        .select(
            *GRID_KEYS,
            *PRODUCT_ATTRIBUTES,
            *[f.coalesce(f.col(c).cast("double"), f.lit(0.0)).alias(c) for c in AVERAGE_COLUMNS],
            f.lit(computed_at).cast("timestamp").alias("computed_at_utc"),
        )
    )
