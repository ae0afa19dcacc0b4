"""
Incremental refresh helpers — watermark arithmetic and replace-by-key merge.

Pure functions. The Delta MERGE that persists results lives in pipeline.store;
merge_by_key() is its DataFrame equivalent.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from transforms.date_grid import GRID_KEYS


def compute_watermark(
    last_processed: Optional[datetime],
    lookback: timedelta,
    override: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Cut-off order creation time for this run.

    Args:
        last_processed: Max order created_at already reflected in persisted state.
                        None when nothing has been persisted yet.
        lookback:       Safety band for events that arrive late for orders created
                        just before the previous watermark.
        override:       Explicit watermark; wins over the stored one when given and is
                        used as-is, without subtracting lookback.

    Returns:
        The watermark, or None meaning "beginning of time" (full rebuild).
    """
    if override is not None:
        return override
    if last_processed is None:
        return None
    return last_processed - lookback


def window_start_date(watermark: Optional[datetime]) -> Optional[date]:
    """
    First calendar day recomputed by this run.

    The watermark is widened to the start of its day: a (date, product) bucket is
    only ever rewritten from all of its orders, never from the tail of a day.
    """
    if watermark is None:
        return None
    return watermark.date()


def select_incremental_orders(orders_df: DataFrame, start_date: Optional[date]) -> DataFrame:
    """Orders created on or after start_date. start_date=None returns every order."""
    if start_date is None:
        return orders_df
    return orders_df.filter(f.to_date("created_at") >= f.lit(start_date))


def select_incremental_events(events_df: DataFrame, orders_df: DataFrame, start_date: Optional[date]) -> DataFrame:
    """
    Events a run starting at start_date reads: stamped on or after start_date, or
    belonging to an order created on or after it. start_date=None returns every event.
    """
    if start_date is None:
        return events_df

    window_ids = (
        select_incremental_orders(orders_df, start_date)
        .select("order_id")
        .distinct()
        .withColumn("_in_window", f.lit(True))
    )
    return (
        events_df
        .join(window_ids, on="order_id", how="left")
        .filter((f.to_date("timestamp") >= f.lit(start_date)) | f.col("_in_window").isNotNull())
        .drop("_in_window")
    )


def find_unmaterialized_products(products_df: DataFrame, existing_df: DataFrame) -> DataFrame:
    """
    Products in the dimension that have no rows in persisted state yet.

    These were added after the grid was first built and need their full
    date range materialized, not just the incremental window.
    """
    existing_products = existing_df.select("product_id").distinct()
    return products_df.join(existing_products, on="product_id", how="left_anti")


def merge_by_key(existing_df: DataFrame, updates_df: DataFrame, keys: list = GRID_KEYS) -> DataFrame:
    """
    Upsert: rows of updates_df replace existing rows with the same key, new keys are added.

    Replace, never increment: merging the same updates twice gives the same result.

    Args:
        existing_df: Current persisted rows.
        updates_df:  Freshly computed rows, unique per key.
        keys:        Merge key columns. Defaults to (date_day, product_id).
    """
    untouched = existing_df.join(updates_df.select(*keys), on=keys, how="left_anti")
    return untouched.unionByName(updates_df.select(*existing_df.columns))


def detect_changed_rows(
    computed_df: DataFrame,
    existing_df: DataFrame,
    compare_cols: list,
    keys: list = GRID_KEYS,
) -> DataFrame:
    """
    Filters freshly computed rows down to those that are new or differ from persisted state.

    Comparison is null-safe. Rows whose compare_cols are unchanged are dropped so
    their persisted copy, computed_at_utc included, stays as it was.

    Args:
        computed_df:  Rows recomputed for the incremental window.
        existing_df:  Current persisted rows.
        compare_cols: Value columns to compare, e.g. the nine averages.
        keys:         Row key columns. Defaults to (date_day, product_id).
    """
    match = [f.col(f"s.{k}") == f.col(f"t.{k}") for k in keys]
    match += [f.col(f"s.{c}").eqNullSafe(f.col(f"t.{c}")) for c in compare_cols]

    condition = match[0]
    for clause in match[1:]:
        condition = condition & clause

    return (
        computed_df.alias("s")
        .join(existing_df.alias("t"), on=condition, how="left_anti")
        .select(*computed_df.columns)
    )
