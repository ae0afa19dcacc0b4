"""
Daily product logistics — incremental refresh.

One run:
  1. read persisted state and its watermark
  2. exclude orphan orders/events (counted, not fatal)
  3. pick the window: the whole spine on the first run, otherwise every day from
     the (watermark - lookback) day onward, plus full history for new products
  4. resolve events → derive order metrics → aggregate → materialize the grid
  5. keep only new or changed rows, MERGE them by (date_day, product_id) and
     advance the watermark

Failing to read or write state, cancellation, and any Spark failure along
the way end the run as "failed" with nothing committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from pipeline.cancellation import CancellationToken
from pipeline.config import RefreshConfig
from pipeline.errors import RefreshError
from pipeline.sources import SourceTables
from pipeline.store import AggregateStore
from transforms.aggregation import AVERAGE_COLUMNS, aggregate_order_metrics, materialize_grid
from transforms.date_grid import GRID_KEYS, PRODUCT_ATTRIBUTES, build_date_product_grid
from transforms.event_join import resolve_stage_events
from transforms.incremental import (
    compute_watermark,
    detect_changed_rows,
    find_unmaterialized_products,
    select_incremental_events,
    select_incremental_orders,
    window_start_date,
)
from transforms.order_metrics import derive_order_metrics
from transforms.quality import (
    DataQualityReport,
    flag_duration_anomalies,
    split_orphan_events,
    split_orphan_orders,
)

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"


@dataclass
class RefreshResult:
    status: str
    rows_processed: int = 0
    rows_upserted: int = 0
    anomalies_excluded: int = 0
    data_quality_flags: Dict[str, int] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)
    watermark: Optional[datetime] = None
    new_watermark: Optional[datetime] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS


def _failed(config: RefreshConfig, report: DataQualityReport, reason: str) -> RefreshResult:
    logger.error("Refresh of %s failed: %s", config.table_id, reason, exc_info=True)
    return RefreshResult(
        status=FAILED,
        anomalies_excluded=report.total_excluded,
        data_quality_flags=dict(report.flagged),
        messages=list(report.messages),
        reason=reason,
    )


def _check_references(sources: SourceTables, report: DataQualityReport, start_date):
    orders, orphan_orders = split_orphan_orders(sources.orders, sources.products)
    events, orphan_events = split_orphan_events(sources.fulfillment_events, sources.orders)

    # only rows this run's window would have read count as excluded by this run
    orphan_orders = select_incremental_orders(orphan_orders, start_date)
    orphan_events = select_incremental_events(orphan_events, sources.orders, start_date)

    report.exclude("orphan_orders", orphan_orders.count(), "order(s) reference an unknown product")
    report.exclude(
        "orphan_events", orphan_events.count(),
        "event(s) reference an unknown order or stage",
    )
    return orders, events


def _scope(sources: SourceTables, orders: DataFrame, existing: Optional[DataFrame], start_date):
    """Orders to recompute and the grid cells they land on."""
    window_orders = select_incremental_orders(orders, start_date)
    grid = build_date_product_grid(sources.date_spine, sources.products, start_date=start_date)

    if existing is None or start_date is None:
        return window_orders, grid

    new_products = find_unmaterialized_products(sources.products, existing)
    new_product_orders = orders.join(new_products.select("product_id"), on="product_id", how="left_semi")

    scoped_orders = window_orders.unionByName(new_product_orders).dropDuplicates(["order_id"])
    scoped_grid = (
        grid
        .unionByName(build_date_product_grid(sources.date_spine, new_products))
        .dropDuplicates(GRID_KEYS)
    )
    return scoped_orders, scoped_grid


def run_refresh(
    sources: SourceTables,
    store: AggregateStore,
    config: RefreshConfig = RefreshConfig(),
    watermark_override: Optional[datetime] = None,
    lookback: Optional[timedelta] = None,
    computed_at: Optional[datetime] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> RefreshResult:
    """
    Recomputes the daily product aggregate for the incremental window and merges it.

    Args:
        sources:            Conformed source tables (see pipeline.sources).
        store:              Where aggregate rows and the watermark are persisted.
        config:             Lookback, US country value, timeout.
        watermark_override: Recompute from this order created_at instead of the stored watermark.
                            Used as-is: lookback is not subtracted from it.
                            Ignored when nothing is persisted yet (full rebuild).
        lookback:           Overrides config.lookback for this run.
        computed_at:        Value for computed_at_utc. Defaults to now (UTC); pass a fixed
                            value to make re-runs byte-identical.
        cancel_token:       Checked at the aggregation barrier and before the merge.
                            Defaults to a token with config.timeout_seconds.

    Returns:
        RefreshResult with status "success" or "failed" (with reason).
    """
    lookback = lookback if lookback is not None else config.lookback
    computed_at = computed_at or datetime.now(timezone.utc)
    cancel_token = cancel_token or CancellationToken(config.timeout_seconds)
    report = DataQualityReport()
    cached = []

    try:
        existing = store.read_state()
        last_processed = store.read_watermark()

        watermark = compute_watermark(last_processed, lookback, watermark_override)
        if existing is None:
            watermark = None
        start_date = window_start_date(watermark)

        if start_date is None:
            logger.info("No persisted state, rebuilding the full date × product grid")
        elif watermark_override is not None:
            logger.info("Watermark override %s, recomputing from %s", watermark, start_date)
        else:
            logger.info(
                "Watermark %s (stored %s, lookback %s), recomputing from %s",
                watermark, last_processed, lookback, start_date,
            )

        orders, events = _check_references(sources, report, start_date)
        scoped_orders, grid = _scope(sources, orders, existing, start_date)
        scoped_orders = scoped_orders.cache()
        cached.append(scoped_orders)

        resolved = resolve_stage_events(scoped_orders, events)
        metrics = derive_order_metrics(resolved, sources.customers, sources.agents, config.us_country).cache()
        cached.append(metrics)

        anomalies = flag_duration_anomalies(metrics)
        report.flag(
            "negative_duration", anomalies.filter(f.col("negative_duration")).count(),
            "order(s) with a stage timestamp earlier than the one before it",
        )
        report.flag(
            "no_fulfillment_events", anomalies.filter(f.col("no_fulfillment_events")).count(),
            "order(s) with no resolvable fulfillment events",
        )

        # group-by barrier: every order of a (date, product) must be in before it is averaged
        cancel_token.raise_if_cancelled("aggregation")
        rows = materialize_grid(grid, aggregate_order_metrics(metrics), computed_at)
        if existing is not None:
            rows = detect_changed_rows(rows, existing, PRODUCT_ATTRIBUTES + AVERAGE_COLUMNS)
        rows = rows.cache()
        cached.append(rows)

        rows_processed = scoped_orders.count()
        rows_upserted = rows.count()
        max_created = scoped_orders.agg(f.max("created_at")).first()[0]
        new_watermark = max(
            [w for w in (last_processed, max_created) if w is not None],
            default=None,
        )

        cancel_token.raise_if_cancelled("merge")
        store.merge(rows, new_watermark)

    except RefreshError as e:
        return _failed(config, report, str(e))
    except Exception as e:
        # Spark evaluates lazily, so a bad source or state read can surface at any action
        return _failed(config, report, f"{type(e).__name__}: {e}")
    finally:
        for df in cached:
            df.unpersist()

    for message in report.messages:
        logger.warning(message)
    logger.info(
        "Refresh of %s complete: %d order(s) processed, %d row(s) upserted, %d excluded",
        config.table_id, rows_processed, rows_upserted, report.total_excluded,
    )

    return RefreshResult(
        status=SUCCESS,
        rows_processed=rows_processed,
        rows_upserted=rows_upserted,
        anomalies_excluded=report.total_excluded,
        data_quality_flags=dict(report.flagged),
        messages=list(report.messages),
        watermark=watermark,
        new_watermark=new_watermark,
    )
