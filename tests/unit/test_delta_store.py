"""
Tests for DeltaAggregateStore against a local Delta warehouse.
Covers first write, MERGE by (date_day, product_id), the gold_metadata watermark
and the failure wrapping in src/pipeline/store.py.

Run with: pytest tests/unit/test_delta_store.py -v
"""

import sys
import os
import uuid
import pytest
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../src"))
from pipeline.config import RefreshConfig
from pipeline.errors import StateReadError, StateWriteError
from pipeline.refresh import run_refresh
from pipeline.store import DeltaAggregateStore
from test_refresh import FIRST_RUN_AT, SECOND_RUN_AT, make_sources


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DATABASE = "gold_unit_tests"
TABLE_ID = "gold_daily_product_logistics"
ROW_SCHEMA = "date_day date, product_id string, avg_days_to_pack double, computed_at_utc timestamp"
CONFIG = RefreshConfig(lookback_days=1, timeout_seconds=None)


@pytest.fixture
def tables(spark):
    """Fresh (aggregate_table, metadata_table) names per test."""
    spark.sql(f"CREATE DATABASE IF NOT EXISTS {DATABASE}")
    suffix = uuid.uuid4().hex[:8]
    return f"{DATABASE}.daily_product_logistics_{suffix}", f"{DATABASE}.gold_metadata_{suffix}"


def create_metadata(spark, metadata_table, table_id=TABLE_ID, watermark=None):
    (
        spark.createDataFrame(
            [(table_id, watermark, datetime(2024, 1, 1))],
            "table_id string, orders_max_watermark timestamp, updated_at timestamp",
        )
        .write.format("delta").mode("overwrite").saveAsTable(metadata_table)
    )


def make_rows(spark, rows):
    return spark.createDataFrame(rows, ROW_SCHEMA)


def rows_by_key(df):
    return {(r["date_day"], r["product_id"]): r["avg_days_to_pack"] for r in df.collect()}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReads:

    def test_no_table_means_no_state(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table)
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        assert store.read_state() is None
        assert store.read_watermark() is None

    def test_missing_metadata_row_reads_as_unset(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table, table_id="some_other_table")
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        assert store.read_watermark() is None

    def test_missing_metadata_table_is_a_read_error(self, spark, tables):
        aggregate_table, metadata_table = tables
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        with pytest.raises(StateReadError):
            store.read_watermark()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestMerge:

    def test_first_merge_creates_table_and_records_watermark(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table)
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        rows = make_rows(spark, [(date(2024, 3, 1), "P1", 2.0, datetime(2024, 3, 10))])
        store.merge(rows, datetime(2024, 3, 5, 8, 0))

        assert spark.catalog.tableExists(aggregate_table)
        assert rows_by_key(store.read_state()) == {(date(2024, 3, 1), "P1"): 2.0}
        assert store.read_watermark() == datetime(2024, 3, 5, 8, 0)

    def test_second_merge_replaces_by_key_and_inserts(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table)
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        store.merge(make_rows(spark, [
            (date(2024, 3, 1), "P1", 2.0, datetime(2024, 3, 10)),
            (date(2024, 3, 2), "P1", 3.0, datetime(2024, 3, 10)),
        ]), datetime(2024, 3, 5))
        store.merge(make_rows(spark, [
            (date(2024, 3, 2), "P1", 7.0, datetime(2024, 3, 11)),
            (date(2024, 3, 3), "P1", 1.0, datetime(2024, 3, 11)),
        ]), datetime(2024, 3, 9))

        assert rows_by_key(store.read_state()) == {
            (date(2024, 3, 1), "P1"): 2.0,
            (date(2024, 3, 2), "P1"): 7.0,
            (date(2024, 3, 3), "P1"): 1.0,
        }
        assert store.read_watermark() == datetime(2024, 3, 9)

    def test_missing_metadata_row_fails_before_writing(self, spark, tables):
        """Rows must not be committed when the watermark has nowhere to go."""
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table, table_id="some_other_table")
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        rows = make_rows(spark, [(date(2024, 3, 1), "P1", 2.0, datetime(2024, 3, 10))])
        with pytest.raises(StateWriteError, match="no row"):
            store.merge(rows, datetime(2024, 3, 5))

        assert not spark.catalog.tableExists(aggregate_table)

    def test_incompatible_rows_wrapped_as_write_error(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table)
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)
        store.merge(make_rows(spark, [(date(2024, 3, 1), "P1", 2.0, datetime(2024, 3, 10))]), None)

        # MERGE on date_day/product_id needs those columns in the source
        bad_rows = spark.createDataFrame([("P1", 2.0)], "product_id string, avg_days_to_pack double")
        with pytest.raises(StateWriteError):
            store.merge(bad_rows, datetime(2024, 3, 5))

        assert store.read_watermark() is None


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestRefreshOnDelta:

    def test_first_and_incremental_runs(self, spark, tables):
        aggregate_table, metadata_table = tables
        create_metadata(spark, metadata_table)
        store = DeltaAggregateStore(spark, aggregate_table, metadata_table, TABLE_ID)

        first = run_refresh(make_sources(spark), store, CONFIG, computed_at=FIRST_RUN_AT)
        assert first.succeeded, first.reason
        assert store.read_state().count() == 20
        assert store.read_watermark() == datetime(2024, 3, 5, 8, 0)

        second = run_refresh(make_sources(spark), store, CONFIG, computed_at=SECOND_RUN_AT)
        assert second.succeeded, second.reason
        assert second.rows_upserted == 0
        assert store.read_state().count() == 20
