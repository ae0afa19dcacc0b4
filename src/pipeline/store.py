"""
Persisted state for the daily product aggregate.

A store owns two things: the aggregate rows, keyed by (date_day, product_id),
and the watermark, the max order created_at those rows reflect.
merge() writes the rows first and the watermark second, so a failed merge never
advances the watermark and a re-run from the old watermark is safe.
"""

import logging
from datetime import datetime
from typing import Optional

from delta.tables import DeltaTable
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as f

from pipeline.errors import StateReadError, StateWriteError
from transforms.date_grid import GRID_KEYS
from transforms.incremental import merge_by_key

logger = logging.getLogger(__name__)


class AggregateStore:
    """Interface the refresh controller persists through."""

    def read_state(self) -> Optional[DataFrame]:
        """Current aggregate rows, or None before the first successful run."""
        raise NotImplementedError

    def read_watermark(self) -> Optional[datetime]:
        raise NotImplementedError

    def merge(self, rows_df: DataFrame, watermark: Optional[datetime]) -> None:
        """Upserts rows_df by (date_day, product_id) and records the new watermark."""
        raise NotImplementedError


class InMemoryAggregateStore(AggregateStore):
    """
    Keeps state in a locally checkpointed DataFrame.

    Used for local runs and tests. The merged frame is materialized before it
    replaces the current state, so a failing merge leaves state untouched.
    """

    def __init__(self, state: Optional[DataFrame] = None, watermark: Optional[datetime] = None):
        self._state = state
        self._watermark = watermark

    def read_state(self) -> Optional[DataFrame]:
        return self._state

    def read_watermark(self) -> Optional[datetime]:
        return self._watermark

    def merge(self, rows_df: DataFrame, watermark: Optional[datetime]) -> None:
        try:
            merged = rows_df if self._state is None else merge_by_key(self._state, rows_df, GRID_KEYS)
            merged = merged.localCheckpoint(eager=True)
        except Exception as e:
            raise StateWriteError(f"in-memory merge failed: {e}") from e

        self._state = merged
        self._watermark = watermark


class DeltaAggregateStore(AggregateStore):
    """
    Delta table + gold_metadata watermark.

    First run creates the table with saveAsTable; later runs MERGE on
    (date_day, product_id). The watermark lives in
    gold_metadata.orders_max_watermark for this table_id.
    """

    def __init__(self, spark: SparkSession, table_name: str, metadata_table: str, table_id: str):
        self.spark = spark
        self.table_name = table_name
        self.metadata_table = metadata_table
        self.table_id = table_id

    def read_state(self) -> Optional[DataFrame]:
        try:
            if not self.spark.catalog.tableExists(self.table_name):
                return None
            state = self.spark.table(self.table_name)
            # touch the files now so unreadable state fails here, not mid-run
            state.limit(1).count()
        except Exception as e:
            raise StateReadError(f"cannot read {self.table_name}: {e}") from e
        return state

    def _metadata_row(self):
        return (
            self.spark.table(self.metadata_table)
            .filter(f.col("table_id") == self.table_id)
            .select("orders_max_watermark")
            .first()
        )

    def read_watermark(self) -> Optional[datetime]:
        try:
            row = self._metadata_row()
        except Exception as e:
            raise StateReadError(f"cannot read watermark from {self.metadata_table}: {e}") from e

        if row is None:
            logger.warning("No %s row for %s, treating watermark as unset", self.metadata_table, self.table_id)
            return None
        return row["orders_max_watermark"]

    def merge(self, rows_df: DataFrame, watermark: Optional[datetime]) -> None:
        try:
            has_metadata_row = self._metadata_row() is not None
        except Exception as e:
            raise StateWriteError(f"cannot read {self.metadata_table}: {e}") from e

        # without the row the watermark could not be recorded; fail before writing anything
        if not has_metadata_row:
            raise StateWriteError(
                f"{self.metadata_table} has no row for {self.table_id}; "
                "run utils/04_gold_metadata_setup first"
            )

        try:
            if not self.spark.catalog.tableExists(self.table_name):
                rows_df.write.format("delta").mode("overwrite").saveAsTable(self.table_name)
                logger.info("Created %s", self.table_name)
            else:
                merge_condition = " AND ".join([f"t.{k} = s.{k}" for k in GRID_KEYS])
                (
                    DeltaTable.forName(self.spark, self.table_name).alias("t")
                    .merge(rows_df.alias("s"), merge_condition)
                    .whenMatchedUpdateAll()
                    .whenNotMatchedInsertAll()
                    .execute()
                )
                logger.info("Merged into %s", self.table_name)
        except Exception as e:
            raise StateWriteError(f"merge into {self.table_name} failed: {e}") from e

        if watermark is None:
            return

        try:
            DeltaTable.forName(self.spark, self.metadata_table).update(
                condition=f.col("table_id") == self.table_id,
                set={
                    "orders_max_watermark": f.lit(watermark).cast("timestamp"),
                    "updated_at": f.current_timestamp(),
                },
            )
        except Exception as e:
            raise StateWriteError(
                f"rows merged but watermark update failed for {self.table_id}: {e}"
            ) from e
        logger.info("Watermark for %s advanced to %s", self.table_id, watermark)
