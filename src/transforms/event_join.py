"""
Event join — collapse the fulfillment event stream to one event per order and stage.

No Spark globals, no Delta calls, no side effects.
Accepts DataFrames, returns DataFrames. Fully unit-testable.
"""

from pyspark.sql import DataFrame
from pyspark.sql import functions as f
from pyspark.sql.window import Window

from transforms.stages import FulfillmentStage, STAGE_VALUES


def earliest_stage_events(events_df: DataFrame) -> DataFrame:
    """
    Keeps the authoritative (earliest) event per (order_id, event_kind).

    Tie-break: equal timestamps are ordered by agent_id ascending, nulls last.
    Events without a timestamp only win when no timed event exists.
    Rows whose event_kind is not a known stage are ignored.
    """
    window_spec = (
        Window
        .partitionBy("order_id", "event_kind")
        .orderBy(f.col("timestamp").asc_nulls_last(), f.col("agent_id").asc_nulls_last())
    )

    return (
        events_df
        .filter(f.col("event_kind").isin(STAGE_VALUES))
        .withColumn("_rank", f.row_number().over(window_spec))
        .filter(f.col("_rank") == 1)
        .drop("_rank")
    )


def resolve_stage_events(orders_df: DataFrame, events_df: DataFrame) -> DataFrame:
    """
    Resolves every order to at most one timestamp + agent per fulfillment stage.

    Args:
        orders_df:  Orders (order_id, product_id, customer_id, created_at).
        events_df:  Fulfillment events (order_id, event_kind, timestamp, agent_id).
                    May contain duplicates/retries and events for other orders.

    Returns:
        orders_df with <stage>_at and <stage>_agent_id added for each stage.
        A stage with no timed event is NULL in both columns. Exactly one row per order.
    """
    earliest = earliest_stage_events(events_df)

    per_stage = []
    for stage in FulfillmentStage:
        is_stage = f.col("event_kind") == stage.value
        # an untimed event leaves the stage absent, agent included
        is_timed_stage = is_stage & f.col("timestamp").isNotNull()
        per_stage.append(f.max(f.when(is_stage, f.col("timestamp"))).alias(stage.timestamp_column))
        per_stage.append(f.max(f.when(is_timed_stage, f.col("agent_id"))).alias(stage.agent_column))

    # one row per order after the rank filter, so max() only picks the single matching value
    pivoted = earliest.groupBy("order_id").agg(*per_stage)

    return orders_df.join(pivoted, on="order_id", how="left")
