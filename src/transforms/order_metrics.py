"""
Order metrics — per-order stage durations and categorical flags.

No Spark globals, no Delta calls, no side effects.
"""

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from transforms.stages import FulfillmentStage

US_COUNTRY = "United States"

DURATION_COLUMNS = ["days_to_pack", "days_to_ship", "days_to_deliver"]


def _one_row_per_agent(agents_df: DataFrame) -> DataFrame:
    # a duplicated agent counts as a contractor if any of its rows says so
    return agents_df.groupBy("agent_id").agg(f.max("is_contractor").alias("is_contractor"))


def _one_row_per_customer(customers_df: DataFrame) -> DataFrame:
    return customers_df.groupBy("customer_id").agg(f.min("country").alias("country"))


def derive_order_metrics(
    resolved_df: DataFrame,
    customers_df: DataFrame,
    agents_df: DataFrame,
    us_country: str = US_COUNTRY,
) -> DataFrame:
    """
    Derives durations and flags from orders with resolved stage events.

    - days_to_pack    = days between created_at and packaged_at
    - days_to_ship    = days between packaged_at and shipped_at
    - days_to_deliver = days between created_at and delivered_at (end-to-end)

    Durations count calendar-day boundaries, are NULL when either side is missing
    and can be negative when events are out of order.

    Args:
        resolved_df:  Output of resolve_stage_events().
        customers_df: Customer dimension (customer_id, country).
        agents_df:    Agent dimension (agent_id, is_contractor).
        us_country:   Country value that marks a US customer.

    Returns:
        One row per order: order_id, product_id, customer_id, created_at, order_date,
        the three durations, is_us_customer, has_contractor_support and
        has_fulfillment_events.
    """
    agents = _one_row_per_agent(agents_df)

    df = resolved_df
    contractor_flags = []
    for stage in FulfillmentStage:
        flag_col = f"_{stage.value}_is_contractor"
        stage_agents = agents.select(
            f.col("agent_id").alias(stage.agent_column),
            f.col("is_contractor").alias(flag_col),
        )
        df = df.join(stage_agents, on=stage.agent_column, how="left")
        contractor_flags.append(f.coalesce(f.col(flag_col), f.lit(False)))

    has_contractor = contractor_flags[0]
    for flag in contractor_flags[1:]:
        has_contractor = has_contractor | flag

    packaged = FulfillmentStage.PACKAGED.timestamp_column
    shipped = FulfillmentStage.SHIPPED.timestamp_column
    delivered = FulfillmentStage.DELIVERED.timestamp_column

    return (
        df
        .join(_one_row_per_customer(customers_df), on="customer_id", how="left")
        .select(
            "order_id",
            "product_id",
            "customer_id",
            "created_at",
            f.to_date("created_at").alias("order_date"),
            f.datediff(f.col(packaged), f.col("created_at")).alias("days_to_pack"),
            f.datediff(f.col(shipped), f.col(packaged)).alias("days_to_ship"),
            f.datediff(f.col(delivered), f.col("created_at")).alias("days_to_deliver"),
            f.coalesce(f.col("country") == us_country, f.lit(False)).alias("is_us_customer"),
            has_contractor.alias("has_contractor_support"),
            (
                f.col(packaged).isNotNull()
                | f.col(shipped).isNotNull()
                | f.col(delivered).isNotNull()
            ).alias("has_fulfillment_events"),
        )
    )
