"""
Source contract — canonical column names the engine reads.

Raw feeds arrive with their own naming (orderid, createdat, event_name ...).
These helpers rename and project them onto the engine schema and normalise
fulfillment event names onto FulfillmentStage values.
"""

from pyspark.sql import DataFrame
from pyspark.sql import functions as f

from transforms.stages import FulfillmentStage


class SchemaContractError(ValueError):
    """A source table is missing columns the engine depends on."""


CONTRACT_COLUMNS = {
    "orders":             ["order_id", "product_id", "customer_id", "created_at"],
    "fulfillment_events": ["order_id", "event_kind", "timestamp", "agent_id"],
    "agents":             ["agent_id", "is_contractor"],
    "products":           ["product_id", "product_name", "product_category", "product_subcategory"],
    "customers":          ["customer_id", "country"],
    "date_spine":         ["date_day"],
}

# Column names used by the bronze feeds the gold model was first written against
DEFAULT_COLUMN_MAPPINGS = {
    "orders": {
        "orderid": "order_id",
        "productid": "product_id",
        "customerid": "customer_id",
        "createdat": "created_at",
    },
    "fulfillment_events": {
        "orderid": "order_id",
        "event_name": "event_kind",
        "agentid": "agent_id",
    },
    "agents": {"agentid": "agent_id"},
}


def apply_column_mapping(df: DataFrame, mapping: dict) -> DataFrame:
    """
    Renames source columns to canonical names. Columns not in the mapping pass through.

    Args:
        df:       Raw source DataFrame.
        mapping:  {source_column: canonical_column}. None or {} is a no-op.
    """
    if not mapping:
        return df
    return df.select([
        f.col(c).alias(mapping[c]) if c in mapping else f.col(c)
        for c in df.columns
    ])


def select_contract_columns(df: DataFrame, table: str) -> DataFrame:
    """Projects df onto the contract columns for `table`, failing loudly on gaps."""
    expected = CONTRACT_COLUMNS[table]
    missing = [c for c in expected if c not in df.columns]
    if missing:
        raise SchemaContractError(f"{table}: missing column(s) {missing}")
    return df.select(*expected)


def normalize_event_kinds(events_df: DataFrame) -> DataFrame:
    """
    Maps raw event names onto stage values ("order_shipped" → "shipped").

    Matching is case-insensitive and ignores surrounding whitespace. Unknown
    names become NULL so the reference-integrity check can exclude and count them.
    """
    raw = f.lower(f.trim(f.col("event_kind")))

    kind = f.lit(None).cast("string")
    for stage in reversed(list(FulfillmentStage)):
        kind = f.when(raw.isin(stage.value, stage.event_name), f.lit(stage.value)).otherwise(kind)

    return events_df.withColumn("event_kind", kind)
