"""
Refresh configuration.

Defaults mirror the gold_metadata row created by utils/04_gold_metadata_setup;
from_metadata_row() reads the same values back from that table.
"""

import copy
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

from transforms.order_metrics import US_COUNTRY
from transforms.source_contract import DEFAULT_COLUMN_MAPPINGS

CATALOG = "shopmetrics_ecommerce"


@dataclass(frozen=True)
class RefreshConfig:
    table_id: str = "gold_daily_product_logistics"
    aggregate_table: str = f"{CATALOG}.gold.daily_product_logistics"
    metadata_table: str = f"{CATALOG}.metadata.gold_metadata"

    # safety band re-read behind the stored watermark for late-arriving events
    lookback_days: int = 1
    date_spine_years: int = 5
    us_country: str = US_COUNTRY
    timeout_seconds: Optional[int] = 1800

    @property
    def lookback(self) -> timedelta:
        return timedelta(days=self.lookback_days)

    @classmethod
    def from_metadata_row(cls, row) -> "RefreshConfig":
        """
        Builds a config from a gold_metadata row (pyspark Row or dict).

        NULL / missing config columns fall back to the defaults above.
        """
        values = row.asDict() if hasattr(row, "asDict") else dict(row)
        defaults = cls()

        def pick(name):
            value = values.get(name)
            return getattr(defaults, name) if value is None else value

        return cls(
            table_id=pick("table_id"),
            aggregate_table=(
                f"{CATALOG}.gold.{values['table_name']}"
                if values.get("table_name") else defaults.aggregate_table
            ),
            metadata_table=defaults.metadata_table,
            lookback_days=int(pick("lookback_days")),
            date_spine_years=int(pick("date_spine_years")),
            us_country=pick("us_country"),
            timeout_seconds=pick("timeout_seconds"),
        )


@dataclass(frozen=True)
class SourceTableNames:
    """Unity Catalog tables the refresh reads, plus per-table column renames."""

    orders: str = f"{CATALOG}.bronze.orders"
    fulfillment_events: str = f"{CATALOG}.bronze.fulfillments"
    agents: str = f"{CATALOG}.bronze.agents"
    products: str = f"{CATALOG}.silver.dim_products"
    customers: str = f"{CATALOG}.silver.dim_customers"
    date_spine: str = f"{CATALOG}.utils.util_days"
    column_mappings: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_COLUMN_MAPPINGS)
    )
