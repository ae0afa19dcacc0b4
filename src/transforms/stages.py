"""
Fulfillment stages — the three milestones every order moves through.

packaged → shipped → delivered, in that order. Modelled as a closed enum so
every per-stage column is generated from one place.
"""

from enum import Enum


class FulfillmentStage(Enum):
    PACKAGED = "packaged"
    SHIPPED = "shipped"
    DELIVERED = "delivered"

    @property
    def event_name(self) -> str:
        """Name the raw fulfillment feed uses for this stage e.g. "order_packaged"."""
        return f"order_{self.value}"

    @property
    def timestamp_column(self) -> str:
        return f"{self.value}_at"

    @property
    def agent_column(self) -> str:
        return f"{self.value}_agent_id"


STAGE_VALUES = [stage.value for stage in FulfillmentStage]
