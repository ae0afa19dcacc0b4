"""
Unit tests for reference-integrity and anomaly checks.
Tests src/transforms/quality.py.

Run with: pytest tests/unit/test_quality.py -v
"""

import sys
import os
import pytest
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../src"))
from transforms.quality import (
    DataQualityReport,
    flag_duration_anomalies,
    split_orphan_events,
    split_orphan_orders,
)


ORDER_SCHEMA = "order_id string, product_id string, customer_id string, created_at timestamp"
EVENT_SCHEMA = "order_id string, event_kind string, timestamp timestamp, agent_id string"
METRIC_SCHEMA = (
    "order_id string, product_id string, order_date date, "
    "days_to_pack int, days_to_ship int, days_to_deliver int, has_fulfillment_events boolean"
)


def ids(df, col="order_id"):
    return sorted(r[col] for r in df.collect())


class TestOrphanOrders:

    def test_order_with_unknown_product_is_separated(self, spark):
        orders = spark.createDataFrame([
            ("O1", "P1", "C1", datetime(2024, 3, 1)),
            ("O2", "P_GONE", "C1", datetime(2024, 3, 1)),
        ], ORDER_SCHEMA)
        products = spark.createDataFrame([("P1",)], "product_id string")

        valid, orphans = split_orphan_orders(orders, products)
        assert ids(valid) == ["O1"]
        assert ids(orphans) == ["O2"]


class TestOrphanEvents:

    def test_event_for_unknown_order_is_separated(self, spark):
        orders = spark.createDataFrame([("O1", "P1", "C1", datetime(2024, 3, 1))], ORDER_SCHEMA)
        events = spark.createDataFrame([
            ("O1", "packaged", datetime(2024, 3, 2), "A1"),
            ("O9", "packaged", datetime(2024, 3, 2), "A1"),
        ], EVENT_SCHEMA)

        valid, orphans = split_orphan_events(events, orders)
        assert ids(valid) == ["O1"]
        assert ids(orphans) == ["O9"]

    def test_event_with_unknown_kind_is_separated(self, spark):
        orders = spark.createDataFrame([("O1", "P1", "C1", datetime(2024, 3, 1))], ORDER_SCHEMA)
        events = spark.createDataFrame([
            ("O1", "shipped", datetime(2024, 3, 2), "A1"),
            ("O1", None,      datetime(2024, 3, 2), "A1"),
        ], EVENT_SCHEMA)

        valid, orphans = split_orphan_events(events, orders)
        assert valid.count() == 1
        assert orphans.count() == 1


class TestDurationAnomalies:

    def test_negative_and_eventless_orders_flagged(self, spark):
        metrics = spark.createDataFrame([
            ("OK",    "P1", date(2024, 3, 1), 1,    2,    3,    True),
            ("NEG",   "P1", date(2024, 3, 1), 3,    -1,   2,    True),
            ("EMPTY", "P1", date(2024, 3, 1), None, None, None, False),
        ], METRIC_SCHEMA)

        flagged = {r["order_id"]: r for r in flag_duration_anomalies(metrics).collect()}

        assert set(flagged) == {"NEG", "EMPTY"}
        assert flagged["NEG"]["negative_duration"] is True
        assert flagged["EMPTY"]["no_fulfillment_events"] is True
        assert flagged["EMPTY"]["negative_duration"] is False


class TestReport:

    def test_counts_and_messages(self):
        report = DataQualityReport()
        report.exclude("orphan_orders", 2, "order(s) reference an unknown product")
        report.exclude("orphan_events", 0, "event(s) reference an unknown order")
        report.flag("negative_duration", 1, "order(s) out of order")

        assert report.total_excluded == 2
        assert report.flagged == {"negative_duration": 1}
        assert report.messages == [
            "orphan_orders: 2 order(s) reference an unknown product",
            "negative_duration: 1 order(s) out of order",
        ]
