"""
Shared pytest fixtures for the daily product logistics unit tests.

The SparkSession is created once per test session (scope="session") to avoid
the overhead of spinning up a new JVM for every test file. It is Delta-enabled
(configure_spark_with_delta_pip) so DeltaAggregateStore can be tested against a
throwaway local warehouse.

Python, the JVM and the Spark session all run in UTC so naive test datetimes
land on the calendar day they spell out.
"""

import os
import time

import pytest
from delta import configure_spark_with_delta_pip
from pyspark.sql import SparkSession

os.environ["TZ"] = "UTC"
time.tzset()


@pytest.fixture(scope="session")
def spark(tmp_path_factory) -> SparkSession:
    warehouse = tmp_path_factory.mktemp("spark-warehouse")
    builder = (
        SparkSession.builder
        .master("local[1]")
        .appName("daily-product-logistics-unit-tests")
        .config("spark.sql.shuffle.partitions", "1")   # keeps tests fast
        .config("spark.default.parallelism", "1")
        .config("spark.ui.enabled", "false")           # no web UI during tests
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.driver.extraJavaOptions", "-Duser.timezone=UTC")
        .config("spark.sql.warehouse.dir", str(warehouse))
        .config("spark.sql.extensions", "io.delta.sql.DeltaSparkSessionExtension")
        .config("spark.sql.catalog.spark_catalog", "org.apache.spark.sql.delta.catalog.DeltaCatalog")
    )
    return configure_spark_with_delta_pip(builder).getOrCreate()
