"""
Date × product grid — the keyspace the daily aggregate must cover.

Every product appears on every day whether or not anything sold,
so "no orders" is a zero-valued row rather than a missing one.
"""

from datetime import date
from typing import Optional

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as f

GRID_KEYS = ["date_day", "product_id"]
PRODUCT_ATTRIBUTES = ["product_name", "product_category", "product_subcategory"]


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 Feb in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def build_date_spine(spark: SparkSession, end_date: date, years: int = 5) -> DataFrame:
    """
    One row per calendar day from `years` before end_date through end_date, inclusive.

    Returns:
        DataFrame with a single DateType column `date_day`.
    """
    start_date = _years_before(end_date, years)
    return (
        spark.createDataFrame([(start_date, end_date)], "start_day date, end_day date")
        .select(f.explode(f.sequence("start_day", "end_day")).alias("date_day"))
    )


def build_date_product_grid(
    date_spine_df: DataFrame,
    products_df: DataFrame,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> DataFrame:
    """
    Cross product of the date spine and the product dimension.

    Args:
        date_spine_df: Date spine (date_day).
        products_df:   Product dimension (product_id + PRODUCT_ATTRIBUTES).
        start_date:    Optional inclusive lower bound on date_day.
        end_date:      Optional inclusive upper bound on date_day.

    Returns:
        One row per (date_day, product_id) carrying the product attributes.
    """
    dates = date_spine_df.select("date_day").distinct()
    if start_date is not None:
        dates = dates.filter(f.col("date_day") >= f.lit(start_date))
    if end_date is not None:
        dates = dates.filter(f.col("date_day") <= f.lit(end_date))

    products = products_df.select("product_id", *PRODUCT_ATTRIBUTES).dropDuplicates(["product_id"])

    return dates.crossJoin(products).select(*GRID_KEYS, *PRODUCT_ATTRIBUTES)
