# Databricks notebook source
# MAGIC %md
# MAGIC # Date Spine Setup
# MAGIC
# MAGIC Rebuilds `shopmetrics_ecommerce.utils.util_days`: one row per day from
# MAGIC `date_spine_years` ago through today. Schedule daily ahead of the gold refresh
# MAGIC so today's grid rows exist.

# COMMAND ----------

import os
import sys
from datetime import date

import pyspark.sql.functions as F

sys.path.insert(0, os.path.abspath(".."))

from pipeline.config import RefreshConfig
from transforms.date_grid import build_date_spine

# COMMAND ----------

SPINE_TABLE = "shopmetrics_ecommerce.utils.util_days"

defaults = RefreshConfig()
meta_row = (
    spark.table(defaults.metadata_table)
    .filter(F.col("table_id") == defaults.table_id)
    .first()
)
config = RefreshConfig.from_metadata_row(meta_row) if meta_row is not None else defaults

# COMMAND ----------

spark.sql("CREATE SCHEMA IF NOT EXISTS shopmetrics_ecommerce.utils")

spine_df = build_date_spine(spark, date.today(), years=config.date_spine_years)
spine_df.write.format("delta").mode("overwrite").saveAsTable(SPINE_TABLE)

bounds = spine_df.agg(F.min("date_day"), F.max("date_day")).first()
print(f"✅ {SPINE_TABLE}: {bounds[0]} → {bounds[1]}")
