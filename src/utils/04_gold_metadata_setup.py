# Databricks notebook source
# MAGIC %md
# MAGIC # Gold Layer Metadata Table Setup
# MAGIC
# MAGIC Creates the configuration row for `daily_product_logistics`.
# MAGIC
# MAGIC **Watermark:**
# MAGIC - `orders_max_watermark` is the highest order `created_at` reflected in the gold table
# MAGIC - each run re-reads orders from `orders_max_watermark - lookback_days` (start of that day)
# MAGIC   so events arriving late for recent orders are picked up
# MAGIC - NULL means no successful run yet: the next run builds the full date × product grid

# COMMAND ----------

# MAGIC %sql
# MAGIC CREATE SCHEMA IF NOT EXISTS shopmetrics_ecommerce.metadata

# COMMAND ----------

# MAGIC %sql
# MAGIC CREATE TABLE IF NOT EXISTS shopmetrics_ecommerce.metadata.gold_metadata (
# MAGIC   -- Identification
# MAGIC   table_id          STRING NOT NULL COMMENT 'Unique identifier: gold_daily_product_logistics',
# MAGIC   table_name        STRING NOT NULL COMMENT 'Target gold table name: daily_product_logistics',
# MAGIC   notebook_name     STRING NOT NULL COMMENT 'Filename of table notebook in table_notebooks/ (no .py)',
# MAGIC
# MAGIC   -- Source Config
# MAGIC   source_tables     ARRAY<STRING> COMMENT 'Tables this gold table reads from',
# MAGIC
# MAGIC   -- Refresh Config
# MAGIC   lookback_days     INT     COMMENT 'Days re-read behind the watermark for late-arriving events',
# MAGIC   date_spine_years  INT     COMMENT 'Years of history covered by the date spine',
# MAGIC   us_country        STRING  COMMENT 'Customer country value counted as US',
# MAGIC   timeout_seconds   INT     COMMENT 'Run is cancelled before merging once exceeded',
# MAGIC
# MAGIC   -- Watermark (max order created_at reflected in the gold table)
# MAGIC   orders_max_watermark TIMESTAMP COMMENT 'Updated after each successful merge',
# MAGIC
# MAGIC   -- Processing Config
# MAGIC   is_active         BOOLEAN DEFAULT TRUE COMMENT 'Enable/disable processing',
# MAGIC
# MAGIC   -- Audit
# MAGIC   created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP(),
# MAGIC   updated_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP(),
# MAGIC   created_by        STRING DEFAULT CURRENT_USER(),
# MAGIC
# MAGIC   CONSTRAINT pk_gold_metadata PRIMARY KEY (table_id)
# MAGIC )
# MAGIC USING DELTA
# MAGIC COMMENT 'Metadata configuration for Gold layer aggregation tables'

# COMMAND ----------

# MAGIC %sql
# MAGIC ALTER TABLE shopmetrics_ecommerce.metadata.gold_metadata
# MAGIC SET TBLPROPERTIES ('delta.feature.allowColumnDefaults' = 'enabled')

# COMMAND ----------

# MAGIC %sql
# MAGIC MERGE INTO shopmetrics_ecommerce.metadata.gold_metadata t
# MAGIC USING (
# MAGIC   SELECT
# MAGIC     'gold_daily_product_logistics' AS table_id,
# MAGIC     'daily_product_logistics'      AS table_name,
# MAGIC     'daily_product_logistics'      AS notebook_name,
# MAGIC     array(
# MAGIC       'shopmetrics_ecommerce.bronze.orders',
# MAGIC       'shopmetrics_ecommerce.bronze.fulfillments',
# MAGIC       'shopmetrics_ecommerce.bronze.agents',
# MAGIC       'shopmetrics_ecommerce.silver.dim_products',
# MAGIC       'shopmetrics_ecommerce.silver.dim_customers',
# MAGIC       'shopmetrics_ecommerce.utils.util_days'
# MAGIC     )                              AS source_tables,
# MAGIC     1                              AS lookback_days,
# MAGIC     5                              AS date_spine_years,
# MAGIC     'United States'                AS us_country,
# MAGIC     1800                           AS timeout_seconds
# MAGIC ) s
# MAGIC ON t.table_id = s.table_id
# MAGIC WHEN NOT MATCHED THEN INSERT
# MAGIC   (table_id, table_name, notebook_name, source_tables, lookback_days, date_spine_years,
# MAGIC    us_country, timeout_seconds, orders_max_watermark, is_active)
# MAGIC VALUES
# MAGIC   (s.table_id, s.table_name, s.notebook_name, s.source_tables, s.lookback_days, s.date_spine_years,
# MAGIC    s.us_country, s.timeout_seconds, NULL, TRUE)

# COMMAND ----------

# MAGIC %sql
# MAGIC -- Verify
# MAGIC SELECT table_id, table_name, lookback_days, date_spine_years, orders_max_watermark
# MAGIC FROM shopmetrics_ecommerce.metadata.gold_metadata
