"""
Loads and normalises the six source tables the refresh reads.
"""

import logging
from dataclasses import dataclass

from pyspark.sql import DataFrame, SparkSession

from pipeline.config import SourceTableNames
from transforms.source_contract import (
    CONTRACT_COLUMNS,
    apply_column_mapping,
    normalize_event_kinds,
    select_contract_columns,
)

logger = logging.getLogger(__name__)


@dataclass
class SourceTables:
    orders: DataFrame
    fulfillment_events: DataFrame
    agents: DataFrame
    products: DataFrame
    customers: DataFrame
    date_spine: DataFrame


def conform_sources(raw: dict, column_mappings: dict = None) -> SourceTables:
    """
    Renames, projects and normalises raw DataFrames into SourceTables.

    Args:
        raw:             {table: DataFrame} keyed like CONTRACT_COLUMNS.
        column_mappings: {table: {source_column: canonical_column}}.

    Raises:
        SchemaContractError: a table lacks a contract column after renaming.
    """
    column_mappings = column_mappings or {}
    conformed = {}
    for table in CONTRACT_COLUMNS:
        df = apply_column_mapping(raw[table], column_mappings.get(table))
        conformed[table] = select_contract_columns(df, table)

    conformed["fulfillment_events"] = normalize_event_kinds(conformed["fulfillment_events"])
    return SourceTables(**conformed)


def load_source_tables(spark: SparkSession, names: SourceTableNames) -> SourceTables:
    raw = {}
    for table in CONTRACT_COLUMNS:
        table_name = getattr(names, table)
        logger.info("Reading %s from %s", table, table_name)
        raw[table] = spark.table(table_name)
    return conform_sources(raw, names.column_mappings)
