"""
Error taxonomy for the widget engine.

  ValidationError          -- widget configuration is incomplete or unsupported;
                              raised before any SQL is issued
  MissingRelationshipError -- a referenced table has no confirmed join edge
                              to the widget's base table
  QueryExecutionError      -- the SQL engine rejected a statement; the engine's
                              message is kept verbatim

Figure normalization never raises: unusable chart shapes degrade to a
placeholder figure instead (see ``src.dashboard.figure_adapter``).
"""
from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error surfaced to a calling widget."""


class ValidationError(DashboardError):
    pass


class MissingRelationshipError(DashboardError):
    def __init__(self, table1: str, table2: str):
        self.table1 = table1
        self.table2 = table2
        super().__init__(f"Missing relationship between '{table1}' and '{table2}'")


class QueryExecutionError(DashboardError):
    def __init__(self, sql: str, message: str):
        self.sql = sql
        self.message = message
        super().__init__(message)
