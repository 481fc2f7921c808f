"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric, Uuid

# UUID type that works with both databases (native UUID on PostgreSQL, CHAR(32) on SQLite)
UUIDType = Uuid

# Money columns: 10 digits, 2 decimal places
MoneyType = Numeric(10, 2, asdecimal=True)

# Fabric is sold by fractional meters, so quantities carry 2 decimal places too
QuantityType = Numeric(10, 2, asdecimal=True)
