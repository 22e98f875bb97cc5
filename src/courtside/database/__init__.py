"""
Database package for Courtside.

- **db_connection.py**: the single long-lived aiosqlite connection and its
  serialised write transactions
- **db_schema.py**: table and index creation
"""
