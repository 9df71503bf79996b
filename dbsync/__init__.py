"""
dbsync - keeps the internal JSON document database in sync with MySQL or SQLite.
"""

__version__ = "1.0.0"
