"""
Persistence package: SQLAlchemy models and the DBStorage singleton.
The app factory calls storage.reload() with the configured DATABASE_URL.
"""
from models.db_storage import DBStorage, StoreError, StoreErrorKind

storage = DBStorage()

__all__ = ["storage", "DBStorage", "StoreError", "StoreErrorKind"]
