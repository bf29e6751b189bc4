"""
Castflow Studio - Core Package
==============================

Models, configuration, collaboration services and the realtime hub.
"""

from castflow.core.config import settings
from castflow.core.database import Base, get_db, get_db_session

__all__ = ["Base", "get_db", "get_db_session", "settings"]
