"""Database access."""

from lexia.config import settings
from lexia.db.memory import InMemoryDatabase
from lexia.db.postgres import Database

# Global database instance
db: Database | InMemoryDatabase = InMemoryDatabase() if settings.use_memory_db else Database()

__all__ = ["Database", "InMemoryDatabase", "db"]
