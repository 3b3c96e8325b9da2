from .adapter_pg import PgAdapter
from .adapter_sqlite import SqliteAdapter

__all__ = ["PgAdapter", "SqliteAdapter", "open_database"]


async def open_database(settings):
    """Create and init the adapter the settings point at: Postgres when DATABASE_URL is set."""
    if settings.database_url:
        db = PgAdapter(database_url=settings.database_url)
    else:
        db = SqliteAdapter(db_path=settings.sqlite_path)
    await db.init()
    return db
