from .database import (
    DATABASE_FILE,
    TEMPLATE_TABLES,
    Database,
    from_db_time,
    to_db_time,
)
from .job_store import DEFAULT_BATCH_SIZE, DEFAULT_LIST_LIMIT, JobStore

__all__ = [
    "DATABASE_FILE",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_LIST_LIMIT",
    "TEMPLATE_TABLES",
    "Database",
    "JobStore",
    "from_db_time",
    "to_db_time",
]
