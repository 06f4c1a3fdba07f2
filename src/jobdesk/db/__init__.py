from jobdesk.db.engine import get_engine
from jobdesk.db.helpers import new_record_id, utcnow
from jobdesk.db.memory import InMemoryCollectionGateway
from jobdesk.db.sql import SqlCollectionGateway, documents, metadata

__all__ = [
    "InMemoryCollectionGateway",
    "SqlCollectionGateway",
    "documents",
    "get_engine",
    "metadata",
    "new_record_id",
    "utcnow",
]
