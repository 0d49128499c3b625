from .elasticsearch import ElasticsearchAdapter
from .postgres import PostgresAdapter

__all__ = (
    "ElasticsearchAdapter",
    "PostgresAdapter",
)
