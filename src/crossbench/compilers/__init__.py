from .base import BaseWhere
from .elasticsearch import ElasticsearchWhereCompiler, elasticsearch_where
from .postgres import PostgresWhereCompiler, postgres_where

__all__ = (
    "BaseWhere",
    "ElasticsearchWhereCompiler",
    "elasticsearch_where",
    "PostgresWhereCompiler",
    "postgres_where",
)
