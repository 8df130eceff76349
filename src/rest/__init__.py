"""Generated REST API over a DatabaseAdapter."""

from rest.app import create_app
from rest.compiler import CompiledQuery, QueryCompiler
from rest.filters import FilterQuery, parse_query
from rest.service import RestService

__all__ = [
    "CompiledQuery",
    "FilterQuery",
    "QueryCompiler",
    "RestService",
    "create_app",
    "parse_query",
]
