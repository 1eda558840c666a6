"""API helper utilities."""
from api.helpers.crud_router import build_crud_router, get_query_args, to_http_exception

__all__ = [
    "build_crud_router",
    "get_query_args",
    "to_http_exception",
]
