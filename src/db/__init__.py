"""Database layer for the dropship dashboard."""

from .models import Base, ProductDB, ProductDemandDB, ShopifyQueueDB
from .repository import Repository
from .session import get_engine, get_session, init_database, session_scope

__all__ = [
    "Base",
    "ProductDB",
    "ProductDemandDB",
    "ShopifyQueueDB",
    "Repository",
    "get_engine",
    "get_session",
    "init_database",
    "session_scope",
]
