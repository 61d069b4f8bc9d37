from .client import IMAPClient
from .connection import IMAPConnection
from .search import build_search_criteria

__all__ = ["IMAPClient", "IMAPConnection", "build_search_criteria"]
