"""
View helpers built on the query cache.
"""

from .list_view import PaginatedListView, remove_by_id

__all__ = ["PaginatedListView", "remove_by_id"]
