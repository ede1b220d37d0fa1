"""Paginated, searchable list wiring over the query cache (admin tables)."""

import logging
from typing import Any, Dict, List, Optional

from lms_client.cache.mutation import optimistic_mutation
from lms_client.cache.query_client import QueryClient, QueryObserver, QueryOptions
from lms_client.cache.query_key import QueryKey, make_query_key
from lms_client.client.http_client import ApiClient, decode_json
from lms_client.config.settings import SEARCH_DEBOUNCE_SECONDS
from lms_client.models.responses import PaginatedList
from lms_client.utils.debounce import Debouncer
from lms_client.utils.notify import Notifier

logger = logging.getLogger(__name__)


def remove_by_id(rows: Any, item_id: str) -> Any:
    """Drop the row whose `_id` matches from a list or a {"data": [...]} body."""
    if isinstance(rows, list):
        return [row for row in rows if not (isinstance(row, dict) and row.get("_id") == item_id)]
    if isinstance(rows, dict) and isinstance(rows.get("data"), list):
        return {**rows, "data": remove_by_id(rows["data"], item_id)}
    return rows


class PaginatedListView:
    """One table page: (page, search) -> cached server list.

    The search box updates `search_input` right away; the query only moves to
    the new search after the debounce window, and always back to page 1.
    """

    def __init__(
        self,
        query_client: QueryClient,
        api_client: ApiClient,
        resource: str,
        endpoint: str,
        *,
        page: int = 1,
        search: str = "",
        debounce: float = SEARCH_DEBOUNCE_SECONDS,
        options: Optional[QueryOptions] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.query_client = query_client
        self.api_client = api_client
        self.resource = resource
        self.endpoint = endpoint
        self.page = page
        self.search = search
        self.search_input = search
        self.notifier = notifier or Notifier()
        options = options or query_client.default_options
        self.options = options.merged(keep_previous_data=True)
        self._debouncer = Debouncer(self._apply_search, debounce)
        self.observer: QueryObserver = query_client.use_query(
            self.key, self._make_fetcher(page, search), self.options
        )

    # ------------------------------------------------------------------
    # Query wiring
    # ------------------------------------------------------------------

    @property
    def key(self) -> QueryKey:
        return make_query_key(self.resource, page=self.page, search=self.search)

    def params(self, page: Optional[int] = None, search: Optional[str] = None) -> Dict[str, str]:
        page = self.page if page is None else page
        search = self.search if search is None else search
        params = {"page": str(page)}
        if search:
            params["search"] = search
        return params

    def _make_fetcher(self, page: int, search: str):
        params = self.params(page, search)

        async def fetch() -> Any:
            response = await self.api_client.get(self.endpoint, params=params)
            return decode_json(response, "GET", self.endpoint)

        return fetch

    def _move(self) -> None:
        self.observer.set_key(self.key, self._make_fetcher(self.page, self.search))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def data(self) -> Any:
        return self.observer.data

    @property
    def items(self) -> List[Any]:
        body = self.data
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            return body.get("data") or []
        return []

    @property
    def total_pages(self) -> int:
        body = self.data
        if isinstance(body, dict):
            return PaginatedList.model_validate(body).total_pages or 1
        return 1

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def set_page(self, page: int) -> None:
        if page < 1 or page == self.page:
            return
        self.page = page
        self._move()

    def set_search(self, value: str) -> None:
        self.search_input = value
        self._debouncer(value)

    def _apply_search(self, value: str) -> None:
        if value == self.search:
            return
        self.search = value
        self.page = 1
        self._move()

    async def flush_search(self) -> None:
        await self._debouncer.flush()

    async def delete_item(self, item_id: str, delete_path: str) -> bool:
        """Remove the row now, DELETE on the server, roll back on failure."""

        async def send(variables: str) -> Any:
            return await self.api_client.delete(delete_path)

        mutation = optimistic_mutation(
            self.query_client,
            send,
            [self.key],
            lambda old, variables: remove_by_id(old, variables),
            notifier=self.notifier,
            error_message="Failed to delete item",
            success_message="Item deleted",
            # other pages and searches of this resource may still hold the row
            invalidate=[(self.resource,)],
        )
        await mutation.mutate(item_id)
        return mutation.error is None

    def close(self) -> None:
        self._debouncer.cancel()
        self.observer.close()
