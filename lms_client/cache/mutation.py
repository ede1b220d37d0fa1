"""
MODULE_DESCRIPTION: Optimistic Mutations - Snapshot, Apply, Commit or Roll Back

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

A write against the server (delete a class, update a profile) is shown in the
cache before the server confirms it. OptimisticUpdate makes the three steps
explicit:

    1. snapshot()  cancel in-flight fetches for the key, then deep-copy its
                   current state (data, has_data, last_updated_at)
    2. apply(fn)   write fn(old) into the cache
    3a. commit()   server succeeded: invalidate the key so it refetches
    3b. rollback() server failed: put the snapshot back exactly

===================================================================================
OVERLAPPING MUTATIONS ON ONE KEY
===================================================================================

The client keeps, per key, the update whose rollback is "active". A newer
update snapshots the already-patched state and takes over. When a superseded
update fails it does not restore its (outdated) snapshot; it refetches the key
instead. The key stays tainted until the active update settles, and a failed
active update refetches after restoring, since its snapshot holds the failed
patch.

===================================================================================
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from lms_client.cache.query_client import CacheEntry, QueryClient
from lms_client.cache.query_key import QueryKey, as_key
from lms_client.exceptions.handlers import user_message
from lms_client.utils.debug import print__mutation_debug
from lms_client.utils.notify import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheSnapshot:
    key: QueryKey
    data: Any
    has_data: bool
    last_updated_at: Optional[float]
    status: str


class OptimisticUpdate:
    """One optimistic patch of one query key."""

    def __init__(self, client: QueryClient, key: QueryKey):
        self.client = client
        self.key = as_key(key)
        self.snapshot_value: Optional[CacheSnapshot] = None
        self.settled = False

    async def snapshot(self) -> CacheSnapshot:
        # A fetch landing after apply() would overwrite the optimistic value
        await self.client.cancel_queries(self.key, exact=True)
        entry = self.client.get_entry(self.key)
        if entry is None:
            snap = CacheSnapshot(self.key, None, False, None, "idle")
        else:
            snap = CacheSnapshot(
                self.key,
                copy.deepcopy(entry.data),
                entry.has_data,
                entry.last_updated_at,
                entry.status,
            )
        self.snapshot_value = snap
        self.client.active_rollbacks[self.key] = self
        print__mutation_debug(f"📸 Snapshot taken for {self.key}")
        return snap

    def apply(self, patch: Callable[[Any], Any]) -> Any:
        if self.snapshot_value is None:
            raise RuntimeError("snapshot() must be awaited before apply()")
        entry = self.client._ensure(self.key)
        entry.previous_data = self.snapshot_value.data
        new_value = self.client.set_query_data(self.key, patch)
        print__mutation_debug(f"✏️ Optimistic patch applied to {self.key}")
        return new_value

    @property
    def is_active(self) -> bool:
        return self.client.active_rollbacks.get(self.key) is self

    def _release(self) -> None:
        self.settled = True
        if self.is_active:
            del self.client.active_rollbacks[self.key]
            self.client.tainted_keys.discard(self.key)
            entry = self.client.get_entry(self.key)
            if entry is not None:
                entry.previous_data = None

    async def commit(self, refetch: bool = True) -> None:
        """Server confirmed: drop the snapshot and revalidate the key."""
        self._release()
        print__mutation_debug(f"✅ Optimistic update committed for {self.key}")
        await self.client.invalidate_queries(self.key, exact=True, refetch_active=refetch)

    async def rollback(self) -> bool:
        """Server rejected: restore the snapshot if this update is still active.

        Returns True when the snapshot was restored, False when a newer
        update superseded this one. A superseded failure refetches the key
        and taints it, so the active update refetches after restoring too:
        its snapshot still carries this failed patch.
        """
        if self.settled:
            return False
        if not self.is_active:
            self.settled = True
            if self.key in self.client.active_rollbacks:
                self.client.tainted_keys.add(self.key)
            logger.warning("Superseded optimistic update failed for %s; refetching", self.key)
            await self.client.invalidate_queries(self.key, exact=True)
            return False

        snap = self.snapshot_value
        entry: CacheEntry = self.client._ensure(self.key)
        entry.data = snap.data
        entry.last_updated_at = snap.last_updated_at
        entry.status = snap.status if snap.has_data else "idle"
        tainted = self.key in self.client.tainted_keys
        self._release()
        self.client._notify(self.key)
        print__mutation_debug(f"↩️ Rolled back {self.key}")
        if tainted:
            await self.client.invalidate_queries(self.key, exact=True)
        return True


@dataclass
class MutationContext:
    variables: Any
    updates: List[OptimisticUpdate] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)


class Mutation:
    """A server write with optional lifecycle hooks and toast notices.

    on_mutate(variables, context) runs before the request and may apply
    optimistic updates into `context.updates`; on error every one of them is
    rolled back, on success every one is committed.
    """

    def __init__(
        self,
        client: QueryClient,
        mutation_fn: Callable[[Any], Awaitable[Any]],
        *,
        on_mutate: Optional[Callable[[Any, MutationContext], Awaitable[None]]] = None,
        on_error: Optional[Callable[[BaseException, Any, MutationContext], None]] = None,
        on_success: Optional[Callable[[Any, Any, MutationContext], None]] = None,
        on_settled: Optional[Callable[[Any, Optional[BaseException], Any], None]] = None,
        notifier: Optional[Notifier] = None,
        error_message: Optional[str] = None,
        success_message: Optional[str] = None,
        invalidate: Iterable[QueryKey] = (),
    ):
        self.client = client
        self.mutation_fn = mutation_fn
        self.on_mutate = on_mutate
        self.on_error = on_error
        self.on_success = on_success
        self.on_settled = on_settled
        self.notifier = notifier
        self.error_message = error_message
        self.success_message = success_message
        # prefixes refetched on success, e.g. every page of a resource
        self.invalidate = [as_key(prefix) for prefix in invalidate]

        self.is_pending = False
        self.data: Any = None
        self.error: Optional[BaseException] = None

    async def mutate_async(self, variables: Any = None) -> Any:
        """Run the mutation; re-raises the server error after rolling back."""
        context = MutationContext(variables)
        self.is_pending = True
        self.error = None
        try:
            if self.on_mutate is not None:
                await self.on_mutate(variables, context)

            try:
                result = await self.mutation_fn(variables)
            except Exception as exc:
                self.error = exc
                for update in reversed(context.updates):
                    await update.rollback()
                if self.notifier is not None:
                    self.notifier.error(user_message(exc, self.error_message or "Operation failed"))
                if self.on_error is not None:
                    self.on_error(exc, variables, context)
                if self.on_settled is not None:
                    self.on_settled(None, exc, variables)
                raise

            self.data = result
            for update in context.updates:
                # Refetch failures land on the cache entry
                await update.commit(refetch=not self.invalidate)
            for prefix in self.invalidate:
                await self.client.invalidate_queries(prefix)
            if self.notifier is not None and self.success_message:
                self.notifier.success(self.success_message)
            if self.on_success is not None:
                self.on_success(result, variables, context)
            if self.on_settled is not None:
                self.on_settled(result, None, variables)
            return result
        finally:
            self.is_pending = False

    async def mutate(self, variables: Any = None) -> Any:
        """Fire-and-report variant: errors go to the notifier, None is returned."""
        try:
            return await self.mutate_async(variables)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Mutation failed: %s", exc)
            return None


def optimistic_mutation(
    client: QueryClient,
    mutation_fn: Callable[[Any], Awaitable[Any]],
    keys: Iterable[QueryKey],
    patch: Callable[[Any, Any], Any],
    **kwargs,
) -> Mutation:
    """Build a Mutation that patches `keys` with patch(old_data, variables) first."""
    keys = [as_key(k) for k in keys]

    async def on_mutate(variables: Any, context: MutationContext) -> None:
        for key in keys:
            update = OptimisticUpdate(client, key)
            await update.snapshot()
            update.apply(lambda old, v=variables: patch(old, v))
            context.updates.append(update)

    return Mutation(client, mutation_fn, on_mutate=on_mutate, **kwargs)
