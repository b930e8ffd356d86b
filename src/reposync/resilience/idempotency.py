"""Collapse concurrent sync-job creations for one repo into one.

Two triggers for the same repo (an API call and the scheduler, or two
API calls) can race between "is there a live job?" and "insert one".
SyncService.create_sync_job runs that lookup-or-insert through
IdempotencyGuard under the repo's dispatch key, so inside one process
only the first caller touches the ledger and the rest wait for its job.

Single-process only. Across processes the ledger lookup itself is what
keeps creation idempotent by repo.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any


class IdempotencyGuard:
    """Shares one in-flight creation per dispatch key.

    Usage::

        guard = IdempotencyGuard()
        (job, inserted), owner = await guard.execute(
            "sync-repo1", create_or_reuse
        )
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[Any]] = {}

    async def execute(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> tuple[Any, bool]:
        """Create (or look up) the repo's job once for all concurrent callers.

        The first caller for ``key`` runs ``operation`` and gets
        ``(result, True)``. Callers arriving while it runs get the same
        result with ``False``: they joined an existing creation and must
        not report the job as theirs. A failed creation is raised to
        every caller. Once the owner finishes, the next call for the key
        runs ``operation`` again.
        """
        pending = self._pending.get(key)
        if pending is not None:
            # shield: a cancelled waiter must not cancel the owner's result
            return await asyncio.shield(pending), False

        future: asyncio.Future[Any] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[key] = future
        try:
            result = await operation()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            # mark retrieved: with no waiters asyncio would log it
            future.exception()
            raise
        else:
            future.set_result(result)
            return result, True
        finally:
            self._pending.pop(key, None)

    @property
    def active_keys(self) -> list[str]:
        """Dispatch keys whose creation is still running."""
        return list(self._pending)
