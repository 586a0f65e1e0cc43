"""Credit accounting for token usage reported by the provider.

The ledger is an external collaborator; the streaming path never waits on it.
`CreditAccountant.schedule` starts the update as a background task and keeps
a strong reference until it completes so the task is not garbage collected
mid-flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from services.ai.models import UsageReport


logger = logging.getLogger(__name__)


class CreditLedgerProtocol(Protocol):
    async def update(
        self,
        user_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
    ) -> bool: ...


class LoggingCreditLedger:
    """Default ledger: records the update in the application log only."""

    async def update(
        self,
        user_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
    ) -> bool:
        logger.info(
            "Updating credits for user %s: input=%d output=%d total=%d",
            user_id,
            input_tokens,
            output_tokens,
            total_tokens,
        )
        return True


class CreditAccountant:
    """Fire-and-forget dispatcher in front of a `CreditLedgerProtocol`."""

    def __init__(self, ledger: CreditLedgerProtocol | None = None) -> None:
        self._ledger: CreditLedgerProtocol = ledger or LoggingCreditLedger()
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, user_id: str, usage: UsageReport) -> asyncio.Task[bool]:
        task = asyncio.create_task(
            self._ledger.update(
                user_id,
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.total_tokens,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[bool]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Credit update failed: %s", exc, exc_info=exc)
        elif task.result() is False:
            logger.warning("Credit ledger rejected a usage update")

    async def drain(self) -> None:
        """Wait for outstanding updates (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
