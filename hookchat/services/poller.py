"""Client-side eventual consistency loop.

When a caller only knows a conversation id it re-reads the conversation until
the assistant reply to its message shows up, or gives up after a bounded
number of attempts. The loop never mutates the conversation; a timeout is
reported as a synthetic system message on the outcome.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from ..db.database_models.conversation import MessageDO, ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM
from ..utils.logger import get_logger

logger = get_logger(__name__)

OUTCOME_COMPLETED = "completed"
OUTCOME_TIMED_OUT = "timed_out"
OUTCOME_FAILED = "failed"
OUTCOME_CANCELLED = "cancelled"

TIMEOUT_NOTICE = "Request timed out. Please try again."
FAILURE_NOTICE = "Unable to fetch updates. Please refresh the conversation."

# n8n posts this progress line into the session before the real answer
WORKFLOW_STARTED_MARKER = "Workflow was started"

FetchMessages = Callable[[], Awaitable[Sequence[MessageDO]]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class PollOutcome:
    """Terminal state of one poll run."""

    status: str
    attempts: int
    messages: List[MessageDO] = field(default_factory=list)
    notice: Optional[MessageDO] = None
    last_error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == OUTCOME_COMPLETED


def visible_messages(messages: Sequence[MessageDO]) -> List[MessageDO]:
    """Drop workflow progress lines."""
    return [m for m in messages if WORKFLOW_STARTED_MARKER not in m.content]


def reply_arrived(messages: Sequence[MessageDO], sent_text: str) -> bool:
    """True when the conversation ends with ``user(sent_text)`` followed by an assistant message."""
    visible = visible_messages(messages)
    if len(visible) < 2:
        return False
    last, previous = visible[-1], visible[-2]
    return (
        last.role == ROLE_ASSISTANT
        and previous.role == ROLE_USER
        and previous.content.strip() == sent_text.strip()
    )


class ConversationPoller:
    """Bounded re-fetch loop with injectable sleep."""

    def __init__(
        self,
        fetch: FetchMessages,
        interval: float = 2.0,
        max_attempts: int = 30,
        max_consecutive_failures: int = 3,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Args:
            fetch: Coroutine function returning the conversation's current messages
            interval: Seconds between fetches
            max_attempts: Fetches before giving up (failed fetches count)
            max_consecutive_failures: Failed fetches absorbed in a row
            sleep: Sleep function, replaced in tests
        """
        self.fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_consecutive_failures = max_consecutive_failures
        self._sleep = sleep

    async def run(self, sent_text: str, cancel_event: Optional[asyncio.Event] = None) -> PollOutcome:
        """
        Poll until the reply to ``sent_text`` appears.

        Args:
            sent_text: Content of the user message whose reply is awaited
            cancel_event: Setting this event stops the loop at the next step

        Returns:
            PollOutcome with status completed, timed_out, failed or cancelled
        """
        attempts = 0
        failures = 0
        last_messages: List[MessageDO] = []
        last_error = None

        while attempts < self.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                return PollOutcome(OUTCOME_CANCELLED, attempts, last_messages, last_error=last_error)

            if attempts > 0:
                cancelled = await self._pause(cancel_event)
                if cancelled:
                    return PollOutcome(OUTCOME_CANCELLED, attempts, last_messages, last_error=last_error)

            attempts += 1
            try:
                messages = list(await self.fetch())
            except Exception as e:
                failures += 1
                last_error = str(e)
                logger.warning(f"Poll attempt {attempts} failed ({failures} in a row): {e}")
                if failures > self.max_consecutive_failures:
                    return PollOutcome(
                        OUTCOME_FAILED,
                        attempts,
                        last_messages,
                        notice=MessageDO(role=ROLE_SYSTEM, content=FAILURE_NOTICE),
                        last_error=last_error,
                    )
                continue

            failures = 0
            last_messages = messages
            if reply_arrived(messages, sent_text):
                logger.debug(f"Reply observed after {attempts} poll attempt(s)")
                return PollOutcome(OUTCOME_COMPLETED, attempts, visible_messages(messages))

        logger.info(f"Polling gave up after {attempts} attempts")
        return PollOutcome(
            OUTCOME_TIMED_OUT,
            attempts,
            last_messages,
            notice=MessageDO(role=ROLE_SYSTEM, content=TIMEOUT_NOTICE),
            last_error=last_error,
        )

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep one interval; return True if cancelled meanwhile."""
        if cancel_event is None:
            await self._sleep(self.interval)
            return False

        sleep_task = asyncio.ensure_future(self._sleep(self.interval))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleep_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleep_task, cancel_task):
                if not task.done():
                    task.cancel()
        return cancel_event.is_set()
