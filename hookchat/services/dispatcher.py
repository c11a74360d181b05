"""Outbound webhook dispatch."""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..errors import (
    ValidationError,
    DispatchTimeout,
    DispatchTransportError,
    DispatchNonSuccess,
    DispatchCancelled,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """A completed 2xx webhook response."""

    status_code: int
    body: str
    content_type: Optional[str] = None


def resolve_url(target: str, base_url: Optional[str] = None) -> str:
    """
    Resolve a webhook target to an absolute URL.

    Targets starting with ``/`` are internal routes and are joined to
    ``base_url``; absolute http(s) URLs pass through unchanged.

    Args:
        target: Webhook URL as configured on the agent or conversation
        base_url: Base URL for relative targets

    Returns:
        Absolute URL

    Raises:
        ValidationError: If the target is empty, relative without a base URL,
            or not an http(s) URL
    """
    target = (target or "").strip()
    if not target:
        raise ValidationError("No webhook URL available for this conversation")

    if target.startswith("/"):
        if not base_url:
            raise ValidationError(f"Relative webhook URL {target} requires a configured base URL")
        return base_url.rstrip("/") + target

    if target.startswith(("http://", "https://")):
        return target

    raise ValidationError(f"Unsupported webhook URL: {target}")


class WebhookDispatcher:
    """Issues a single POST per dispatch, bounded by a deadline.

    The request runs as its own task and is raced against the deadline and an
    optional cancellation event; whichever loses is cancelled, which closes
    the underlying connection. There is no retry.
    """

    def __init__(
        self,
        timeout: float,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            timeout: Deadline in seconds for one dispatch
            base_url: Base URL used for relative webhook targets
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.timeout = timeout
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def resolve(self, target: str) -> str:
        return resolve_url(target, self.base_url)

    async def dispatch(
        self,
        target: str,
        payload: Dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DispatchResult:
        """
        POST ``payload`` as JSON to ``target``.

        Args:
            target: Webhook URL, absolute or relative to the base URL
            payload: JSON-serializable request body
            cancel_event: Setting this event aborts the request

        Returns:
            DispatchResult for a 2xx response

        Raises:
            DispatchTimeout: Deadline expired before a response arrived
            DispatchTransportError: Connection-level failure
            DispatchNonSuccess: Non-2xx status
            DispatchCancelled: ``cancel_event`` was set first
        """
        url = self.resolve(target)
        logger.info(f"Dispatching to webhook: {url}")

        request_task = asyncio.ensure_future(self._post(url, payload))
        waiters = {request_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                    await request_task

        if request_task not in done:
            if cancel_task is not None and cancel_task in done:
                logger.warning(f"Webhook request to {url} cancelled by caller")
                raise DispatchCancelled()
            logger.error(f"Webhook request to {url} timed out after {self.timeout:g}s")
            raise DispatchTimeout(self.timeout)

        try:
            response = request_task.result()
        except httpx.TimeoutException:
            logger.error(f"Webhook request to {url} timed out in transport")
            raise DispatchTimeout(self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Webhook request to {url} failed: {e}")
            raise DispatchTransportError(f"Webhook request failed: {e}")

        if not response.is_success:
            logger.error(f"Webhook responded with status: {response.status_code} ({url})")
            raise DispatchNonSuccess(response.status_code, response.text)

        logger.info(f"Webhook {url} responded with status {response.status_code}")
        return DispatchResult(
            status_code=response.status_code,
            body=response.text,
            content_type=response.headers.get("content-type"),
        )

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self._client.post(url, json=payload)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
