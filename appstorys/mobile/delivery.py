"""Campaign Delivery for the AppStorys SDK.

Sends analytics events, CSAT survey answers and user attributes to the
AppStorys backend. Anything that cannot be delivered live is parked in
the offline outbox and replayed later, either explicitly or from a
background loop.

None of the public delivery calls raise: they report success as a bool.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..core.exceptions import (
    AppStorysError,
    NetworkError,
    NotInitializedError,
    ServerError,
)
from .auth import AuthSession
from .client import ApiClient
from .config import SDKConfig
from .keychain import create_token_store
from .models import PendingCsatResponse, PendingEvent, PendingUserAttributes
from .storage import OfflineOutbox, SQLiteKeyValueStore

logger = logging.getLogger(__name__)

SYSTEM_EVENTS = frozenset(
    {
        "viewed",
        "clicked",
        "dismissed",
        "expanded",
        "minimized",
        "completed",
        "closed",
        "submitted",
        "story_completed",
        "story_dismissed",
        "story_opened",
        "slide_viewed",
    }
)

EVENT_SUCCESS_STATUSES = frozenset({200, 201, 202, 204})
CSAT_SUCCESS_STATUSES = frozenset({200, 201})
ATTRIBUTE_SYNC_ATTEMPTS = 2


class DeliveryService:
    """Live delivery with offline fallback.

    Features:
    - Event tracking, enriched with user attributes for custom events
    - CSAT response capture
    - User attribute sync with a single retry on timeout
    - Outbox replay (attributes, then events, then CSAT)
    - Periodic auto-retry loop
    """

    def __init__(
        self,
        config: SDKConfig,
        auth: AuthSession,
        outbox: OfflineOutbox,
        client: Optional[ApiClient] = None,
    ):
        """Initialize delivery service.

        Args:
            config: SDK configuration
            auth: Session providing bearer tokens
            outbox: Offline staging for undelivered records
            client: HTTP client; the session's client is reused if omitted
        """
        self.config = config
        self.auth = auth
        self.outbox = outbox
        self.client = client or auth.client
        self._user_attributes: Dict[str, Any] = {}
        self._retry_lock = asyncio.Lock()
        self._retry_task: Optional[asyncio.Task] = None
        self._last_retry: Optional[datetime] = None

    @classmethod
    def from_config(
        cls,
        config: SDKConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DeliveryService":
        """Wire up a service with the configured token store and SQLite outbox."""
        client = ApiClient(config, transport=transport)
        auth = AuthSession(config, create_token_store(config), client=client)
        outbox = OfflineOutbox(SQLiteKeyValueStore(config.outbox_path))
        return cls(config, auth, outbox, client=client)

    @property
    def user_attributes(self) -> Dict[str, Any]:
        return dict(self._user_attributes)

    def _require_user_id(self) -> str:
        if not self.config.user_id:
            raise NotInitializedError("No user id configured")
        return self.config.user_id

    # Lifecycle

    async def initialize(self) -> bool:
        """Authenticate and replay anything left over from a previous run.

        Returns:
            True if authentication succeeded
        """
        logger.info("Initializing AppStorys SDK...")
        try:
            await self.auth.authenticate()
        except AppStorysError as e:
            logger.error(f"Failed to initialize AppStorys SDK: {e}")
            return False

        await self.retry_pending()
        logger.info("AppStorys SDK initialized successfully")
        return True

    async def shutdown(self) -> None:
        """Stop the retry loop and release network and storage resources."""
        await self.stop_auto_retry()
        await self.client.close()
        self.outbox.store.close()
        logger.info("Delivery service shut down")

    # Events

    def _build_metadata(
        self, event: str, metadata: Optional[Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        if event in SYSTEM_EVENTS:
            return dict(metadata) if metadata else None

        merged = dict(self._user_attributes)
        if metadata:
            merged.update(metadata)
        return merged or None

    async def track_event(
        self,
        event: str,
        campaign_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Track an analytics event.

        Args:
            event: Event name (system events such as "viewed", or custom)
            campaign_id: Campaign the event belongs to
            metadata: Extra event properties

        Returns:
            True if delivered live, False if queued for retry
        """
        record = PendingEvent(
            event=event,
            campaign_id=campaign_id,
            metadata=self._build_metadata(event, metadata),
        )

        try:
            await self._send_event(record)
        except AppStorysError as e:
            logger.error(f"Failed to track event {event}: {e}")
            self.outbox.enqueue_event(record)
            return False

        return True

    async def _send_event(self, record: PendingEvent) -> None:
        user_id = self._require_user_id()
        token = await self.auth.get_access_token()

        body: Dict[str, Any] = {
            "campaign_id": record.campaign_id,
            "user_id": user_id,
            "event": record.event,
        }
        if record.metadata is not None:
            body["metadata"] = record.metadata

        response = await self.client.post(
            f"{self.config.tracking_url}/capture-event",
            body,
            token=token,
        )
        if response.status_code not in EVENT_SUCCESS_STATUSES:
            raise ServerError(response.status_code, f"Event rejected: {response.text}")

        logger.info(f"Event tracked: {record.event}")

    # CSAT

    async def capture_csat_response(
        self,
        csat_id: str,
        rating: int,
        feedback_option: Optional[str] = None,
        additional_comments: Optional[str] = None,
    ) -> bool:
        """Submit a CSAT survey answer.

        Args:
            csat_id: Survey identifier
            rating: Score from 1 to 5
            feedback_option: Selected feedback option
            additional_comments: Free-text comments

        Returns:
            True if delivered live, False if queued or rejected locally
        """
        if not 1 <= rating <= 5:
            logger.error(f"Invalid rating: {rating}. Must be between 1 and 5")
            return False

        if not self.config.user_id:
            logger.error("Cannot capture CSAT response without a user id")
            return False

        record = PendingCsatResponse(
            csat_id=csat_id,
            user_id=self.config.user_id,
            rating=rating,
            feedback_option=feedback_option,
            additional_comments=additional_comments,
        )
        logger.info(f"Capturing CSAT response: rating={rating}, csat={csat_id}")

        try:
            await self._send_csat(record)
        except AppStorysError as e:
            logger.error(f"Failed to capture CSAT response: {e}")
            self.outbox.enqueue_csat(record)
            return False

        return True

    async def _send_csat(self, record: PendingCsatResponse) -> None:
        token = await self.auth.get_access_token()
        response = await self.client.post(
            f"{self.config.backend_url}/api/v1/campaigns/capture-csat-response/",
            record.to_request_body(),
            token=token,
        )
        if response.status_code not in CSAT_SUCCESS_STATUSES:
            raise ServerError(response.status_code, f"CSAT response rejected: {response.text}")

        logger.info("CSAT response captured successfully")

    # User attributes

    async def set_user_attributes(self, attributes: Dict[str, Any]) -> bool:
        """Store attributes locally and sync them to the backend.

        Custom events tracked afterwards carry these attributes in their
        metadata, whether or not the sync succeeds.

        Returns:
            True if synced, False if the snapshot was queued for retry
        """
        self._user_attributes = dict(attributes)
        logger.debug(f"User attributes stored locally: {', '.join(map(str, attributes))}")

        snapshot = PendingUserAttributes(
            user_id=self.config.user_id or "",
            attributes=dict(attributes),
        )

        try:
            await self._send_user_attributes(snapshot)
        except AppStorysError as e:
            logger.error(f"Failed to sync user attributes: {e}")
            self.outbox.set_pending_user_attributes(snapshot)
            return False

        self.outbox.clear_pending_user_attributes()
        return True

    async def _send_user_attributes(self, snapshot: PendingUserAttributes) -> None:
        user_id = snapshot.user_id or self._require_user_id()
        token = await self.auth.get_access_token()
        body = {"user_id": user_id, "attributes": snapshot.attributes}
        url = f"{self.config.base_url}/update-user-atr"

        for attempt in range(1, ATTRIBUTE_SYNC_ATTEMPTS + 1):
            try:
                response = await self.client.post(
                    url,
                    body,
                    token=token,
                    timeout=self.config.attributes_timeout,
                )
            except NetworkError as e:
                if e.is_timeout and attempt < ATTRIBUTE_SYNC_ATTEMPTS:
                    logger.warning(f"Timeout on attempt {attempt}, retrying...")
                    continue
                raise

            if not response.is_success:
                raise ServerError(
                    response.status_code, f"User attributes rejected: {response.text}"
                )

            logger.info("User attributes synced successfully")
            return

    # Replay

    async def _replay(
        self,
        label: str,
        records: List[Any],
        send: Callable[[Any], Awaitable[None]],
    ) -> bool:
        for record in records:
            try:
                await send(record)
            except AppStorysError as e:
                logger.warning(f"Replay of pending {label} stopped: {e}")
                return False
        return True

    async def _replay_event(self, record: PendingEvent) -> None:
        if record.campaign_id is None:
            logger.warning(f"Dropping pending event {record.event} without campaign id")
            return
        await self._send_event(record)

    async def retry_pending(self) -> Dict[str, Any]:
        """Replay the outbox.

        Delivered records are removed only once their whole batch went
        through; otherwise the batch is kept whole for the next attempt.
        Records queued while a replay is in flight are never removed by it.

        Returns:
            Replay summary
        """
        async with self._retry_lock:
            result: Dict[str, Any] = {
                "user_attributes": "none",
                "events_sent": 0,
                "events_pending": 0,
                "csat_sent": 0,
                "csat_pending": 0,
            }

            snapshot = self.outbox.take_pending_user_attributes()
            if snapshot is not None:
                logger.info("Retrying pending user attributes...")
                try:
                    await self._send_user_attributes(snapshot)
                except AppStorysError as e:
                    logger.warning(f"Pending user attributes not synced: {e}")
                    result["user_attributes"] = "pending"
                else:
                    self.outbox.remove_pending_user_attributes(snapshot)
                    result["user_attributes"] = "synced"

            events = self.outbox.drain_events()
            if events:
                logger.info(f"Retrying {len(events)} pending events...")
                if await self._replay("events", events, self._replay_event):
                    self.outbox.remove_events(events)
                    result["events_sent"] = len(events)
                else:
                    result["events_pending"] = len(events)

            responses = self.outbox.drain_csat()
            if responses:
                logger.info(f"Retrying {len(responses)} pending CSAT responses...")
                if await self._replay("CSAT responses", responses, self._send_csat):
                    self.outbox.remove_csat(responses)
                    result["csat_sent"] = len(responses)
                else:
                    result["csat_pending"] = len(responses)

            self._last_retry = datetime.now()
            return result

    # Auto-retry

    async def start_auto_retry(self, interval: Optional[float] = None) -> None:
        """Start replaying the outbox periodically."""
        if self._retry_task and not self._retry_task.done():
            return

        self._retry_task = asyncio.create_task(
            self._auto_retry_loop(interval or self.config.auto_retry_interval)
        )
        logger.info("Auto-retry started")

    async def stop_auto_retry(self) -> None:
        """Stop the periodic replay."""
        if self._retry_task:
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
            self._retry_task = None
            logger.info("Auto-retry stopped")

    async def _auto_retry_loop(self, interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)

                if any(self.outbox.pending_counts().values()):
                    await self.retry_pending()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Auto-retry error: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get delivery status."""
        return {
            "session": self.auth.get_session_info(),
            "pending": self.outbox.pending_counts(),
            "client": self.client.get_stats(),
            "auto_retry": self._retry_task is not None and not self._retry_task.done(),
            "last_retry": self._last_retry.isoformat() if self._last_retry else None,
        }
