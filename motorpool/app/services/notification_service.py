"""
Notification outbox and dispatcher.

Business operations call NotificationService.enqueue inside their own
transaction. NotificationDispatcher delivers PENDING rows after commit, in
its own session, so a delivery failure can never roll back or block a
booking change. Each row is claimed (PENDING -> SENDING) and committed
before its push, so overlapping runs never send the same row twice.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from motorpool.app.core.config import settings
from motorpool.app.db.session import AsyncSessionLocal
from motorpool.app.models.booking import Booking
from motorpool.app.models.dispatch_enums import NotificationStatus
from motorpool.app.models.driver import Driver
from motorpool.app.models.notification import NotificationEvent, OutboundNotification
from motorpool.app.services.line_client import LineMessagingClient
from motorpool.app.services.off_hours import is_off_hours

logger = logging.getLogger(__name__)


def _text(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def _when(booking: Booking) -> str:
    start = booking.start_at.strftime("%d/%m/%Y %H:%M") if booking.start_at else "-"
    end = booking.end_at.strftime("%H:%M") if booking.end_at else ""
    return f"{start} - {end}" if end else start


def acceptance_link(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/accept?token={token}"


def assignment_messages(booking: Booking, driver: Driver, token: str) -> List[Dict[str, Any]]:
    lines = [
        f"New job {booking.request_code}",
        f"Driver: {driver.full_name}",
        f"When: {_when(booking)}",
        f"Destination: {booking.destination or '-'}",
        f"Purpose: {booking.purpose}",
    ]
    if is_off_hours(booking.start_at):
        lines.append("Outside office hours")
    lines.append(f"Accept: {acceptance_link(token)}")
    return [_text("\n".join(lines))]


def completion_messages(booking: Booking) -> List[Dict[str, Any]]:
    return [_text(
        f"Job {booking.request_code} closed\n"
        f"Start mileage: {booking.start_mileage}\n"
        f"End mileage: {booking.end_mileage}\n"
        f"Distance: {booking.distance} km"
    )]


def reminder_messages(bookings: List[Booking]) -> List[Dict[str, Any]]:
    lines = [f"You have {len(bookings)} job(s) still open:"]
    for booking in bookings:
        lines.append(f"- {booking.request_code} ({booking.status.value}) {_when(booking)}")
    return [_text("\n".join(lines))]


class NotificationService:
    
    @staticmethod
    async def enqueue(
        db: AsyncSession,
        recipient_identity: Optional[str],
        event: NotificationEvent,
        messages: List[Dict[str, Any]],
        booking_id: Optional[int] = None
    ) -> Optional[OutboundNotification]:
        """
        Queue a message in the current transaction.
        
        Returns None when the recipient has no messaging identity.
        """
        if not recipient_identity:
            logger.warning("No messaging identity for %s notification (booking %s), skipped", event.value, booking_id)
            return None
        
        notif = OutboundNotification(
            recipient_identity=recipient_identity,
            event=event,
            payload=messages,
            booking_id=booking_id,
            status=NotificationStatus.PENDING,
        )
        db.add(notif)
        await db.flush() # Caller commits
        return notif
    
    @staticmethod
    async def retry_failed(db: AsyncSession) -> int:
        """Put FAILED notifications back in the PENDING queue."""
        stmt = update(OutboundNotification).where(
            OutboundNotification.status == NotificationStatus.FAILED
        ).values(
            status=NotificationStatus.PENDING
        ).execution_options(synchronize_session=False)
        result = await db.execute(stmt)
        return result.rowcount or 0


class NotificationDispatcher:
    """
    Delivers PENDING outbox rows through the messaging client.
    """
    
    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        client: Optional[LineMessagingClient] = None,
        batch_size: int = 100
    ):
        self.session_factory = session_factory
        self.client = client or LineMessagingClient()
        self.batch_size = batch_size
    
    @staticmethod
    async def _claim(db: AsyncSession, notif_id: int) -> Optional[OutboundNotification]:
        """
        PENDING -> SENDING, committed before the push goes out.
        
        Returns None when another run claimed the row first.
        """
        result = await db.execute(
            update(OutboundNotification)
            .where(
                OutboundNotification.id == notif_id,
                OutboundNotification.status == NotificationStatus.PENDING
            )
            .values(status=NotificationStatus.SENDING)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount != 1:
            return None
        return await db.get(OutboundNotification, notif_id, populate_existing=True)
    
    async def deliver_pending(self) -> int:
        """
        Deliver queued messages.
        
        Returns:
            Number of messages delivered. Failures are logged, recorded on
            the row and otherwise ignored.
        """
        delivered = 0
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(OutboundNotification.id)
                    .where(OutboundNotification.status == NotificationStatus.PENDING)
                    .order_by(OutboundNotification.id)
                    .limit(self.batch_size)
                )
                pending_ids = result.scalars().all()
                
                for notif_id in pending_ids:
                    notif = await self._claim(db, notif_id)
                    if notif is None:
                        continue
                    
                    try:
                        ok, error = await self.client.send(notif.recipient_identity, notif.payload)
                    except Exception as exc:
                        logger.exception("Messaging client raised for notification %s", notif.id)
                        ok, error = False, f"{type(exc).__name__}: {exc}"
                    notif.attempts += 1
                    if ok:
                        notif.status = NotificationStatus.SENT
                        notif.sent_at = datetime.utcnow()
                        notif.last_error = None
                        delivered += 1
                    else:
                        notif.status = NotificationStatus.FAILED
                        notif.last_error = error
                        logger.warning("Notification %s (%s) failed: %s", notif.id, notif.event.value, error)
                    await db.commit()
        except Exception:
            logger.exception("Notification delivery run aborted")
        
        return delivered


dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency for the outbox dispatcher."""
    return dispatcher
