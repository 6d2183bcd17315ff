"""
Notification outbox and messaging client tests.
"""

import httpx
import pytest

from sqlalchemy import select

from motorpool.app.models.dispatch_enums import NotificationStatus
from motorpool.app.models.notification import NotificationEvent, OutboundNotification
from motorpool.app.services.line_client import LineMessagingClient
from motorpool.app.core.config import settings
from motorpool.app.services.notification_service import (
    NotificationDispatcher, NotificationService, acceptance_link
)


async def _queue(db, recipient="U-1", text="hello"):
    notif = await NotificationService.enqueue(
        db, recipient, NotificationEvent.JOB_ASSIGNED, [{"type": "text", "text": text}]
    )
    await db.commit()
    return notif


async def _statuses(db):
    result = await db.execute(
        select(OutboundNotification).order_by(OutboundNotification.id).execution_options(populate_existing=True)
    )
    return [(n.status, n.attempts, n.last_error) for n in result.scalars().all()]


@pytest.mark.asyncio
async def test_enqueue_without_identity_is_skipped(db_session):
    notif = await NotificationService.enqueue(db_session, None, NotificationEvent.JOB_ASSIGNED, [])
    assert notif is None
    assert (await db_session.execute(select(OutboundNotification))).scalars().all() == []


@pytest.mark.asyncio
async def test_dispatcher_delivers_pending(db_session, messaging_client, test_dispatcher):
    await _queue(db_session, "U-1", "first")
    await _queue(db_session, "U-2", "second")
    
    delivered = await test_dispatcher.deliver_pending()
    
    assert delivered == 2
    assert messaging_client.texts_for("U-1") == ["first"]
    assert await _statuses(db_session) == [
        (NotificationStatus.SENT, 1, None),
        (NotificationStatus.SENT, 1, None),
    ]
    
    # Nothing left to send
    assert await test_dispatcher.deliver_pending() == 0


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_and_retried(db_session, messaging_client, test_dispatcher):
    await _queue(db_session)
    messaging_client.fail_with = "HTTP 500: boom"
    
    assert await test_dispatcher.deliver_pending() == 0
    assert await _statuses(db_session) == [(NotificationStatus.FAILED, 1, "HTTP 500: boom")]
    
    assert await NotificationService.retry_failed(db_session) == 1
    await db_session.commit()
    messaging_client.fail_with = None
    
    assert await test_dispatcher.deliver_pending() == 1
    assert await _statuses(db_session) == [(NotificationStatus.SENT, 2, None)]


@pytest.mark.asyncio
async def test_dispatcher_never_raises(db_session, mocker, test_dispatcher):
    await _queue(db_session)
    client = mocker.Mock()
    client.send = mocker.AsyncMock(side_effect=RuntimeError("socket closed"))
    test_dispatcher.client = client
    
    assert await test_dispatcher.deliver_pending() == 0
    
    # Recorded as FAILED so the admin retry can pick it up again
    assert await _statuses(db_session) == [(NotificationStatus.FAILED, 1, "RuntimeError: socket closed")]


@pytest.mark.asyncio
async def test_claimed_rows_are_skipped(db_session, messaging_client, test_dispatcher):
    notif = await _queue(db_session)
    notif.status = NotificationStatus.SENDING
    await db_session.commit()
    
    assert await test_dispatcher.deliver_pending() == 0
    assert messaging_client.sent == []


@pytest.mark.asyncio
async def test_overlapping_runs_send_each_message_once(db_session, messaging_client, test_dispatcher):
    await _queue(db_session, "U-1", "first")
    await _queue(db_session, "U-2", "second")
    
    other = NotificationDispatcher(session_factory=test_dispatcher.session_factory, client=messaging_client)
    send = messaging_client.send
    overlap = []
    
    async def send_during_other_run(recipient, messages):
        # The scheduled flush fires while the first push is in flight
        if not overlap:
            overlap.append(None)
            overlap.append(await other.deliver_pending())
        return await send(recipient, messages)
    
    messaging_client.send = send_during_other_run
    
    assert await test_dispatcher.deliver_pending() == 1
    assert overlap == [None, 1]
    assert messaging_client.texts_for("U-1") == ["first"]
    assert messaging_client.texts_for("U-2") == ["second"]
    assert await _statuses(db_session) == [
        (NotificationStatus.SENT, 1, None),
        (NotificationStatus.SENT, 1, None),
    ]


def test_acceptance_link(mocker):
    mocker.patch.object(settings, "public_base_url", "https://pool.example.go.th/")
    assert acceptance_link("abc") == "https://pool.example.go.th/accept?token=abc"


@pytest.mark.asyncio
async def test_line_client_posts_push_request():
    seen = {}
    
    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={})
    
    client = LineMessagingClient(
        access_token="secret", push_url="https://line.test/push", transport=httpx.MockTransport(handler)
    )
    
    ok, error = await client.send("U-1", [{"type": "text", "text": "hi"}])
    
    assert (ok, error) == (True, None)
    assert seen["auth"] == "Bearer secret"
    assert b'"to":"U-1"' in seen["body"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_line_client_reports_http_errors():
    client = LineMessagingClient(
        access_token="secret",
        push_url="https://line.test/push",
        transport=httpx.MockTransport(lambda request: httpx.Response(400, text="Invalid reply token"))
    )
    
    ok, error = await client.send("U-1", [])
    
    assert ok is False
    assert error.startswith("HTTP 400")


@pytest.mark.asyncio
async def test_line_client_without_token():
    ok, error = await LineMessagingClient(access_token="").send("U-1", [])
    assert (ok, error) == (False, "missing channel access token")
