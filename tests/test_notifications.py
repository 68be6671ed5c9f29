from datetime import timedelta
from decimal import Decimal

import pytest
import requests

from auctions_service.app import create_app
from auctions_service.config import TestConfig
from auctions_service.models import AuctionStatus, utcnow
from auctions_service.services import notifications
from auctions_service.services.notifications import (
    AuctionSettledEvent, AuctionUnsoldEvent, AuctionWonEvent, HttpNotifier,
    NotificationDispatcher, OutbidEvent,
)

from conftest import ALICE, BOB, RecordingNotifier, SELLER, auth


class FailingNotifier(RecordingNotifier):
    def send_outbid(self, user_id, auction_id, new_amount):
        super().send_outbid(user_id, auction_id, new_amount)
        raise requests.ConnectionError("smtp relay down")


def test_events_map_to_notifier_calls():
    n = RecordingNotifier()
    d = NotificationDispatcher(n, async_mode=False)
    d.dispatch(OutbidEvent(ALICE, 7, Decimal("125")))
    d.dispatch(AuctionWonEvent(7, BOB, Decimal("300")))
    d.dispatch(AuctionSettledEvent(7, SELLER, BOB, Decimal("300")))
    d.dispatch(AuctionUnsoldEvent(8, SELLER))
    assert n.calls == [
        ("outbid", ALICE, 7, Decimal("125")),
        ("won", BOB, 7, Decimal("300")),
        ("ended", SELLER, 7, True, Decimal("300"), BOB),
        ("ended", SELLER, 8, False, None, None),
    ]


def test_failed_delivery_is_retried_then_logged(caplog):
    n = FailingNotifier()
    d = NotificationDispatcher(n, async_mode=False, retries=2)
    d.dispatch(OutbidEvent(ALICE, 7, Decimal("125")))
    assert len(n.calls) == 3
    assert "notification failed for OutbidEvent" in caplog.text


def test_async_dispatch_delivers_on_worker_threads():
    n = RecordingNotifier()
    d = NotificationDispatcher(n, async_mode=True, workers=2)
    for i in range(5):
        d.dispatch(AuctionUnsoldEvent(i, SELLER))
    d.shutdown(wait=True)
    assert sorted(c[2] for c in n.calls) == [0, 1, 2, 3, 4]


def test_dispatch_after_shutdown_is_dropped(caplog):
    d = NotificationDispatcher(RecordingNotifier(), async_mode=True)
    d.shutdown()
    d.dispatch(AuctionUnsoldEvent(1, SELLER))
    assert "dispatcher closed" in caplog.text


def test_http_notifier_posts_json(monkeypatch):
    sent = []

    class Resp:
        def raise_for_status(self):
            pass

    def fake_post(url, json=None, timeout=None):
        sent.append((url, json, timeout))
        return Resp()

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    n = HttpNotifier("http://notify:5011/")
    n.send_outbid(ALICE, 7, Decimal("125.50"))
    n.send_auction_ended(SELLER, 7, False)

    assert sent[0] == (
        "http://notify:5011/notifications/outbid",
        {"user_id": ALICE, "auction_id": 7, "current_bid": 125.5},
        5,
    )
    assert sent[1][0] == "http://notify:5011/notifications/auction-ended"
    assert sent[1][1]["has_bids"] is False
    assert sent[1][1]["final_bid"] is None


def test_http_notifier_raises_on_error_status(monkeypatch):
    class Resp:
        def raise_for_status(self):
            raise requests.HTTPError("502")

    monkeypatch.setattr(notifications.requests, "post", lambda *a, **kw: Resp())
    with pytest.raises(requests.HTTPError):
        HttpNotifier("http://notify").send_auction_won(ALICE, 1, Decimal("10"))


def test_notifier_failure_does_not_fail_the_bid():
    n = FailingNotifier()
    app = create_app(TestConfig, notifier=n)
    client = app.test_client()
    with app.app_context():
        store = app.extensions["auctions"].store
        with store.transaction():
            aid = store.auctions.create({
                "seller_id": SELLER,
                "title": "Vinyl Record Collection",
                "description": "Collection of 50+ classic rock vinyl records.",
                "category": "music",
                "starting_bid": Decimal("500"),
                "current_bid": Decimal("500"),
                "bid_increment": Decimal("5"),
                "end_time": utcnow() + timedelta(days=2),
                "status": AuctionStatus.ACTIVE,
            }).id

    assert client.post(f"/api/auctions/{aid}/bids", json={"amount": 500}, headers=auth(ALICE)).status_code == 201
    r = client.post(f"/api/auctions/{aid}/bids", json={"amount": 505}, headers=auth(BOB))
    assert r.status_code == 201
    assert n.of("outbid") == [("outbid", ALICE, aid, Decimal("505"))]
