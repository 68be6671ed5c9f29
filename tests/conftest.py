from datetime import timedelta
from decimal import Decimal
import threading

import jwt
import pytest

from auctions_service.app import create_app
from auctions_service.config import TestConfig
from auctions_service.models import AuctionStatus, utcnow
from auctions_service.services.notifications import Notifier

SELLER = 1
ALICE = 2
BOB = 3
CAROL = 4


class RecordingNotifier(Notifier):
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def send_outbid(self, user_id, auction_id, new_amount):
        self._record("outbid", user_id, auction_id, new_amount)

    def send_auction_won(self, user_id, auction_id, final_bid):
        self._record("won", user_id, auction_id, final_bid)

    def send_auction_ended(self, seller_id, auction_id, has_bids, final_bid=None, winner_id=None):
        self._record("ended", seller_id, auction_id, has_bids, final_bid, winner_id)

    def of(self, kind):
        return [c for c in self.calls if c[0] == kind]


class FakeUsers:
    def __init__(self, names=None):
        self.names = names or {}

    def project(self, user_ids):
        return {uid: ({"id": uid, "username": self.names[uid]} if uid in self.names else None)
                for uid in set(user_ids)}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TestConfig, notifier=notifier,
                     users=FakeUsers({ALICE: "alice", BOB: "bob", CAROL: "carol"}))
    yield app
    app.extensions["auctions"].dispatcher.shutdown()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def svc(app):
    return app.extensions["auctions"]


@pytest.fixture
def client(app):
    return app.test_client()


def auth(user_id):
    token = jwt.encode({"sub": str(user_id)}, TestConfig.JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auction(app):
    """Insert an auction straight through the store; returns its id."""

    def _make(**overrides):
        now = utcnow()
        fields = {
            "seller_id": SELLER,
            "title": "Vintage Leica Camera",
            "description": "1960s Leica M3 in excellent condition with case.",
            "category": "collectibles",
            "starting_bid": Decimal("100"),
            "current_bid": Decimal("100"),
            "bid_increment": Decimal("25"),
            "current_bidder_id": None,
            "bid_count": 0,
            "view_count": 0,
            "end_time": now + timedelta(days=3),
            "status": AuctionStatus.ACTIVE,
            "details": {},
            "images": [],
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        store = app.extensions["auctions"].store
        with app.app_context():
            with store.transaction():
                a = store.auctions.create(fields)
                auction_id = a.id
        return auction_id

    return _make
