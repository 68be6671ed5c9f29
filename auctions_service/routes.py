from flask import Blueprint, request, current_app, g, jsonify

from auctions_service.auth_mw import current_user_id, require_user
from auctions_service.errors import AuctionError, NotFound, ValidationError
from auctions_service.models import Auction, AuctionStatus, Bid, utcnow
from auctions_service.services import AuctionServices
from auctions_service.services.bidding import BidOptions, minimum_next_bid
from auctions_service.services.listings import create_listing, delete_listing, seller_stats, update_listing
from auctions_service.utils.parsing import iso, money, parse_decimal
from auctions_service.utils.responses import ok, err

bp = Blueprint("auctions", __name__, url_prefix="/api")


def _svc() -> AuctionServices:
    return current_app.extensions["auctions"]


def _json_body() -> dict:
    d = request.get_json(silent=True)
    if not isinstance(d, dict):
        raise ValidationError("JSON object body required")
    return d


def _auction_json(a: Auction) -> dict:
    return {
        "id": a.id,
        "sellerId": a.seller_id,
        "title": a.title,
        "description": a.description,
        "category": a.category,
        "image": a.image,
        "images": a.images or [],
        "condition": a.condition.value if a.condition else None,
        "shipping": a.shipping,
        "details": a.details or {},
        "startingBid": money(a.starting_bid),
        "currentBid": money(a.current_bid),
        "bidIncrement": money(a.bid_increment),
        "minimumBid": money(minimum_next_bid(a)),
        "currentBidUserId": a.current_bidder_id,
        "bidCount": a.bid_count,
        "viewCount": a.view_count,
        "status": a.status.value,
        "endTime": iso(a.end_time),
        "createdAt": iso(a.created_at),
        "updatedAt": iso(a.updated_at),
        "settledAt": iso(a.settled_at),
    }


def _bid_json(b: Bid, user: dict | None = None) -> dict:
    d = {
        "id": b.id,
        "auctionId": b.auction_id,
        "userId": b.user_id,
        "amount": money(b.amount),
        "maxBid": money(b.max_bid),
        "autoBid": bool(b.auto_bid),
        "createdAt": iso(b.created_at),
    }
    if user is not None:
        d["user"] = user
    return d


@bp.errorhandler(AuctionError)
def handle_auction_error(e: AuctionError):
    return jsonify(e.to_dict()), e.status


@bp.get("/auctions")
def list_auctions():
    return ok([_auction_json(a) for a in _svc().store.auctions.list_active(utcnow())])


@bp.get("/auctions/featured")
def featured_auctions():
    limit = current_app.config.get("FEATURED_LIMIT", 8)
    return ok([_auction_json(a) for a in _svc().store.auctions.list_featured(utcnow(), limit)])


@bp.get("/auctions/<int:auction_id>")
def get_auction(auction_id: int):
    store = _svc().store
    a = store.auctions.get(auction_id)
    if a is None:
        raise NotFound()
    if a.status == AuctionStatus.DRAFT:
        # unpublished: only the seller sees it, and their visits are not counted
        if current_user_id() != a.seller_id:
            raise NotFound()
        return ok(_auction_json(a))
    with store.transaction():
        a = store.auctions.increment_views(auction_id)
    if a is None:
        raise NotFound()
    return ok(_auction_json(a))


@bp.get("/auctions/<int:auction_id>/bids")
def get_auction_bids(auction_id: int):
    svc = _svc()
    if svc.store.auctions.get(auction_id) is None:
        raise NotFound()
    bids = svc.store.bids.list_by_auction(auction_id)
    users = svc.users.project(b.user_id for b in bids)
    return ok([_bid_json(b, users.get(b.user_id)) for b in bids])


@bp.post("/auctions/<int:auction_id>/bids")
@require_user
def place_bid(auction_id: int):
    d = _json_body()
    max_bid = d.get("maxBid")
    options = BidOptions(
        max_bid=parse_decimal(max_bid, "maxBid") if max_bid not in (None, "") else None,
        auto_bid=bool(d.get("autoBid")),
    )
    try:
        bid = _svc().engine.place_bid(auction_id, g.user_id, d.get("amount"), options)
    except AuctionError as e:
        current_app.logger.info("bid rejected: auction=%s user=%s reason=%s", auction_id, g.user_id, e.code)
        raise
    return ok(_bid_json(bid), 201)


@bp.post("/auctions")
@require_user
def create_auction():
    a = create_listing(
        _svc().store, g.user_id, _json_body(),
        default_increment=current_app.config["DEFAULT_BID_INCREMENT"],
    )
    current_app.logger.info("auction %s created by seller %s", a.id, g.user_id)
    return ok(_auction_json(a), 201)


@bp.put("/auctions/<int:auction_id>")
@require_user
def edit_auction(auction_id: int):
    a = update_listing(_svc().store, auction_id, g.user_id, _json_body())
    return ok(_auction_json(a))


@bp.delete("/auctions/<int:auction_id>")
@require_user
def remove_auction(auction_id: int):
    delete_listing(_svc().store, auction_id, g.user_id)
    current_app.logger.info("auction %s deleted by seller %s", auction_id, g.user_id)
    return ok({"message": "Auction deleted successfully"})


@bp.get("/seller/auctions")
@require_user
def my_auctions():
    return ok([_auction_json(a) for a in _svc().store.auctions.list_by_seller(g.user_id)])


@bp.get("/seller/stats")
@require_user
def my_stats():
    return ok(seller_stats(_svc().store, g.user_id))


@bp.get("/user/bids")
@require_user
def my_bids():
    return ok([_bid_json(b) for b in _svc().store.bids.list_by_user(g.user_id)])


@bp.get("/user/watchlist")
@require_user
def my_watchlist():
    return ok([_auction_json(a) for a in _svc().store.watchlist.list_auctions(g.user_id)])


@bp.post("/user/watchlist/<int:auction_id>")
@require_user
def update_watchlist(auction_id: int):
    store = _svc().store
    action = _json_body().get("action")
    if action == "add":
        if store.auctions.get(auction_id) is None:
            raise NotFound()
        with store.transaction():
            store.watchlist.add(g.user_id, auction_id)
        return ok({"message": "Added to watchlist"})
    if action == "remove":
        with store.transaction():
            store.watchlist.remove(g.user_id, auction_id)
        return ok({"message": "Removed from watchlist"})
    return err("invalid", 400, "Invalid action")


@bp.get("/user/watchlist/check/<int:auction_id>")
@require_user
def check_watchlist(auction_id: int):
    return ok({"isWatchlisted": _svc().store.watchlist.contains(g.user_id, auction_id)})
