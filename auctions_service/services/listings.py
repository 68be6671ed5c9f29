from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from auctions_service.errors import (
    AuctionBusy, AuctionClosed, Forbidden, HasBids, NotFound, ValidationError,
)
from auctions_service.models import Auction, AuctionStatus, ItemCondition, utcnow
from auctions_service.services.store import Store
from auctions_service.utils.parsing import parse_decimal, parse_details, parse_dt

EDITABLE_STATUSES = {AuctionStatus.ACTIVE.value, AuctionStatus.DRAFT.value}


def _end_time_from(data: dict, now: datetime) -> datetime | None:
    if data.get("endTime"):
        end_time = parse_dt(data.get("endTime"))
        if end_time is None:
            raise ValidationError("endTime must be an ISO datetime", fields=["endTime"])
    elif data.get("duration") not in (None, ""):
        try:
            days = int(data.get("duration"))
        except (TypeError, ValueError):
            raise ValidationError("duration must be a number of days", fields=["duration"])
        if days <= 0:
            raise ValidationError("duration must be positive", fields=["duration"])
        end_time = now + timedelta(days=days)
    else:
        return None
    if end_time <= now:
        raise ValidationError("end time must be in the future", fields=["endTime"])
    return end_time


def _shipping_from(data: dict, current: dict | None = None) -> dict | None:
    if "shipping" not in data and "shippingCost" not in data:
        return current
    shipping = dict(current or {})
    if isinstance(data.get("shipping"), dict):
        s = data["shipping"]
        for key in ("method", "estimatedDelivery", "restrictions"):
            if s.get(key) is not None:
                shipping[key] = str(s[key])
        if s.get("cost") is not None:
            shipping["cost"] = float(parse_decimal(s.get("cost"), "shipping.cost", minimum=Decimal("0")))
    if data.get("shippingCost") not in (None, ""):
        shipping["cost"] = float(parse_decimal(data.get("shippingCost"), "shippingCost", minimum=Decimal("0")))
    shipping.setdefault("method", "Standard Shipping")
    return shipping


def _listing_fields(data: dict, now: datetime, partial: bool) -> dict:
    """Map request JSON onto Auction columns, validating what is present."""
    out = {}
    if not partial:
        required = ["title", "description", "category", "startingBid"]
        miss = [k for k in required if data.get(k) in (None, "")]
        if not data.get("endTime") and data.get("duration") in (None, ""):
            miss.append("endTime")
        if miss:
            raise ValidationError("missing fields: " + ", ".join(miss), fields=miss)

    if "title" in data:
        title = (data.get("title") or "").strip()
        if len(title) < 5:
            raise ValidationError("title must be at least 5 characters", fields=["title"])
        out["title"] = title
    if "description" in data:
        description = (data.get("description") or "").strip()
        if len(description) < 20:
            raise ValidationError("description must be at least 20 characters", fields=["description"])
        out["description"] = description
    if "category" in data:
        category = (data.get("category") or "").strip().lower()
        if not category:
            raise ValidationError("category is required", fields=["category"])
        out["category"] = category
    if "startingBid" in data:
        out["starting_bid"] = parse_decimal(data.get("startingBid"), "startingBid", minimum=Decimal("0"))
        out["current_bid"] = out["starting_bid"]
    if data.get("bidIncrement") not in (None, ""):
        out["bid_increment"] = parse_decimal(data.get("bidIncrement"), "bidIncrement",
                                             minimum=Decimal("0"), strict_min=True)
    if "image" in data:
        out["image"] = (data.get("image") or "").strip() or None
    if "images" in data:
        images = data.get("images") or []
        if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
            raise ValidationError("images must be a list of URLs", fields=["images"])
        out["images"] = images
    if data.get("condition"):
        try:
            out["condition"] = ItemCondition(data.get("condition"))
        except ValueError:
            raise ValidationError("unknown condition", fields=["condition"])
    if "details" in data:
        out["details"] = parse_details(data.get("details"))

    end_time = _end_time_from(data, now)
    if end_time is not None:
        out["end_time"] = end_time
    return out


def create_listing(store: Store, seller_id: int, data: dict, default_increment, now: datetime | None = None) -> Auction:
    now = now or utcnow()
    fields = _listing_fields(data, now, partial=False)
    status = (data.get("status") or AuctionStatus.ACTIVE.value).lower()
    if status not in EDITABLE_STATUSES:
        raise ValidationError("status must be active or draft", fields=["status"])
    fields.setdefault("bid_increment", Decimal(str(default_increment)))
    fields.update(
        seller_id=seller_id,
        status=AuctionStatus(status),
        shipping=_shipping_from(data),
        current_bidder_id=None,
        bid_count=0,
        view_count=0,
        created_at=now,
        updated_at=now,
    )
    fields.setdefault("details", {})
    fields.setdefault("images", [])
    with store.transaction():
        a = store.auctions.create(fields)
    return a


def _owned(store: Store, auction_id: int, user_id: int) -> Auction:
    a = store.auctions.get(auction_id)
    if a is None:
        raise NotFound()
    if a.seller_id != user_id:
        raise Forbidden()
    if a.bid_count > 0:
        raise HasBids()
    return a


def update_listing(store: Store, auction_id: int, user_id: int, data: dict, now: datetime | None = None) -> Auction:
    now = now or utcnow()
    a = _owned(store, auction_id, user_id)
    if a.status not in (AuctionStatus.ACTIVE, AuctionStatus.DRAFT):
        raise AuctionClosed("This auction has already ended")

    fields = _listing_fields(data, now, partial=True)
    if "status" in data:
        status = (data.get("status") or "").lower()
        if status not in EDITABLE_STATUSES:
            raise ValidationError("status must be active or draft", fields=["status"])
        if a.status == AuctionStatus.ACTIVE and status == AuctionStatus.DRAFT.value:
            raise ValidationError("a published auction cannot go back to draft", fields=["status"])
        fields["status"] = AuctionStatus(status)
    shipping = _shipping_from(data, a.shipping)
    if shipping != a.shipping:
        fields["shipping"] = shipping
    fields["updated_at"] = now

    with store.transaction():
        updated = store.auctions.update(auction_id, fields, expected_bid_count=0, expected_status=a.status)
    if updated is None:
        # a bid, a delete or a settlement got in first
        a = _owned(store, auction_id, user_id)
        if a.status not in (AuctionStatus.ACTIVE, AuctionStatus.DRAFT):
            raise AuctionClosed("This auction has already ended")
        raise AuctionBusy()
    return updated


def delete_listing(store: Store, auction_id: int, user_id: int) -> None:
    # a settlement between the read and the write costs one more pass
    for _ in range(2):
        a = _owned(store, auction_id, user_id)
        with store.transaction():
            if store.auctions.delete(auction_id, expected_bid_count=0, expected_status=a.status):
                return
    _owned(store, auction_id, user_id)
    raise AuctionBusy()


def seller_stats(store: Store, seller_id: int, now: datetime | None = None) -> dict:
    now = now or utcnow()
    auctions = store.auctions.list_by_seller(seller_id)
    active = [a for a in auctions if a.status == AuctionStatus.ACTIVE and a.end_time > now]
    sold = [a for a in auctions if a.status == AuctionStatus.SOLD]
    ended = [
        a for a in auctions
        if a.status in (AuctionStatus.SOLD, AuctionStatus.EXPIRED)
        or (a.status == AuctionStatus.ACTIVE and a.end_time <= now)
    ]
    total_sales = sum((Decimal(a.current_bid) for a in sold), Decimal("0"))
    conversion = 0
    if ended:
        ratio = Decimal(len(sold) * 100) / Decimal(len(ended))
        conversion = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return {
        "activeListings": len(active),
        "soldItems": len(sold),
        "totalSales": float(total_sales),
        "totalBids": sum(a.bid_count for a in auctions),
        "conversionRate": conversion,
        "totalAuctions": len(auctions),
    }
