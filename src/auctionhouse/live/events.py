"""Mensajes JSON etiquetados que viajan por el canal en vivo.

Todo evento lleva ``type`` (``bid_update`` | ``auction_status``) y
``productId``. Los montos salen de Decimal a número JSON aquí y en ningún
otro lugar del camino en vivo.
"""
from ..utils import money, iso

BID_UPDATE = "bid_update"
AUCTION_STATUS = "auction_status"
INTERNAL_BROADCAST = "internal_broadcast"
EVENT_TYPES = (BID_UPDATE, AUCTION_STATUS)


def bid_update(product_id, bid, bidder_name, current_bid, bid_count, minimum_bid=None):
    amount = money(bid.amount)
    return {
        "type": BID_UPDATE,
        "productId": product_id,
        "bid": {
            "id": bid.id,
            "amount": amount,
            "bidTime": iso(bid.created_at),
            "userId": bid.user_id,
            "bidderName": bidder_name,
        },
        "currentBid": money(current_bid),
        "bidCount": bid_count,
        "minimumBid": money(minimum_bid),
        "message": f"Nueva puja: ${amount:,.2f} por {bidder_name}",
    }


def auction_status(product, message=None):
    return {
        "type": AUCTION_STATUS,
        "productId": product.id,
        "status": product.auction_status,
        "listingStatus": product.status,
        "endTime": iso(product.end_time),
        "currentBid": money(product.current_bid),
        "winnerBidId": product.winner_bid_id,
        "message": message or f"Subasta {product.auction_status}",
    }


def auction_snapshot(product, status):
    """Estado completo para un espectador que se une o se re-sincroniza."""
    return {
        "id": product.id,
        "title": product.title,
        "auctionStatus": status,
        "currentBid": money(product.current_bid) or 0,
        "bidCount": product.bid_count or 0,
        "endTime": iso(product.end_time),
    }


def internal_broadcast(event):
    return {"type": INTERNAL_BROADCAST, "action": event["type"], "data": event}
