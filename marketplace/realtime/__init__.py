"""Realtime (WebSocket) layer: hub, presence and the live coupon feed."""
from marketplace.realtime.hub import ConnectionManager, manager
from marketplace.realtime.presence import PresenceTracker
from marketplace.realtime.coupons_feed import CouponFeed

presence = PresenceTracker(manager)
coupon_feed = CouponFeed(manager)

__all__ = ["ConnectionManager", "manager", "presence", "coupon_feed"]
