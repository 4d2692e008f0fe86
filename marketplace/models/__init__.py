"""
Consolidated models package.

IMPORTANT: Explicit imports only - no wildcards to prevent circular imports.
"""

# Base utilities
from marketplace.models.base import generate_id, utcnow, as_utc

# Accounts
from marketplace.models.user import User, DeletedAccount, PhoneOTP
from marketplace.models.session import RefreshToken

# Marketplace content
from marketplace.models.business import Business
from marketplace.models.promotion import Promotion
from marketplace.models.raffle import Raffle, RaffleType, RaffleStatus, Auction
from marketplace.models.coupon import Coupon, CouponRedemption

# Messaging
from marketplace.models.chat import Chat, Message

__all__ = [
    "generate_id",
    "utcnow",
    "as_utc",
    "User",
    "DeletedAccount",
    "PhoneOTP",
    "RefreshToken",
    "Business",
    "Promotion",
    "Raffle",
    "RaffleType",
    "RaffleStatus",
    "Auction",
    "Coupon",
    "CouponRedemption",
    "Chat",
    "Message",
]
