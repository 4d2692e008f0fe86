"""
Consolidated routes module.

Routes live in their domain packages and are collected here so that the
application registers them in one place.

Usage:
    from marketplace.routes import register_all_routes
    register_all_routes(app, api_prefix="/api")
"""
from typing import List, Tuple
from fastapi import APIRouter

# Accounts (all mounted under /usuarios)
from marketplace.auth.routes import router as auth_router
from marketplace.sessions.routes import router as sessions_router
from marketplace.account.routes import router as account_router

# Marketplace content
from marketplace.businesses.routes import router as businesses_router
from marketplace.promotions.routes import router as promotions_router
from marketplace.raffles.routes import router as raffles_router
from marketplace.local_content.routes import router as local_content_router
from marketplace.coupons.routes import router as coupons_router

# Messaging, media and utilities
from marketplace.chat.routes import router as chat_router
from marketplace.media.routes import router as media_router
from marketplace.uploads.routes import router as uploads_router
from marketplace.geo.routes import router as geo_router
from marketplace.health.routes import router as health_router

# WebSocket endpoint (not under the API prefix)
from marketplace.realtime.routes import router as realtime_router


# Each tuple: (router, prefix, tags)
ROUTER_CONFIGS: List[Tuple[APIRouter, str, List[str]]] = [
    (auth_router, "/usuarios", ["Auth"]),
    (sessions_router, "/usuarios", ["Sessions"]),
    (account_router, "/usuarios", ["Account"]),
    (businesses_router, "/negocios", ["Businesses"]),
    (promotions_router, "/promociones", ["Promotions"]),
    (raffles_router, "/rifas", ["Raffles"]),
    (local_content_router, "/contenido", ["Local Content"]),
    (coupons_router, "/cupones", ["Coupons"]),
    (chat_router, "/chat", ["Chat"]),
    (media_router, "/media", ["Media"]),
    (uploads_router, "/upload", ["Uploads"]),
    (geo_router, "/geo", ["Geo"]),
    (health_router, "/health", ["Health"]),
]


def register_all_routes(app, api_prefix: str = "/api") -> None:
    """
    Register all routers with the FastAPI app.

    Args:
        app: FastAPI application instance
        api_prefix: API prefix (default: /api)
    """
    for router, prefix, tags in ROUTER_CONFIGS:
        full_prefix = f"{api_prefix}{prefix}" if prefix else api_prefix
        app.include_router(router, prefix=full_prefix, tags=tags)

    app.include_router(realtime_router, tags=["Realtime"])
