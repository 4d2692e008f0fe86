"""Main FastAPI application."""
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from marketplace.config import settings
from marketplace.database import AsyncSessionLocal, init_db
from marketplace.errors import setup_exception_handlers
from marketplace.logging_config import setup_logging
from marketplace.middleware.rate_limit import setup_rate_limiting
from marketplace.middleware.security_headers import SecurityHeadersMiddleware
from marketplace.realtime import coupon_feed
from marketplace.routes import register_all_routes
from marketplace.uploads.routes import PUBLIC_PREFIX as UPLOADS_PREFIX

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    if not settings.is_production:
        await init_db()
    verifier = asyncio.create_task(coupon_feed.run_verifier(AsyncSessionLocal))
    logger.info(f"{settings.APP_NAME} API started ({settings.APP_ENV})")
    yield
    verifier.cancel()
    try:
        await verifier
    except asyncio.CancelledError:
        pass
    logger.info(f"{settings.APP_NAME} API stopped")


# Create FastAPI app
app = FastAPI(
    title="AnunciaYA API",
    description="Local marketplace - businesses, promotions, raffles, coupons and chat",
    version="0.3.0",
    lifespan=lifespan,
)

# Configure CORS (Vercel preview deployments are allowed by pattern)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_origin_regex=r"https://.*\.vercel\.app",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

setup_exception_handlers(app)
setup_rate_limiting(app)

register_all_routes(app, api_prefix=settings.API_PREFIX)

# Files written by /api/upload/single
app.mount(UPLOADS_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "AnunciaYA API",
        "version": "0.3.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "marketplace.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
