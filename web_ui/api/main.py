"""
StoryTime Web API - Main FastAPI Application

Children's story platform backend:
- Trial, subscription passes and the coin ledger
- Razorpay coin purchases with server-side verification
- Story submission, admin review and bookmarks
- Parent settings, child-lock PIN and reading checkpoints
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from models.database import init_db
from utils.logger import logger
from web_ui.api.middleware.rate_limit import RateLimitMiddleware
from web_ui.api.middleware.security_headers import SecurityHeadersMiddleware
from web_ui.api.routes import (
    admin,
    checkpoints,
    payments,
    plans,
    settings_routes,
    stories,
    subscription,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    init_db()
    logger.info(f"StoryTime API starting ({settings.APP_ENV}) on http://{settings.APP_HOST}:{settings.APP_PORT}")
    if not settings.payments_configured:
        logger.warning("Razorpay keys are not set; coin purchases are disabled")
    yield
    logger.info("StoryTime API shutting down...")


app = FastAPI(
    title="StoryTime API",
    description="Stories, subscriptions and coins",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,  # Don't redirect /path to /path/ - causes CORS issues
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Authorization",
        "Content-Type",
        "Origin",
        "X-Requested-With",
        "X-Request-ID",
    ],
    expose_headers=[
        "X-Request-ID",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
)

app.add_middleware(SecurityHeadersMiddleware)

# Rate limiting middleware (must be after CORS)
app.add_middleware(RateLimitMiddleware)

app.include_router(settings_routes.router, prefix="/api", tags=["Settings"])
app.include_router(subscription.router, prefix="/api", tags=["Subscription"])
app.include_router(plans.router, prefix="/api", tags=["Plans & Coin Packages"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(stories.router, prefix="/api", tags=["Stories"])
app.include_router(checkpoints.router, prefix="/api", tags=["Checkpoints"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "StoryTime API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)
