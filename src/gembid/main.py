import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gembid.api.deps import get_auction_locks, notifier
from gembid.api.v1 import auctions, bidders, bids, watchers, ws
from gembid.core.clock import system_clock
from gembid.core.config import settings
from gembid.core.database import async_session_maker, engine
from gembid.core.redis import close_redis
from gembid.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from gembid.middleware.rate_limit import RateLimitMiddleware
from gembid.services.auction_closer import AuctionCloser
from gembid.services.auction_repository import AuctionRepository

logger = logging.getLogger(__name__)

# Background task control
_notifier_task: asyncio.Task | None = None
_close_sweep_task: asyncio.Task | None = None


async def _stop(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global _notifier_task, _close_sweep_task

    # Startup
    logger.info("Starting application...")

    locks = await get_auction_locks()
    repository = AuctionRepository(async_session_maker, locks)
    closer = AuctionCloser(repository, notifier, system_clock)
    # Watcher preferences decide who gets outbid, ending-soon and result alerts
    notifier.watchers = repository

    # Start background tasks
    logger.info(
        f"Starting background tasks (lock backend: {settings.LOCK_BACKEND}, "
        f"sweep every {settings.CLOSE_SWEEP_INTERVAL_SECONDS}s)"
    )
    _notifier_task = asyncio.create_task(notifier.run())
    _close_sweep_task = asyncio.create_task(closer.run(settings.CLOSE_SWEEP_INTERVAL_SECONDS))

    yield

    # Shutdown
    logger.info("Stopping background tasks")
    await _stop(_close_sweep_task)
    await _stop(_notifier_task)

    # Flush events committed before shutdown
    await notifier.drain()

    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Gemstone Auction Service",
    version="1.0.0",
    description="Live bidding, proxy bids and auction closing for the gemstone store",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

# Rate Limiting Middleware (must be before CORS)
if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(
        RateLimitMiddleware,
        user_limit=settings.RATE_LIMIT_USER,
        ip_limit=settings.RATE_LIMIT_IP,
    )

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routers
app.include_router(auctions.router, prefix="/api/v1/auctions", tags=["auctions"])
app.include_router(bids.router, prefix="/api/v1/auctions", tags=["bids"])
app.include_router(watchers.router, prefix="/api/v1/auctions", tags=["watchers"])
app.include_router(bidders.router, prefix="/api/v1/bidders", tags=["bidders"])

# WebSocket router (no prefix, endpoints live under /ws)
app.include_router(ws.router, tags=["websocket"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
