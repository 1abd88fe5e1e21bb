"""
TokenTribute Backend - FastAPI Application

Donation ledger and Ethos profile lookups for the TokenTribute dapp.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from tribute.routers import donations, stats, profiles
from tribute.config import get_settings
from tribute.logger import configure_logger

logger = configure_logger("tribute")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "TokenTribute API starting up",
        extra={"chain_id": settings.chain_id, "min_score": settings.donation_min_score}
    )
    yield
    logger.info("TokenTribute API shutting down")


app = FastAPI(
    title="TokenTribute API",
    description="""
    Send USDC to highly rated members of the Ethos network.

    ## Features
    - Donations are gated by a minimum Ethos credibility score
    - Each confirmed transfer is recorded once, however often it is reported
    - Public donation feed, per-recipient and per-donor history
    - Platform statistics and a duplicate audit
    """,
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(donations.router)
app.include_router(stats.router)
app.include_router(profiles.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "TokenTribute API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    settings = get_settings()

    return {
        "status": "healthy",
        "supabase_configured": bool(settings.supabase_url and settings.supabase_key),
        "usdc_configured": bool(settings.usdc_contract_address),
        "chain_id": settings.chain_id,
        "donation_min_score": settings.donation_min_score,
        "listing_min_score": settings.listing_min_score
    }
