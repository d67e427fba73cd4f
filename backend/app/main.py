from fastapi import FastAPI, Depends, Header, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from typing import Optional
from datetime import datetime, timedelta, timezone
import logging
import time

from app.core.config import settings
from app.exceptions import (
    AppException,
    SessionExpiredError,
    handle_app_exception,
    handle_generic_exception,
    handle_http_exception,
    handle_rate_limit_exception,
    handle_validation_exception,
)
from app.schemas import (
    ApiResponse,
    LeaguesData,
    LineupRequest,
    LoginData,
    LoginRequest,
    SessionData,
    TradeRequest,
    WaiverRequest,
)
from app.services.auth_service import AuthService
from app.services.mfl import InMemoryCache, MFLHTTPClient, MFLService, RateLimiter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

START_TIME = time.time()

app = FastAPI(
    title="MFL Proxy API",
    description="Session, cache and rate-limit proxy for the MyFantasyLeague API",
    version="1.0.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Inbound rate limit per client IP, applied to every route not marked exempt
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[lambda: settings.api_rate_limit],
    headers_enabled=True,
)
app.state.limiter = limiter

# =============================================================================
# CENTRALIZED ERROR HANDLING
# =============================================================================

@app.exception_handler(AppException)
async def app_exception_handler(request, exc: AppException):
    """Handle application-specific exceptions."""
    return handle_app_exception(exc, include_traceback=settings.DEBUG)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Handle request validation failures."""
    return handle_validation_exception(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Handle HTTP exceptions (including unknown routes) with standardized format."""
    return handle_http_exception(exc)


@app.exception_handler(RateLimitExceeded)
def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    """Handle inbound rate limit violations. SlowAPIMiddleware only calls sync handlers."""
    response = handle_rate_limit_exception(exc.detail)
    return limiter._inject_headers(response, request.state.view_rate_limit)


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc: Exception):
    """Handle all other exceptions and convert to standardized format."""
    return handle_generic_exception(exc, include_traceback=settings.DEBUG)

# Initialize services
cache = InMemoryCache(ttls=settings.cache_ttls)
rate_limiter = RateLimiter(max_requests_per_second=settings.MFL_MAX_REQUESTS_PER_SECOND)
mfl_client = MFLHTTPClient(
    base_url=settings.MFL_BASE_URL,
    timeout=settings.MFL_REQUEST_TIMEOUT,
    user_agent=settings.MFL_USER_AGENT,
)
mfl_service = MFLService(client=mfl_client, cache=cache, rate_limiter=rate_limiter)
auth_service = AuthService(
    client=mfl_client,
    mfl_service=mfl_service,
    session_ttl=timedelta(hours=settings.SESSION_TTL_HOURS),
    login_timeout=settings.MFL_LOGIN_TIMEOUT,
)

# Scheduler for session sweep and cache housekeeping
scheduler = AsyncIOScheduler()

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_mfl_service() -> MFLService:
    return mfl_service


def get_auth_service() -> AuthService:
    return auth_service


def require_cookie(x_mfl_cookie: Optional[str] = Header(None, alias="X-MFL-Cookie")) -> str:
    """Read the MFL credential header, failing when it is missing."""
    if not x_mfl_cookie:
        raise SessionExpiredError("No session cookie provided")
    return x_mfl_cookie


def _leagues(leagues):
    return [league.to_dict() for league in leagues]


@app.get("/")
@limiter.exempt
async def root():
    return {
        "message": "MFL Proxy API",
        "version": "1.0.0",
        "status": "operational",
    }


@app.get("/health")
@limiter.exempt
async def health_check():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.time() - START_TIME, 1),
    }


# =============================================================================
# AUTH & SESSION ENDPOINTS
# =============================================================================

@app.post("/api/auth/login")
async def login(request: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Log in with MFL credentials and open a proxy session."""
    session = await auth.login(request.username, request.password)
    data = LoginData(
        cookie=session.credential,
        username=session.username,
        leagues=_leagues(session.leagues),
        expiresAt=session.expires_at,
    )
    return ApiResponse(message="Login successful", data=data).envelope()


@app.get("/api/auth/session")
async def get_session(
    cookie: str = Depends(require_cookie),
    auth: AuthService = Depends(get_auth_service),
):
    session = auth.get_session(cookie)
    data = SessionData(
        username=session.username,
        leagues=_leagues(session.leagues),
        expiresAt=session.expires_at,
    )
    return ApiResponse(data=data).envelope()


@app.get("/api/auth/refresh-leagues")
async def refresh_leagues(
    cookie: str = Depends(require_cookie),
    auth: AuthService = Depends(get_auth_service),
):
    leagues = await auth.refresh_leagues(cookie)
    return ApiResponse(data=LeaguesData(leagues=_leagues(leagues))).envelope()


@app.post("/api/auth/logout")
async def logout(
    x_mfl_cookie: Optional[str] = Header(None, alias="X-MFL-Cookie"),
    auth: AuthService = Depends(get_auth_service),
):
    if x_mfl_cookie:
        auth.logout(x_mfl_cookie)
    return ApiResponse(message="Logged out successfully").envelope()


@app.post("/api/auth/{league_id}/lineup")
async def set_lineup(
    league_id: str,
    request: LineupRequest,
    cookie: str = Depends(require_cookie),
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.set_lineup(cookie, league_id, request.players)
    return ApiResponse(message="Lineup updated successfully", data=result).envelope()


@app.post("/api/auth/{league_id}/waiver")
async def submit_waiver(
    league_id: str,
    request: WaiverRequest,
    cookie: str = Depends(require_cookie),
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.submit_waiver(
        cookie, league_id, request.addPlayerId, request.dropPlayerId
    )
    return ApiResponse(message="Waiver claim submitted", data=result).envelope()


@app.post("/api/auth/{league_id}/trade")
async def propose_trade(
    league_id: str,
    request: TradeRequest,
    cookie: str = Depends(require_cookie),
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.propose_trade(
        cookie,
        league_id,
        request.offeringPlayers,
        request.receivingFranchiseId,
        request.requestedPlayers,
    )
    return ApiResponse(message="Trade proposed successfully", data=result).envelope()


# =============================================================================
# CACHED MFL DATA ENDPOINTS
# =============================================================================

@app.get("/api/mfl/leagues/{league_id}")
async def get_league(league_id: str, mfl: MFLService = Depends(get_mfl_service)):
    return ApiResponse(data=await mfl.get_league(league_id)).envelope()


@app.get("/api/mfl/leagues/{league_id}/rosters")
async def get_rosters(
    league_id: str,
    franchise_id: Optional[str] = Query(None, alias="franchiseId"),
    mfl: MFLService = Depends(get_mfl_service),
):
    return ApiResponse(data=await mfl.get_rosters(league_id, franchise_id)).envelope()


@app.get("/api/mfl/leagues/{league_id}/scores")
async def get_player_scores(
    league_id: str,
    week: str = Query(..., pattern=r"^\d+$"),
    mfl: MFLService = Depends(get_mfl_service),
):
    return ApiResponse(data=await mfl.get_player_scores(league_id, week)).envelope()


@app.get("/api/mfl/leagues/{league_id}/standings")
async def get_standings(league_id: str, mfl: MFLService = Depends(get_mfl_service)):
    return ApiResponse(data=await mfl.get_standings(league_id)).envelope()


@app.get("/api/mfl/leagues/{league_id}/transactions")
async def get_transactions(
    league_id: str,
    trans_type: Optional[str] = Query(None, alias="type", pattern="^(WAIVER|TRADE|BBID_WAIVER|IR)$"),
    days: str = Query("7", pattern=r"^\d+$"),
    mfl: MFLService = Depends(get_mfl_service),
):
    return ApiResponse(data=await mfl.get_transactions(league_id, trans_type, days)).envelope()


@app.get("/api/mfl/leagues/{league_id}/schedule")
async def get_schedule(league_id: str, mfl: MFLService = Depends(get_mfl_service)):
    return ApiResponse(data=await mfl.get_schedule(league_id)).envelope()


@app.get("/api/mfl/players")
async def get_players(
    position: Optional[str] = None,
    details: bool = False,
    mfl: MFLService = Depends(get_mfl_service),
):
    return ApiResponse(data=await mfl.get_players(position, details)).envelope()


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

@app.get("/api/cache/status")
async def get_cache_status(mfl: MFLService = Depends(get_mfl_service)):
    """
    Get cache statistics for debugging.
    """
    return ApiResponse(data=mfl.get_cache_stats()).envelope()


@app.post("/api/cache/invalidate/{league_id}")
async def invalidate_league_cache(league_id: str, mfl: MFLService = Depends(get_mfl_service)):
    removed = mfl.invalidate_league_cache(league_id)
    return ApiResponse(
        message=f"Cache invalidated for league {league_id}",
        data={"removed": removed},
    ).envelope()


@app.post("/api/cache/flush")
async def flush_cache(mfl: MFLService = Depends(get_mfl_service)):
    mfl.cache.flush()
    return ApiResponse(message="Cache flushed").envelope()


# =============================================================================
# LIFECYCLE
# =============================================================================

async def purge_expired_cache():
    cache.purge_expired()


async def log_cache_stats():
    cache.log_stats()


@app.on_event("startup")
async def startup_event():
    """Start session sweep and cache housekeeping jobs"""
    auth_service.sessions.schedule_cleanup(
        scheduler, interval_minutes=settings.SESSION_CLEANUP_INTERVAL_MINUTES
    )
    scheduler.add_job(
        purge_expired_cache,
        IntervalTrigger(seconds=settings.CACHE_CHECK_PERIOD_SECONDS),
        id='cache_purge',
        name='Expired Cache Purge',
        replace_existing=True
    )
    if settings.is_development:
        scheduler.add_job(
            log_cache_stats,
            IntervalTrigger(minutes=1),
            id='cache_stats',
            name='Cache Statistics Log',
            replace_existing=True
        )
    scheduler.start()
    logger.info(
        f"MFL proxy started ({settings.MODE}) against {settings.MFL_BASE_URL}, "
        f"{settings.MFL_MAX_REQUESTS_PER_SECOND} upstream requests/s"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown scheduler, request queue and HTTP client"""
    try:
        scheduler.shutdown(wait=False)
        await mfl_service.close()
        logger.info("Scheduler and MFL client shut down")
    except Exception as e:
        logger.warning(f"Error during shutdown: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
