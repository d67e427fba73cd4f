"""
Session Store
In-memory MFL login sessions keyed by the credential MFL issues at login.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from apscheduler.triggers.interval import IntervalTrigger

from app.exceptions import (
    AppException,
    InvalidCredentialsError,
    LoginTimeoutError,
    SessionExpiredError,
)

logger = logging.getLogger(__name__)

SESSION_CLEANUP_JOB_ID = "session_cleanup"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LeagueMembership:
    """
    A league the user belongs to, as reported by MFL at login or refresh.

    Attributes:
        league_id: MFL league ID
        league_name: League display name
        franchise_id: The user's franchise (team) ID within the league
        franchise_name: The user's franchise name
        url: League home page on MFL
    """
    league_id: str
    league_name: str
    franchise_id: str
    franchise_name: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for API responses."""
        return {
            "league_id": self.league_id,
            "league_name": self.league_name,
            "franchise_id": self.franchise_id,
            "franchise_name": self.franchise_name,
            "url": self.url,
        }


@dataclass
class Session:
    """
    Authenticated MFL session.

    Attributes:
        credential: Opaque MFL credential, also the store key
        username: MFL username used at login
        expires_at: When the session stops being valid
        leagues: League memberships, replaced on refresh
    """
    credential: str
    username: str
    expires_at: datetime
    leagues: List[LeagueMembership] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def find_league(self, league_id: str) -> Optional[LeagueMembership]:
        """Find the membership for a league ID, if the user has one."""
        return next((league for league in self.leagues if league.league_id == league_id), None)


Authenticator = Callable[[str, str], Awaitable[str]]
LeagueFetcher = Callable[[str], Awaitable[List[LeagueMembership]]]


class SessionStore:
    """
    Process-wide store of MFL sessions.

    The credential exchange and league lookup are supplied by the caller, so
    the store itself never talks to MFL. Expired sessions are dropped when
    read and by a periodic sweep.
    """

    def __init__(
        self,
        authenticate: Authenticator,
        fetch_leagues: LeagueFetcher,
        session_ttl: timedelta = timedelta(hours=8),
        login_timeout: float = 8.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize session store.

        Args:
            authenticate: Exchanges username/password for an MFL credential
            fetch_leagues: Loads league memberships for a credential
            session_ttl: Session lifetime (default: 8 hours)
            login_timeout: Deadline for the credential exchange in seconds
            clock: Returns the current aware datetime (injectable for tests)
        """
        self._authenticate = authenticate
        self._fetch_leagues = fetch_leagues
        self.session_ttl = session_ttl
        self.login_timeout = login_timeout
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def login(self, username: str, password: str) -> Session:
        """
        Log in to MFL and create a session.

        Args:
            username: MFL username
            password: MFL password

        Returns:
            The stored Session

        Raises:
            LoginTimeoutError: If the credential exchange exceeds the login timeout
            InvalidCredentialsError: If MFL rejects the login or it fails otherwise
        """
        logger.info(f"Login attempt for username: {username}")

        try:
            credential = await asyncio.wait_for(
                self._authenticate(username, password), timeout=self.login_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Login timed out for {username} after {self.login_timeout}s")
            raise LoginTimeoutError()
        except AppException:
            raise
        except Exception as e:
            logger.error(f"Login error for {username}: {str(e)}")
            raise InvalidCredentialsError("Failed to login to MFL. Please check your credentials.")

        leagues = await self._load_leagues_best_effort(credential)

        session = Session(
            credential=credential,
            username=username,
            leagues=leagues,
            expires_at=self._clock() + self.session_ttl,
        )
        self._sessions[credential] = session
        logger.info(f"Session created for {username} with {len(leagues)} leagues")
        return session

    async def _load_leagues_best_effort(self, credential: str) -> List[LeagueMembership]:
        try:
            return await self._fetch_leagues(credential)
        except Exception as e:
            # A missing league list must not fail the login
            logger.warning(f"Fetch leagues failed during login, continuing without leagues: {str(e)}")
            return []

    def get(self, credential: str) -> Optional[Session]:
        """
        Get a live session.

        Returns:
            The session, or None if absent or expired (expired ones are removed)
        """
        session = self._sessions.get(credential)
        if session is None:
            return None

        if session.is_expired(self._clock()):
            del self._sessions[credential]
            logger.info(f"Session for {session.username} expired")
            return None

        return session

    def require(self, credential: Optional[str]) -> Session:
        """
        Get a live session or fail.

        Raises:
            SessionExpiredError: If there is no live session for the credential
        """
        session = self.get(credential) if credential else None
        if session is None:
            raise SessionExpiredError()
        return session

    def verify(self, credential: str) -> bool:
        """Check whether a credential has a live session."""
        return self.get(credential) is not None

    async def refresh_leagues(self, credential: str) -> List[LeagueMembership]:
        """
        Re-fetch and store the league list of a live session.

        Raises:
            SessionExpiredError: If there is no live session
            UpstreamFetchError: If MFL cannot be reached; stored leagues are kept
        """
        session = self.require(credential)
        leagues = await self._fetch_leagues(credential)

        # The session may have been logged out while the fetch was in flight
        current = self._sessions.get(credential)
        if current is session:
            session.leagues = leagues
        return leagues

    def logout(self, credential: str) -> None:
        """Remove a session. Unknown credentials are ignored."""
        session = self._sessions.pop(credential, None)
        if session is not None:
            logger.info(f"Session for {session.username} logged out")

    def all_sessions(self) -> List[Session]:
        """Get all stored sessions, including ones not yet swept."""
        return list(self._sessions.values())

    def cleanup_expired(self) -> int:
        """
        Remove every expired session.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        expired = [credential for credential, session in self._sessions.items() if session.is_expired(now)]
        for credential in expired:
            del self._sessions[credential]
        logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    async def _cleanup_job(self) -> None:
        self.cleanup_expired()

    def schedule_cleanup(self, scheduler, interval_minutes: int = 60) -> None:
        """
        Register the periodic expired-session sweep.

        Args:
            scheduler: APScheduler AsyncIOScheduler owned by the application
            interval_minutes: Sweep interval (default: hourly)
        """
        scheduler.add_job(
            self._cleanup_job,
            IntervalTrigger(minutes=interval_minutes),
            id=SESSION_CLEANUP_JOB_ID,
            name="Expired Session Cleanup",
            replace_existing=True,
        )
