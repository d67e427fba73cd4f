"""
MFL Auth Service
Login handshake, session lifecycle and write actions (lineup, waiver, trade).
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from app.exceptions import (
    InvalidCredentialsError,
    LeagueNotFoundError,
    LoginTimeoutError,
    MalformedResponseError,
    RequestRejectedError,
    UpstreamFetchError,
)
from app.services.mfl.client import MFLHTTPClient
from app.services.mfl.processors import MFLDataProcessor
from app.services.mfl.service import EXPORT_ENDPOINT, MFLService
from app.services.session_store import LeagueMembership, Session, SessionStore

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "login"


class AuthService:
    """
    Orchestrates MFL authentication and authenticated write actions.

    Owns the SessionStore and supplies it with the MFL credential exchange
    and league lookup. Write actions go straight to MFL with the session
    credential (they are not queued or cached) and invalidate the league's
    cached data on success.
    """

    def __init__(
        self,
        client: MFLHTTPClient,
        mfl_service: Optional[MFLService] = None,
        session_ttl: timedelta = timedelta(hours=8),
        login_timeout: float = 8.0,
        session_store: Optional[SessionStore] = None,
    ) -> None:
        """
        Initialize auth service.

        Args:
            client: HTTP client for MFL
            mfl_service: Optional read service whose cache is invalidated after writes
            session_ttl: Session lifetime
            login_timeout: Deadline for the login handshake in seconds
            session_store: Optional pre-built store (defaults to one wired to this service)
        """
        self.client = client
        self.mfl_service = mfl_service
        self.processor = MFLDataProcessor()
        self.sessions = session_store or SessionStore(
            authenticate=self.authenticate,
            fetch_leagues=self.fetch_user_leagues,
            session_ttl=session_ttl,
            login_timeout=login_timeout,
        )

    # ==================== Handshake ====================

    async def authenticate(self, username: str, password: str) -> str:
        """
        Exchange MFL username/password for an MFL credential.

        The credential is taken from the MFL_USER_ID attribute of the XML
        <status> response, falling back to the MFL_USER_ID Set-Cookie header.

        Returns:
            Credential string of the form "MFL_USER_ID=<id>"

        Raises:
            InvalidCredentialsError: If MFL rejects the login
            LoginTimeoutError: If MFL does not answer in time
        """
        try:
            response = await self.client.post_form(
                LOGIN_ENDPOINT,
                {"USERNAME": username, "PASSWORD": password, "XML": 1},
            )
        except httpx.TimeoutException:
            raise LoginTimeoutError("MFL login timeout. Please try again.")
        except httpx.HTTPError as e:
            logger.error(f"MFL authentication error: {str(e)}")
            raise InvalidCredentialsError("MFL authentication failed. Please check your credentials.")

        if response.status_code in (401, 403):
            raise InvalidCredentialsError()
        if response.status_code >= 500:
            logger.error(f"MFL login returned HTTP {response.status_code}")
            raise InvalidCredentialsError("MFL authentication failed. Please check your credentials.")

        try:
            root = self.processor.parse_xml(response.text)
        except MalformedResponseError:
            logger.info("Login XML parsing failed, trying headers")
            root = None

        if root is not None and self.processor.error_message(root) is not None:
            raise InvalidCredentialsError()

        user_id = self.processor.extract_user_id(root)
        if user_id is None:
            user_id = self.processor.extract_user_id_from_cookies(
                response.headers.get_list("set-cookie")
            )
        if user_id is None:
            raise InvalidCredentialsError()

        logger.info(f"MFL authentication successful for {username}")
        return f"MFL_USER_ID={user_id}"

    async def fetch_user_leagues(self, credential: str) -> List[LeagueMembership]:
        """
        Load the leagues the credential's owner belongs to.

        Raises:
            UpstreamFetchError: If MFL cannot be reached
        """
        data = await self.client.get_json(
            EXPORT_ENDPOINT, {"TYPE": "myleagues"}, cookie=credential
        )
        leagues = self.processor.parse_user_leagues(data)
        logger.info(f"Leagues fetched: {len(leagues)}")
        return leagues

    # ==================== Sessions ====================

    async def login(self, username: str, password: str) -> Session:
        """Log in to MFL and create a session."""
        return await self.sessions.login(username, password)

    def get_session(self, credential: str) -> Session:
        """
        Get the live session for a credential.

        Raises:
            SessionExpiredError: If there is none
        """
        return self.sessions.require(credential)

    async def refresh_leagues(self, credential: str) -> List[LeagueMembership]:
        """Re-fetch the league list for a live session."""
        return await self.sessions.refresh_leagues(credential)

    def logout(self, credential: str) -> None:
        """Remove a session."""
        self.sessions.logout(credential)

    # ==================== Write actions ====================

    def _resolve_league(self, credential: str, league_id: str) -> LeagueMembership:
        session = self.sessions.require(credential)
        league = session.find_league(league_id)
        if league is None:
            raise LeagueNotFoundError(league_id)
        return league

    async def _post_action(
        self,
        credential: str,
        league: LeagueMembership,
        fields: Dict[str, Any],
        action: str,
    ) -> Dict[str, Any]:
        """
        Send one write action to MFL and check for an embedded error.

        Args:
            credential: Session credential sent as cookie
            league: Membership the action applies to
            fields: Action-specific form fields
            action: Human-readable action name for messages

        Returns:
            The MFL XML response converted to a dictionary

        Raises:
            RequestRejectedError: If MFL answers with an <error> document
            UpstreamFetchError: If MFL cannot be reached or returns a non-2xx status
        """
        form = {"L": league.league_id, "FRANCHISE_ID": league.franchise_id, **fields, "XML": 1}

        try:
            response = await self.client.post_form(EXPORT_ENDPOINT, form, cookie=credential)
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.error(f"{action} timed out for league {league.league_id}")
            raise UpstreamFetchError(f"Failed to {action}: MFL request timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"{action} failed for league {league.league_id}: HTTP {e.response.status_code}")
            raise UpstreamFetchError(f"Failed to {action}", upstream_status=e.response.status_code)
        except httpx.HTTPError as e:
            logger.error(f"{action} error for league {league.league_id}: {str(e)}")
            raise UpstreamFetchError(f"Failed to {action}: {str(e)}")

        root = self.processor.parse_xml(response.text)
        error = self.processor.error_message(root)
        if error is not None:
            logger.warning(f"MFL rejected {action} for league {league.league_id}: {error}")
            raise RequestRejectedError(error or f"Failed to {action}")

        if self.mfl_service is not None:
            self.mfl_service.invalidate_league_cache(league.league_id)

        return self.processor.xml_to_dict(root)

    async def set_lineup(self, credential: str, league_id: str, players: List[str]) -> Dict[str, Any]:
        """
        Set the starting lineup of the user's franchise.

        Args:
            credential: Session credential
            league_id: MFL league ID
            players: Player IDs to start
        """
        league = self._resolve_league(credential, league_id)
        return await self._post_action(
            credential,
            league,
            {"TYPE": "roster", "PLAYERS": ",".join(players)},
            "set lineup",
        )

    async def submit_waiver(
        self,
        credential: str,
        league_id: str,
        add_player_id: str,
        drop_player_id: str,
    ) -> Dict[str, Any]:
        """Submit a waiver claim adding one player and dropping another."""
        league = self._resolve_league(credential, league_id)
        return await self._post_action(
            credential,
            league,
            {"TYPE": "waiver", "ADD": add_player_id, "DROP": drop_player_id},
            "submit waiver",
        )

    async def propose_trade(
        self,
        credential: str,
        league_id: str,
        offering_players: List[str],
        receiving_franchise_id: str,
        requested_players: List[str],
    ) -> Dict[str, Any]:
        """Propose a trade to another franchise in the same league."""
        league = self._resolve_league(credential, league_id)
        return await self._post_action(
            credential,
            league,
            {
                "TYPE": "tradeBait",
                "OFFERED_PLAYERS": ",".join(offering_players),
                "FRANCHISE_ID2": receiving_franchise_id,
                "REQUESTED_PLAYERS": ",".join(requested_players),
            },
            "propose trade",
        )
