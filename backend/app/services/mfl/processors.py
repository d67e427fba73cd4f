"""
MFL Data Processors
Unwrap and normalize MFL API responses.
"""

import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Optional
import logging

from app.exceptions import MalformedResponseError
from app.services.session_store import LeagueMembership

logger = logging.getLogger(__name__)

ENVELOPE_METADATA_KEYS = frozenset({"version", "encoding"})

MFL_USER_ID_PATTERN = re.compile(r"MFL_USER_ID=([^;]+)")


class MFLDataProcessor:
    """
    Transform and normalize MFL API responses.

    MFL read endpoints answer with JSON shaped like
    {"version": ..., "encoding": ..., "<payload name>": {...}}, while login
    and write actions answer with small XML documents.
    """

    @staticmethod
    def extract_payload(response: Any) -> Any:
        """
        Strip the MFL response envelope.

        The payload is the one key that is neither "version" nor "encoding".
        Responses with no such key, or with more than one, are rejected
        rather than guessed at.

        Args:
            response: Decoded JSON body of an MFL export call

        Returns:
            The value stored under the payload key

        Raises:
            MalformedResponseError: If the envelope does not have exactly one payload key
        """
        if not isinstance(response, dict):
            raise MalformedResponseError(
                "Invalid MFL response format",
                details={"reason": f"expected JSON object, got {type(response).__name__}"},
            )

        candidates = [key for key in response if key not in ENVELOPE_METADATA_KEYS]
        if len(candidates) != 1:
            reason = "no payload key" if not candidates else "multiple payload keys"
            raise MalformedResponseError(
                "Invalid MFL response format",
                details={"reason": reason, "keys": sorted(response.keys())},
            )

        return response[candidates[0]]

    @staticmethod
    def parse_xml(body: str) -> ET.Element:
        """
        Parse an MFL XML response body.

        Raises:
            MalformedResponseError: If the body is not well-formed XML
        """
        try:
            return ET.fromstring(body)
        except ET.ParseError as e:
            raise MalformedResponseError(
                "Invalid MFL XML response", details={"reason": str(e)}
            )

    @classmethod
    def xml_to_dict(cls, element: ET.Element) -> Dict[str, Any]:
        """
        Convert an XML document into plain JSON-friendly data.

        Attributes become keys, child elements are grouped by tag (a list
        when a tag repeats) and non-blank text is kept under "text".

        Returns:
            {root_tag: converted_root}
        """
        return {element.tag: cls._element_to_value(element)}

    @classmethod
    def _element_to_value(cls, element: ET.Element) -> Dict[str, Any]:
        value: Dict[str, Any] = dict(element.attrib)
        for child in element:
            converted = cls._element_to_value(child)
            if child.tag in value:
                existing = value[child.tag]
                if not isinstance(existing, list):
                    value[child.tag] = [existing]
                value[child.tag].append(converted)
            else:
                value[child.tag] = converted
        text = (element.text or "").strip()
        if text:
            value["text"] = text
        return value

    @staticmethod
    def error_message(root: ET.Element) -> Optional[str]:
        """
        Get the embedded error of an MFL XML response.

        Returns:
            The error text (possibly empty) when the document is an <error>
            response, None otherwise
        """
        if root.tag != "error":
            return None
        return (root.text or "").strip()

    @staticmethod
    def extract_user_id(root: Optional[ET.Element]) -> Optional[str]:
        """Read MFL_USER_ID from a login <status> response."""
        if root is None or root.tag != "status":
            return None
        return root.get("MFL_USER_ID") or None

    @staticmethod
    def extract_user_id_from_cookies(set_cookie_headers: Iterable[str]) -> Optional[str]:
        """Find MFL_USER_ID among Set-Cookie header values."""
        for header in set_cookie_headers:
            match = MFL_USER_ID_PATTERN.search(header)
            if match:
                return match.group(1)
        return None

    @staticmethod
    def parse_user_leagues(data: Dict) -> List[LeagueMembership]:
        """
        Extract the user's league memberships from a myleagues export.

        MFL returns a single object instead of a list when the user belongs
        to exactly one league.

        Args:
            data: Decoded JSON body of export?TYPE=myleagues

        Returns:
            List of LeagueMembership snapshots (empty if the user has none)
        """
        leagues = (data or {}).get("leagues") or {}
        raw = leagues.get("league") if isinstance(leagues, dict) else None
        if not raw:
            return []
        if isinstance(raw, dict):
            raw = [raw]

        memberships = []
        for league in raw:
            franchise_id = str(league.get("franchise_id", ""))
            memberships.append(
                LeagueMembership(
                    league_id=str(league.get("league_id", "")),
                    league_name=league.get("name", ""),
                    franchise_id=franchise_id,
                    franchise_name=league.get("franchise_name") or f"Team {franchise_id}",
                    url=league.get("url", ""),
                )
            )
        return memberships
