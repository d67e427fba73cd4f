from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional
from datetime import datetime


# Auth Schemas
class LoginRequest(BaseModel):
    username: str = Field(..., description="MFL username")
    password: str = Field(..., description="MFL password")

    @field_validator("username")
    @classmethod
    def username_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("MFL username is required")
        return value

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        if not value:
            raise ValueError("MFL password is required")
        return value


class LeagueMembershipSchema(BaseModel):
    league_id: str
    league_name: str
    franchise_id: str
    franchise_name: str
    url: str


class LoginData(BaseModel):
    cookie: str
    username: str
    leagues: List[LeagueMembershipSchema]
    expiresAt: datetime


class SessionData(BaseModel):
    username: str
    leagues: List[LeagueMembershipSchema]
    expiresAt: datetime


class LeaguesData(BaseModel):
    leagues: List[LeagueMembershipSchema]


# Write Action Schemas
class LineupRequest(BaseModel):
    players: List[str] = Field(..., description="Player IDs to start")


class WaiverRequest(BaseModel):
    addPlayerId: str
    dropPlayerId: str


class TradeRequest(BaseModel):
    offeringPlayers: List[str]
    receivingFranchiseId: str
    requestedPlayers: List[str]


# Response Envelope
class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None

    def envelope(self) -> dict:
        """Build the response body, leaving out message/data when unset."""
        body = {"success": self.success}
        if self.message is not None:
            body["message"] = self.message
        if self.data is not None:
            body["data"] = self.data
        return body
