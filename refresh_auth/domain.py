"""Data structures shared by the server and the client session."""

from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """The authenticated identity carried inside a token."""

    model_config = ConfigDict(frozen=True)

    id: int
    """User ID"""

    email: str
    """email address of the user"""

    name: str
    """display name"""


class Credential(BaseModel):
    """A login identifier with its secret."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    secret: str


class LoginRequest(BaseModel):
    """Body of ``POST /login``."""

    email: str
    password: str


class TokenResponse(BaseModel):
    """Body returned by login and refresh."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias='accessToken')
    user: Principal
