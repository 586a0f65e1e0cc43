from pydantic import BaseModel, Field


class TokenData(BaseModel):
    sub: str | None = Field(
        default=None,
        description="Subject (user identifier) of the token",
    )
    email: str | None = Field(
        default=None,
        description="Email claim, when the issuer includes one",
    )


class CurrentUser(BaseModel):
    """Authenticated caller resolved from the bearer token."""

    id: str = Field(..., description="Unique identifier for the user")
    email: str | None = None
