"""User data model for calavail."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class IdentityProvider(str, Enum):
    """Identity provider a user account signed up with."""
    CAL = "CAL"
    GOOGLE = "GOOGLE"
    SAML = "SAML"


class User(BaseModel):
    """User model for calavail."""
    
    id: str = Field(..., description="Unique user identifier")
    email: str = Field(..., description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    time_zone: str = Field(..., description="Account time zone (IANA)")
    identity_provider: IdentityProvider = Field(IdentityProvider.CAL, description="Identity provider the account signed up with")
    identity_provider_id: Optional[str] = Field(None, description="Legacy external id at the identity provider")
    email_verified: Optional[datetime] = Field(None, description="When the email address was verified")
    created_at: datetime = Field(..., description="User creation timestamp")
    updated_at: datetime = Field(..., description="User last update timestamp")
    
    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class LinkedAccount(BaseModel):
    """OAuth account linked to a user (provider tokens are never exposed)."""

    id: str
    user_id: str
    type: str = "oauth"
    provider: str = Field(..., description="Provider name, lower-case (e.g. 'google')")
    provider_account_id: str = Field(..., description="Account id at the provider")


class AuthSession(BaseModel):
    """Database-backed login session."""

    session_token: str
    user_id: str
    expires: datetime

    @property
    def is_expired(self) -> bool:
        return self.expires <= datetime.utcnow()


class VerificationToken(BaseModel):
    """Single-use verification token."""

    identifier: str
    token: str
    expires: datetime
