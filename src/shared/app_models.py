"""
Pydantic models for the OAuth app marketplace.

This module defines the request and response models of the marketplace API
together with the value types returned by the credential issuer and the
rating aggregator.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator


class VerificationStatus(str, Enum):
    """Review state of a registered application."""
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"


class BillingInterval(str, Enum):
    """Pricing plan billing intervals."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """App subscription states."""
    ACTIVE = "active"
    CANCELLED = "cancelled"


class TokenType(str, Enum):
    """Session token types."""
    BEARER = "Bearer"


# Credential issuer values

class CredentialPair(BaseModel):
    """Opaque client identifier and secret issued to one application."""
    client_id: str = Field(..., min_length=1, description="Public client identifier")
    client_secret: str = Field(..., min_length=1, description="Client secret")

    model_config = ConfigDict(frozen=True)


class CredentialRotation(BaseModel):
    """
    New credentials for an application plus the replace directive.

    The store applies ``credentials`` as a single atomic replacement of
    whatever pair the application holds, guarded by ``previous_client_id``.
    """
    application_id: int
    credentials: CredentialPair
    previous_client_id: Optional[str] = None
    replace: str = "unconditional"

    model_config = ConfigDict(frozen=True)


# Rating aggregator values

class RatingSummary(BaseModel):
    """Aggregate of the ratings of one application."""
    average: float = Field(0.0, ge=0.0, le=5.0)
    total: int = Field(0, ge=0)
    histogram: List[int] = Field(
        default_factory=lambda: [0, 0, 0, 0, 0],
        description="Counts for 5, 4, 3, 2 and 1 stars"
    )
    percentages: List[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0, 0.0, 0.0],
        description="Share of each star count, ordered like histogram"
    )
    skipped: int = Field(0, ge=0, description="Stored ratings outside 1-5")


# Applications

class AppCreate(BaseModel):
    """Registration request for a new application."""
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    homepage_url: HttpUrl = Field(..., description="Application homepage")
    callback_url: HttpUrl = Field(..., description="OAuth callback URL")
    logo_url: Optional[HttpUrl] = Field(default=None, description="Logo image URL")

    @field_validator('name', 'description')
    @classmethod
    def strip_text(cls, v):
        """Reject names and descriptions made only of whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class AppUpdate(BaseModel):
    """Partial update of an application's metadata."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    homepage_url: Optional[HttpUrl] = None
    callback_url: Optional[HttpUrl] = None
    logo_url: Optional[HttpUrl] = None
    is_listed: Optional[bool] = None


class AppResponse(BaseModel):
    """Application as returned by the API; never includes the secret."""
    id: int
    user_id: int
    name: str
    description: str
    homepage_url: str
    callback_url: str
    logo_url: Optional[str] = None
    is_published: bool
    is_listed: bool
    verification_status: VerificationStatus
    client_id: Optional[str] = None
    has_client_secret: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: dict) -> "AppResponse":
        return cls(
            has_client_secret=record.get('client_secret') is not None,
            **{key: value for key, value in record.items() if key != 'client_secret'}
        )


class MarketplaceListing(AppResponse):
    """Published application with its rating summary."""
    rating: RatingSummary


class CredentialsResponse(BaseModel):
    """Freshly issued credentials, shown to the owner once."""
    app_id: int
    client_id: str
    client_secret: str
    issued_at: datetime
    replaced_client_id: Optional[str] = None


# Pricing plans

class PricingPlanCreate(BaseModel):
    """New pricing plan for an application."""
    name: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0, description="Price per billing interval")
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    features: List[str] = Field(default_factory=list)
    is_public: bool = True

    @field_validator('features')
    @classmethod
    def drop_blank_features(cls, v):
        """Keep feature order, dropping blank entries left over by forms."""
        return [feature.strip() for feature in v if feature and feature.strip()]


class PricingPlanUpdate(BaseModel):
    """Partial update of a pricing plan."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price: Optional[float] = Field(default=None, ge=0)
    billing_interval: Optional[BillingInterval] = None
    features: Optional[List[str]] = None
    is_public: Optional[bool] = None

    @field_validator('features')
    @classmethod
    def drop_blank_features(cls, v):
        if v is None:
            return v
        return [feature.strip() for feature in v if feature and feature.strip()]


class PricingPlanResponse(BaseModel):
    id: int
    app_id: int
    name: str
    price: float
    billing_interval: BillingInterval
    features: List[str]
    is_public: bool


class PlanDeletionResponse(BaseModel):
    """Outcome of deleting a plan; subscriptions are flagged, not removed."""
    plan_id: int
    orphaned_subscriptions: int


# Reviews

class ReviewCreate(BaseModel):
    """
    Review submission.

    The rating is passed through untouched; the rating aggregator decides
    what counts as a valid rating and reports anything else as
    ``invalid_rating``.
    """
    rating: Any
    review_text: Optional[str] = Field(default=None, max_length=5000)


class ReviewUpdate(BaseModel):
    """Review edit. Leaving out ``review_text`` keeps the stored text."""
    rating: Any
    review_text: Optional[str] = Field(default=None, max_length=5000)


class ReviewResponse(BaseModel):
    id: int
    app_id: int
    user_id: int
    rating: int
    review_text: str
    created_at: datetime
    updated_at: Optional[datetime] = None


# Subscriptions

class SubscriptionCreate(BaseModel):
    plan_id: int = Field(..., ge=1)


class SubscriptionResponse(BaseModel):
    id: int
    user_id: int
    app_id: int
    plan_id: int
    status: SubscriptionStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    orphaned: bool = False


# Sessions

class SessionResponse(BaseModel):
    """Bearer session issued by /login."""
    access_token: str = Field(..., min_length=1)
    token_type: TokenType = TokenType.BEARER
    expires_in: int = Field(..., ge=1, description="Session lifetime in seconds")
    username: str


class UserProfile(BaseModel):
    id: int
    username: str
    name: str
    email: str


class ErrorResponse(BaseModel):
    """
    Error response model.

    Mirrors the RFC 6749 error shape used by every marketplace endpoint.
    """
    error: str = Field(..., description="Error code")
    error_description: Optional[str] = Field(
        default=None,
        description="Human-readable error description"
    )
