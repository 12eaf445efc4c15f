"""
Marketplace Server Routes

Route handlers for login sessions, application management, credential
regeneration, pricing plans, reviews, subscriptions and the public
marketplace listing.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Response

from ..shared.app_models import (
    AppCreate,
    AppResponse,
    AppUpdate,
    CredentialsResponse,
    ErrorResponse,
    MarketplaceListing,
    PlanDeletionResponse,
    PricingPlanCreate,
    PricingPlanResponse,
    PricingPlanUpdate,
    RatingSummary,
    ReviewCreate,
    ReviewResponse,
    ReviewUpdate,
    SessionResponse,
    SubscriptionCreate,
    SubscriptionResponse,
    UserProfile,
)
from ..shared.config import settings
from ..shared.credentials import CredentialIssuer
from ..shared.errors import ForbiddenError, NotFoundError
from ..shared.logging_utils import ComponentType, MessageType, create_logger
from ..shared.ratings import RatingAggregator
from ..shared.security import InputValidator
from .middleware import RequestAuthenticator
from .storage import MarketplaceStore, SessionStore, UserStore

logger = create_logger(ComponentType.MARKETPLACE.value)

user_store = UserStore()
session_store = SessionStore(ttl_minutes=settings.session_ttl_minutes)
marketplace_store = MarketplaceStore()
credential_issuer = CredentialIssuer(max_attempts=settings.credential_max_attempts)

require_user = RequestAuthenticator(session_store)
optional_user = RequestAuthenticator(session_store, required=False)

ERROR_RESPONSES = {
    401: {"description": "Missing or invalid session"},
    403: {"model": ErrorResponse, "description": "Caller does not own the record"},
    404: {"model": ErrorResponse, "description": "Record not found"},
}

REVIEW_TEXT_MAX_LENGTH = 5000

auth_router = APIRouter(tags=["auth"])
router = APIRouter(prefix="/api/oauth-apps", tags=["oauth-apps"], responses=ERROR_RESPONSES)


def _url_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Store URLs as plain strings."""
    return {
        key: str(value) if key.endswith('_url') and value is not None else value
        for key, value in data.items()
    }


def _visible_app(app_id: int, user: Optional[Dict]) -> Dict:
    """Published apps are visible to everyone, unpublished ones to their owner only."""
    app = marketplace_store.get_app(app_id)
    if not app['is_published'] and (user is None or user['id'] != app['user_id']):
        raise NotFoundError(f"Application {app_id} not found", error_code="app_not_found")
    return app


def _review_text(text: Optional[str]) -> Optional[str]:
    """Drop control characters from review text, keeping its whitespace."""
    if text is None:
        return None
    return InputValidator.sanitize_string(text, REVIEW_TEXT_MAX_LENGTH, strip=False)


def _listings(apps: List[Dict]) -> List[MarketplaceListing]:
    reviews = marketplace_store.ratings_by_app(app['id'] for app in apps)
    return [
        MarketplaceListing(
            rating=RatingAggregator.summarize(reviews[app['id']]),
            **AppResponse.from_record(app).model_dump()
        )
        for app in apps
    ]


# Sessions

@auth_router.post("/login", response_model=SessionResponse)
async def login(
    username: str = Form(..., description="Username for authentication"),
    password: str = Form(..., description="Password for authentication")
):
    """Authenticate a demo user and open a bearer session."""
    user = None
    if InputValidator.validate_username(username):
        user = user_store.authenticate(username, password)

    if not user:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "invalid_credentials",
                "error_description": "Invalid username or password"
            }
        )

    token = session_store.create_session(user)
    return SessionResponse(
        access_token=token,
        expires_in=int(session_store.ttl.total_seconds()),
        username=user['username']
    )


@auth_router.post("/logout", status_code=204)
async def logout(user: Dict = Depends(require_user)):
    """Revoke the caller's session."""
    session_store.revoke(user['session_token'])
    return Response(status_code=204)


@auth_router.get("/me", response_model=UserProfile)
async def me(user: Dict = Depends(require_user)):
    profile = user_store.get_user(user['username'])
    if profile is None:
        raise NotFoundError("User no longer exists", error_code="user_not_found")
    return UserProfile(**profile)


# Marketplace (declared before /{app_id} so the static paths win)

@router.get("/marketplace/list", response_model=List[MarketplaceListing])
async def marketplace_list(search: Optional[str] = Query(default=None, max_length=200)):
    """Published and listed apps, filtered by a case-insensitive search on name or description."""
    query = InputValidator.sanitize_string(search, max_length=200) if search else None
    apps = marketplace_store.list_marketplace_apps(query)
    return _listings(sorted(apps, key=lambda app: app['name'].lower()))


@router.get("/marketplace/top-rated", response_model=List[MarketplaceListing])
async def marketplace_top_rated(limit: int = Query(default=settings.listing_limit, ge=1, le=100)):
    """Listed apps ordered by average rating, ties broken by number of reviews."""
    listings = _listings(marketplace_store.list_marketplace_apps())
    listings.sort(key=lambda listing: (listing.rating.average, listing.rating.total), reverse=True)
    return listings[:limit]


@router.get("/marketplace/recent", response_model=List[MarketplaceListing])
async def marketplace_recent(limit: int = Query(default=settings.listing_limit, ge=1, le=100)):
    """Listed apps, newest first."""
    apps = marketplace_store.list_marketplace_apps()
    apps.sort(key=lambda app: (app['created_at'], app['id']), reverse=True)
    return _listings(apps[:limit])


@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def list_subscriptions(user: Dict = Depends(require_user)):
    return [SubscriptionResponse(**sub) for sub in marketplace_store.list_user_subscriptions(user['id'])]


# Applications

@router.get("/", response_model=List[AppResponse])
async def list_apps(user: Dict = Depends(require_user)):
    """Applications owned by the caller."""
    return [AppResponse.from_record(app) for app in marketplace_store.list_user_apps(user['id'])]


@router.post("/", response_model=AppResponse, status_code=201)
async def create_app(payload: AppCreate, user: Dict = Depends(require_user)):
    """Register a new application. Credentials are issued separately."""
    app = marketplace_store.create_app(user['id'], _url_fields(payload.model_dump()))
    return AppResponse.from_record(app)


@router.get("/{app_id}", response_model=AppResponse)
async def get_app(app_id: int, user: Optional[Dict] = Depends(optional_user)):
    return AppResponse.from_record(_visible_app(app_id, user))


@router.put("/{app_id}", response_model=AppResponse)
async def update_app(app_id: int, payload: AppUpdate, user: Dict = Depends(require_user)):
    marketplace_store.get_owned_app(app_id, user['id'])
    changes = {
        key: value for key, value in _url_fields(payload.model_dump(exclude_unset=True)).items()
        if value is not None or key == 'logo_url'
    }
    return AppResponse.from_record(marketplace_store.update_app(app_id, changes))


@router.delete("/{app_id}", status_code=204)
async def delete_app(app_id: int, user: Dict = Depends(require_user)):
    """Delete an application together with its plans, reviews and subscriptions."""
    marketplace_store.get_owned_app(app_id, user['id'])
    marketplace_store.delete_app(app_id)
    return Response(status_code=204)


@router.post("/{app_id}/publish", response_model=AppResponse)
async def publish_app(app_id: int, user: Dict = Depends(require_user)):
    marketplace_store.get_owned_app(app_id, user['id'])
    return AppResponse.from_record(marketplace_store.set_published(app_id, True))


@router.post("/{app_id}/unpublish", response_model=AppResponse)
async def unpublish_app(app_id: int, user: Dict = Depends(require_user)):
    marketplace_store.get_owned_app(app_id, user['id'])
    return AppResponse.from_record(marketplace_store.set_published(app_id, False))


@router.post("/{app_id}/credentials", response_model=CredentialsResponse)
async def regenerate_credentials(app_id: int, user: Dict = Depends(require_user)):
    """
    Issue or regenerate the application's client credentials.

    The previous pair stops being valid as soon as the new one is stored.
    The secret appears in this response only.
    """
    marketplace_store.get_owned_app(app_id, user['id'])
    current = marketplace_store.get_credentials(app_id)

    rotation = credential_issuer.regenerate(app_id, marketplace_store.all_client_ids(), current)
    app = marketplace_store.replace_credentials(rotation)

    logger.log_message(
        ComponentType.CREDENTIALS.value, ComponentType.CLIENT.value,
        (MessageType.CREDENTIAL_ISSUE if current is None else MessageType.CREDENTIAL_ROTATION).value,
        {
            "app_id": app_id,
            "user_id": user['id'],
            "client_id": rotation.credentials.client_id,
            "replaced_client_id": rotation.previous_client_id
        }
    )

    return CredentialsResponse(
        app_id=app_id,
        client_id=rotation.credentials.client_id,
        client_secret=rotation.credentials.client_secret,
        issued_at=app['updated_at'],
        replaced_client_id=rotation.previous_client_id
    )


# Pricing plans

@router.get("/{app_id}/pricing-plans", response_model=List[PricingPlanResponse])
async def list_pricing_plans(app_id: int, user: Optional[Dict] = Depends(optional_user)):
    """Public plans for everyone; the owner also sees private ones."""
    app = _visible_app(app_id, user)
    is_owner = user is not None and user['id'] == app['user_id']
    return [PricingPlanResponse(**plan) for plan in marketplace_store.list_plans(app_id, include_private=is_owner)]


@router.post("/{app_id}/pricing-plans", response_model=PricingPlanResponse, status_code=201)
async def create_pricing_plan(app_id: int, payload: PricingPlanCreate, user: Dict = Depends(require_user)):
    marketplace_store.get_owned_app(app_id, user['id'])
    return PricingPlanResponse(**marketplace_store.create_plan(app_id, payload.model_dump()))


@router.put("/pricing-plans/{plan_id}", response_model=PricingPlanResponse)
async def update_pricing_plan(plan_id: int, payload: PricingPlanUpdate, user: Dict = Depends(require_user)):
    plan = marketplace_store.get_plan(plan_id)
    marketplace_store.get_owned_app(plan['app_id'], user['id'])
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    return PricingPlanResponse(**marketplace_store.update_plan(plan_id, changes))


@router.delete("/pricing-plans/{plan_id}", response_model=PlanDeletionResponse)
async def delete_pricing_plan(plan_id: int, user: Dict = Depends(require_user)):
    """Delete a plan; its subscriptions are kept and flagged as orphaned."""
    plan = marketplace_store.get_plan(plan_id)
    marketplace_store.get_owned_app(plan['app_id'], user['id'])
    orphaned = marketplace_store.delete_plan(plan_id)
    return PlanDeletionResponse(plan_id=plan_id, orphaned_subscriptions=orphaned)


# Reviews

@router.get("/{app_id}/reviews", response_model=List[ReviewResponse])
async def list_reviews(app_id: int, user: Optional[Dict] = Depends(optional_user)):
    _visible_app(app_id, user)
    return [ReviewResponse(**review) for review in marketplace_store.list_reviews(app_id)]


@router.get("/{app_id}/reviews/summary", response_model=RatingSummary)
async def review_summary(app_id: int, user: Optional[Dict] = Depends(optional_user)):
    """Average rating, per-star histogram and percentages from stored reviews."""
    _visible_app(app_id, user)
    summary = RatingAggregator.summarize(marketplace_store.list_reviews(app_id))
    if summary.skipped:
        logger.log_message(
            ComponentType.RATINGS.value, ComponentType.MARKETPLACE.value,
            "Out Of Range Ratings Skipped",
            {"app_id": app_id, "skipped": summary.skipped, "total": summary.total},
            success=False
        )
    return summary


@router.get("/{app_id}/reviews/user", response_model=ReviewResponse)
async def get_user_review(app_id: int, user: Dict = Depends(require_user)):
    """The caller's own review of the application."""
    _visible_app(app_id, user)
    review = marketplace_store.find_user_review(app_id, user['id'])
    if review is None:
        raise NotFoundError("You have not reviewed this application", error_code="review_not_found")
    return ReviewResponse(**review)


@router.post("/{app_id}/reviews", response_model=ReviewResponse, status_code=201)
async def submit_review(app_id: int, payload: ReviewCreate, user: Dict = Depends(require_user)):
    _visible_app(app_id, user)

    candidate = {
        'user_id': user['id'],
        'rating': payload.rating,
        'review_text': _review_text(payload.review_text)
    }
    accepted = RatingAggregator.validate_submission(marketplace_store.list_reviews(app_id), candidate)
    review = marketplace_store.add_review(app_id, accepted)

    logger.log_message(
        ComponentType.CLIENT.value, ComponentType.MARKETPLACE.value,
        MessageType.REVIEW_SUBMISSION.value,
        {"app_id": app_id, "review_id": review['id'], "user_id": user['id'], "rating": review['rating']}
    )
    return ReviewResponse(**review)


@router.put("/reviews/{review_id}", response_model=ReviewResponse)
async def update_review(review_id: int, payload: ReviewUpdate, user: Dict = Depends(require_user)):
    review = marketplace_store.get_review(review_id)
    if review['user_id'] != user['id']:
        raise ForbiddenError("Only the author can edit this review")

    if 'review_text' in payload.model_fields_set:
        text = _review_text(payload.review_text)
    else:
        text = review['review_text']
    edited = RatingAggregator.validate_edit(review, payload.rating, text)
    return ReviewResponse(**marketplace_store.update_review(review_id, edited['rating'], edited['review_text']))


@router.delete("/reviews/{review_id}", status_code=204)
async def delete_review(review_id: int, user: Dict = Depends(require_user)):
    review = marketplace_store.get_review(review_id)
    if review['user_id'] != user['id']:
        raise ForbiddenError("Only the author can delete this review")
    marketplace_store.delete_review(review_id)
    return Response(status_code=204)


# Subscriptions

@router.post("/{app_id}/subscriptions", response_model=SubscriptionResponse, status_code=201)
async def subscribe(app_id: int, payload: SubscriptionCreate, user: Dict = Depends(require_user)):
    """Subscribe the caller to one of the application's plans. No billing happens."""
    app = _visible_app(app_id, user)
    plan = marketplace_store.get_plan(payload.plan_id)
    if plan['app_id'] != app_id or (not plan['is_public'] and user['id'] != app['user_id']):
        raise NotFoundError(f"Pricing plan {payload.plan_id} not found", error_code="plan_not_found")

    subscription = marketplace_store.create_subscription(user['id'], app_id, plan['id'])
    logger.log_message(
        ComponentType.CLIENT.value, ComponentType.MARKETPLACE.value,
        "Subscription Created",
        {"app_id": app_id, "plan_id": plan['id'], "user_id": user['id']}
    )
    return SubscriptionResponse(**subscription)
