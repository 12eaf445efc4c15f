"""
Unit tests for marketplace Pydantic models.

Tests validation of request models and the conversion of stored records
into response models.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.shared.app_models import (
    AppCreate,
    AppResponse,
    AppUpdate,
    BillingInterval,
    CredentialPair,
    CredentialRotation,
    PricingPlanCreate,
    PricingPlanUpdate,
    RatingSummary,
    ReviewCreate,
    ReviewUpdate,
    SessionResponse,
    SubscriptionCreate,
    TokenType,
    VerificationStatus
)


def app_record(**overrides):
    now = datetime.now(timezone.utc)
    record = {
        "id": 1,
        "user_id": 1,
        "name": "Calendar Sync",
        "description": "Keeps two calendars in sync",
        "homepage_url": "https://calendar.example.com/",
        "callback_url": "https://calendar.example.com/callback",
        "logo_url": None,
        "is_published": False,
        "is_listed": False,
        "verification_status": VerificationStatus.UNVERIFIED,
        "client_id": None,
        "client_secret": None,
        "created_at": now,
        "updated_at": now
    }
    record.update(overrides)
    return record


class TestCredentialValues:

    def test_credential_pair_is_frozen(self):
        pair = CredentialPair(client_id="a" * 32, client_secret="b" * 43)

        with pytest.raises(ValidationError):
            pair.client_secret = "changed"

    def test_credential_pair_rejects_empty_values(self):
        with pytest.raises(ValidationError):
            CredentialPair(client_id="", client_secret="secret")

    def test_rotation_defaults(self):
        rotation = CredentialRotation(
            application_id=3,
            credentials=CredentialPair(client_id="a" * 32, client_secret="b" * 43)
        )

        assert rotation.previous_client_id is None
        assert rotation.replace == "unconditional"


class TestAppCreate:

    def test_valid_app(self):
        app = AppCreate(
            name="  Calendar Sync ",
            description="Keeps calendars in sync",
            homepage_url="https://calendar.example.com",
            callback_url="http://localhost:3000/callback"
        )

        assert app.name == "Calendar Sync"
        assert app.logo_url is None
        assert str(app.callback_url) == "http://localhost:3000/callback"

    @pytest.mark.parametrize("url", ["not-a-url", "/callback", "mailto:dev@example.com", ""])
    def test_urls_must_be_absolute_http(self, url):
        with pytest.raises(ValidationError):
            AppCreate(name="App", description="d", homepage_url="https://a.example", callback_url=url)

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            AppCreate(name="   ", description="d", homepage_url="https://a.example", callback_url="https://a.example/cb")

    def test_update_is_partial(self):
        update = AppUpdate(is_listed=False)
        assert update.model_dump(exclude_unset=True) == {"is_listed": False}


class TestAppResponse:

    def test_from_record_hides_secret(self):
        response = AppResponse.from_record(app_record(client_id="c" * 32, client_secret="s" * 43))

        data = response.model_dump()
        assert "client_secret" not in data
        assert data["client_id"] == "c" * 32
        assert data["has_client_secret"] is True

    def test_from_record_without_credentials(self):
        response = AppResponse.from_record(app_record())

        assert response.client_id is None
        assert response.has_client_secret is False


class TestPricingPlans:

    def test_defaults(self):
        plan = PricingPlanCreate(name="Free", price=0)

        assert plan.billing_interval == BillingInterval.MONTHLY
        assert plan.features == []
        assert plan.is_public is True

    def test_blank_features_dropped(self):
        plan = PricingPlanCreate(name="Pro", price=5, features=["  A ", "", "   ", "B"])
        assert plan.features == ["A", "B"]

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            PricingPlanCreate(name="Pro", price=-0.01)

    def test_update_features_optional(self):
        assert PricingPlanUpdate(price=3).features is None


class TestOtherModels:

    def test_review_rating_range_not_enforced_by_model(self):
        """Out-of-range ratings reach the aggregator, which reports invalid_rating."""
        assert ReviewCreate(rating=9).rating == 9

    @pytest.mark.parametrize("rating", [True, "4", 5.0])
    def test_review_rating_is_not_coerced(self, rating):
        value = ReviewCreate(rating=rating).rating
        assert value == rating
        assert type(value) is type(rating)

    def test_review_update_tracks_omitted_text(self):
        assert ReviewUpdate(rating=3).model_fields_set == {"rating"}

    def test_review_text_length(self):
        with pytest.raises(ValidationError):
            ReviewCreate(rating=3, review_text="x" * 5001)

    def test_subscription_plan_id_positive(self):
        with pytest.raises(ValidationError):
            SubscriptionCreate(plan_id=0)

    def test_rating_summary_defaults(self):
        summary = RatingSummary()

        assert summary.histogram == [0, 0, 0, 0, 0]
        assert summary.percentages == [0.0] * 5

    def test_session_response(self):
        session = SessionResponse(access_token="tok", expires_in=3600, username="alice")

        assert session.token_type == TokenType.BEARER
        assert session.model_dump(mode="json")["token_type"] == "Bearer"
