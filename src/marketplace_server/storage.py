"""
Marketplace Storage Components

In-memory storage for user accounts, login sessions and the marketplace
records: applications, pricing plans, reviews and subscriptions.

Every mutation of MarketplaceStore runs under a single re-entrant lock, which
makes each one atomic. That is what the credential replacement and the
one-review-per-user rule rely on when requests race.
"""

import itertools
import threading
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..shared.app_models import (
    CredentialPair,
    CredentialRotation,
    SubscriptionStatus,
    VerificationStatus,
)
from ..shared.errors import (
    CredentialConflictError,
    DuplicateReviewError,
    ForbiddenError,
    NotFoundError,
)
from ..shared.logging_utils import ComponentType, create_logger
from ..shared.security import TokenGenerator, verify_password

logger = create_logger(ComponentType.STORE.value)


def _now() -> datetime:
    return datetime.utcnow()


class UserStore:
    """
    In-memory user accounts with bcrypt password hashes.

    Holds the demo accounts; registration is handled elsewhere in a real
    deployment.
    """

    def __init__(self):
        # bcrypt hashes (12 rounds) of the demo passwords
        self._users = {
            'alice': {
                'id': 1,
                'password_hash': '$2b$12$zEqBNh.ZsPPLu.ClJz4iie1DKx/x9PmUTyWKkhjt0ZaEM.S8exmRi',  # password123
                'email': 'alice@example.com',
                'name': 'Alice Demo'
            },
            'bob': {
                'id': 2,
                'password_hash': '$2b$12$0Z9Tioq6ocOvzV9OpFj76uvZizUWgEFjkY7r3IJBU6ax8pEIlVwnq',  # secret456
                'email': 'bob@example.com',
                'name': 'Bob Demo'
            },
            'carol': {
                'id': 3,
                'password_hash': '$2b$12$UuwsKCjRv4/Ml6xXddJBA.EhFBKAog0XFPx4JcLJ5Ig21Alct2nbu',  # mypass789
                'email': 'carol@example.com',
                'name': 'Carol Demo'
            }
        }

    @staticmethod
    def _profile(username: str, user: Dict) -> Dict:
        return {
            'id': user['id'],
            'username': username,
            'email': user['email'],
            'name': user['name']
        }

    def authenticate(self, username: str, password: str) -> Optional[Dict]:
        """
        Authenticate user credentials using bcrypt verification.

        Returns:
            Optional[Dict]: User profile if authentication succeeds, None otherwise
        """
        user = self._users.get(username)
        if not user or not verify_password(password, user['password_hash']):
            # Same outcome whether or not the user exists
            logger.log_user_auth(username, False, {"reason": "invalid_credentials"})
            return None

        logger.log_user_auth(username, True, {"user_id": user['id']})
        return self._profile(username, user)

    def get_user(self, username: str) -> Optional[Dict]:
        """Get user profile without the password hash."""
        user = self._users.get(username)
        if not user:
            return None
        return self._profile(username, user)

    def get_demo_accounts(self) -> List[Dict]:
        """Demo account usernames and passwords for the service information page."""
        return [
            {"username": "alice", "password": "password123"},
            {"username": "bob", "password": "secret456"},
            {"username": "carol", "password": "mypass789"}
        ]


class SessionStore:
    """
    Bearer sessions created by /login.

    Sessions expire after a fixed lifetime and are removed lazily when an
    expired token is presented.
    """

    def __init__(self, ttl_minutes: int = 60):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._sessions: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def create_session(self, user: Dict) -> str:
        """Create a session for an authenticated user and return its token."""
        token = TokenGenerator.generate_session_token()
        created_at = _now()

        with self._lock:
            self._sessions[token] = {
                'user': dict(user),
                'created_at': created_at,
                'expires_at': created_at + self.ttl
            }

        logger.log_message(
            ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
            "Session Created",
            {
                "session_token": token,
                "user_id": user['id'],
                "expires_in_seconds": int(self.ttl.total_seconds())
            }
        )
        return token

    def resolve(self, token: str) -> Optional[Dict]:
        """Return the session's user, or None for unknown or expired tokens."""
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None

            if _now() > session['expires_at']:
                del self._sessions[token]
                logger.log_message(
                    ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
                    "Session Expired",
                    {"session_token": token, "user_id": session['user']['id']}
                )
                return None

            return dict(session['user'])

    def revoke(self, token: str) -> bool:
        """Remove a session. Returns False if the token was unknown."""
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def reset(self) -> None:
        with self._lock:
            self._sessions.clear()

    def get_active_sessions_count(self) -> int:
        now = _now()
        with self._lock:
            return sum(1 for session in self._sessions.values() if now <= session['expires_at'])


class MarketplaceStore:
    """
    In-memory persistence for applications and their dependent records.

    Records are plain dicts; callers receive copies, so nothing outside the
    store can change stored state without going through a method.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        """Drop every record and restart id sequences."""
        with self._lock:
            self._apps: Dict[int, Dict] = {}
            self._plans: Dict[int, Dict] = {}
            self._reviews: Dict[int, Dict] = {}
            self._subscriptions: Dict[int, Dict] = {}
            self._app_ids = itertools.count(1)
            self._plan_ids = itertools.count(1)
            self._review_ids = itertools.count(1)
            self._subscription_ids = itertools.count(1)

    # Applications

    def create_app(self, user_id: int, data: Dict) -> Dict:
        """Create an unpublished, unverified application with no credentials."""
        with self._lock:
            now = _now()
            app = {
                'id': next(self._app_ids),
                'user_id': user_id,
                'name': data['name'],
                'description': data['description'],
                'homepage_url': data['homepage_url'],
                'callback_url': data['callback_url'],
                'logo_url': data.get('logo_url'),
                'is_published': False,
                'is_listed': False,
                'verification_status': VerificationStatus.UNVERIFIED,
                'client_id': None,
                'client_secret': None,
                'created_at': now,
                'updated_at': now
            }
            self._apps[app['id']] = app

        logger.log_message(
            ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
            "Application Created",
            {"app_id": app['id'], "user_id": user_id, "name": app['name']}
        )
        return dict(app)

    def _require_app(self, app_id: int) -> Dict:
        app = self._apps.get(app_id)
        if app is None:
            raise NotFoundError(f"Application {app_id} not found", error_code="app_not_found")
        return app

    def get_app(self, app_id: int) -> Dict:
        with self._lock:
            return dict(self._require_app(app_id))

    def get_owned_app(self, app_id: int, user_id: int) -> Dict:
        """Get an application, raising ForbiddenError unless user_id owns it."""
        with self._lock:
            app = self._require_app(app_id)
            if app['user_id'] != user_id:
                raise ForbiddenError(f"Application {app_id} belongs to another user")
            return dict(app)

    def list_user_apps(self, user_id: int) -> List[Dict]:
        with self._lock:
            return [dict(app) for app in self._apps.values() if app['user_id'] == user_id]

    def update_app(self, app_id: int, changes: Dict) -> Dict:
        """Apply metadata changes. Credential fields are not writable here."""
        allowed = {'name', 'description', 'homepage_url', 'callback_url', 'logo_url',
                   'is_listed', 'is_published', 'verification_status'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        with self._lock:
            app = self._require_app(app_id)
            app.update(changes)
            app['updated_at'] = _now()
            return dict(app)

    def set_published(self, app_id: int, published: bool) -> Dict:
        """Publish (and list) or unpublish (and unlist) an application."""
        return self.update_app(app_id, {'is_published': published, 'is_listed': published})

    def delete_app(self, app_id: int) -> Dict[str, int]:
        """Delete an application with its plans, reviews and subscriptions."""
        with self._lock:
            self._require_app(app_id)
            del self._apps[app_id]

            removed = {}
            for name, table in (('pricing_plans', self._plans),
                                ('reviews', self._reviews),
                                ('subscriptions', self._subscriptions)):
                doomed = [record_id for record_id, record in table.items() if record['app_id'] == app_id]
                for record_id in doomed:
                    del table[record_id]
                removed[name] = len(doomed)

        logger.log_message(
            ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
            "Application Deleted",
            {"app_id": app_id, **removed}
        )
        return removed

    # Credentials

    def all_client_ids(self) -> set:
        with self._lock:
            return {app['client_id'] for app in self._apps.values() if app['client_id']}

    def get_credentials(self, app_id: int) -> Optional[CredentialPair]:
        with self._lock:
            app = self._require_app(app_id)
            if app['client_id'] is None:
                return None
            return CredentialPair(client_id=app['client_id'], client_secret=app['client_secret'])

    def replace_credentials(self, rotation: CredentialRotation) -> Dict:
        """
        Atomically replace an application's credential pair.

        The replacement only happens if the stored client_id still equals
        ``rotation.previous_client_id``. A concurrent regeneration that got
        there first makes this raise CredentialConflictError; the stored
        pair is then the winner's, never a mix of the two.
        """
        pair = rotation.credentials
        with self._lock:
            app = self._require_app(rotation.application_id)

            if app['client_id'] != rotation.previous_client_id:
                logger.log_message(
                    ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
                    "Credential Replacement Rejected",
                    {
                        "app_id": app['id'],
                        "expected_client_id": rotation.previous_client_id,
                        "stored_client_id": app['client_id'],
                        "reason": "concurrent_regeneration"
                    },
                    success=False
                )
                raise CredentialConflictError(
                    "Credentials were regenerated by another request; reload and retry"
                )

            if any(other['client_id'] == pair.client_id
                   for other in self._apps.values() if other['id'] != app['id']):
                raise CredentialConflictError(
                    "client_id is already assigned to another application",
                    error_code="client_id_in_use"
                )

            app['client_id'] = pair.client_id
            app['client_secret'] = pair.client_secret
            app['updated_at'] = _now()

            logger.log_message(
                ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
                "Credentials Replaced",
                {
                    "app_id": app['id'],
                    "client_id": pair.client_id,
                    "replaced_client_id": rotation.previous_client_id
                }
            )
            return dict(app)

    # Marketplace listing

    def list_marketplace_apps(self, search: Optional[str] = None) -> List[Dict]:
        """Published and listed applications, optionally filtered by name/description."""
        query = search.strip().lower() if search else ""
        with self._lock:
            apps = [
                dict(app) for app in self._apps.values()
                if app['is_published'] and app['is_listed']
            ]

        if query:
            apps = [
                app for app in apps
                if query in app['name'].lower() or query in app['description'].lower()
            ]
        return apps

    # Pricing plans

    def create_plan(self, app_id: int, data: Dict) -> Dict:
        with self._lock:
            self._require_app(app_id)
            plan = {
                'id': next(self._plan_ids),
                'app_id': app_id,
                'name': data['name'],
                'price': data['price'],
                'billing_interval': data['billing_interval'],
                'features': list(data.get('features', [])),
                'is_public': data.get('is_public', True)
            }
            self._plans[plan['id']] = plan
            return dict(plan, features=list(plan['features']))

    def _require_plan(self, plan_id: int) -> Dict:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError(f"Pricing plan {plan_id} not found", error_code="plan_not_found")
        return plan

    def get_plan(self, plan_id: int) -> Dict:
        with self._lock:
            plan = self._require_plan(plan_id)
            return dict(plan, features=list(plan['features']))

    def list_plans(self, app_id: int, include_private: bool = False) -> List[Dict]:
        with self._lock:
            self._require_app(app_id)
            return [
                dict(plan, features=list(plan['features']))
                for plan in self._plans.values()
                if plan['app_id'] == app_id and (include_private or plan['is_public'])
            ]

    def update_plan(self, plan_id: int, changes: Dict) -> Dict:
        with self._lock:
            plan = self._require_plan(plan_id)
            for key, value in changes.items():
                if key not in ('name', 'price', 'billing_interval', 'features', 'is_public'):
                    raise ValueError(f"Field cannot be updated: {key}")
                plan[key] = list(value) if key == 'features' else value
            return dict(plan, features=list(plan['features']))

    def delete_plan(self, plan_id: int) -> int:
        """
        Delete a pricing plan.

        Subscriptions to the plan stay and are flagged ``orphaned``.

        Returns:
            int: number of subscriptions that were orphaned
        """
        with self._lock:
            self._require_plan(plan_id)
            del self._plans[plan_id]

            orphaned = 0
            for subscription in self._subscriptions.values():
                if subscription['plan_id'] == plan_id and not subscription['orphaned']:
                    subscription['orphaned'] = True
                    orphaned += 1

        if orphaned:
            logger.log_message(
                ComponentType.STORE.value, ComponentType.MARKETPLACE.value,
                "Subscriptions Orphaned",
                {"plan_id": plan_id, "orphaned_subscriptions": orphaned}
            )
        return orphaned

    # Reviews

    def list_reviews(self, app_id: int) -> List[Dict]:
        """Reviews of an application, newest first."""
        with self._lock:
            self._require_app(app_id)
            reviews = [dict(review) for review in self._reviews.values() if review['app_id'] == app_id]
        return sorted(reviews, key=lambda review: (review['created_at'], review['id']), reverse=True)

    def get_review(self, review_id: int) -> Dict:
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                raise NotFoundError(f"Review {review_id} not found", error_code="review_not_found")
            return dict(review)

    def find_user_review(self, app_id: int, user_id: int) -> Optional[Dict]:
        with self._lock:
            for review in self._reviews.values():
                if review['app_id'] == app_id and review['user_id'] == user_id:
                    return dict(review)
        return None

    def add_review(self, app_id: int, accepted: Dict) -> Dict:
        """
        Insert a validated review.

        The one-review-per-user rule is checked again under the lock, so two
        racing submissions from one user produce exactly one review.
        """
        with self._lock:
            self._require_app(app_id)
            if self.find_user_review(app_id, accepted['user_id']) is not None:
                raise DuplicateReviewError(
                    f"User {accepted['user_id']} has already reviewed this application"
                )

            review = {
                'id': next(self._review_ids),
                'app_id': app_id,
                'user_id': accepted['user_id'],
                'rating': accepted['rating'],
                'review_text': accepted['review_text'],
                'created_at': _now(),
                'updated_at': None
            }
            self._reviews[review['id']] = review
            return dict(review)

    def update_review(self, review_id: int, rating: int, review_text: str) -> Dict:
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                raise NotFoundError(f"Review {review_id} not found", error_code="review_not_found")
            review['rating'] = rating
            review['review_text'] = review_text
            review['updated_at'] = _now()
            return dict(review)

    def delete_review(self, review_id: int) -> None:
        with self._lock:
            if self._reviews.pop(review_id, None) is None:
                raise NotFoundError(f"Review {review_id} not found", error_code="review_not_found")

    def ratings_by_app(self, app_ids: Iterable[int]) -> Dict[int, List[Dict]]:
        """Reviews grouped by application id, for marketplace summaries."""
        grouped: Dict[int, List[Dict]] = {app_id: [] for app_id in app_ids}
        with self._lock:
            for review in self._reviews.values():
                if review['app_id'] in grouped:
                    grouped[review['app_id']].append(dict(review))
        return grouped

    # Subscriptions

    def create_subscription(self, user_id: int, app_id: int, plan_id: int) -> Dict:
        with self._lock:
            self._require_app(app_id)
            plan = self._require_plan(plan_id)
            if plan['app_id'] != app_id:
                raise NotFoundError(
                    f"Pricing plan {plan_id} does not belong to application {app_id}",
                    error_code="plan_not_found"
                )

            subscription = {
                'id': next(self._subscription_ids),
                'user_id': user_id,
                'app_id': app_id,
                'plan_id': plan_id,
                'status': SubscriptionStatus.ACTIVE,
                'start_date': _now(),
                'end_date': None,
                'orphaned': False
            }
            self._subscriptions[subscription['id']] = subscription
            return dict(subscription)

    def list_user_subscriptions(self, user_id: int) -> List[Dict]:
        with self._lock:
            return [dict(sub) for sub in self._subscriptions.values() if sub['user_id'] == user_id]

    def get_storage_statistics(self) -> Dict:
        """Record counts for the health endpoint."""
        with self._lock:
            return {
                "applications": len(self._apps),
                "published_applications": sum(1 for app in self._apps.values() if app['is_published']),
                "pricing_plans": len(self._plans),
                "reviews": len(self._reviews),
                "subscriptions": len(self._subscriptions),
                "orphaned_subscriptions": sum(1 for sub in self._subscriptions.values() if sub['orphaned'])
            }
