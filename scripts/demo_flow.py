#!/usr/bin/env python3
"""
Marketplace Demo Flow Automation Script

This script walks a running marketplace server through a complete
publisher and customer journey: register an application, issue and
regenerate its credentials, add pricing plans, publish it, review it,
subscribe to it and finally browse the marketplace.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.shared.logging_utils import MarketplaceLogger


class MarketplaceFlowAutomation:
    """Automated marketplace walkthrough against a live server"""

    def __init__(self, base_url: str = "http://localhost:8081"):
        self.logger = MarketplaceLogger("DEMO-AUTOMATION")
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/oauth-apps"

        # Publisher and reviewers
        self.demo_accounts = {
            "alice": "password123",
            "bob": "secret456",
            "carol": "mypass789"
        }

        self.sessions: Dict[str, Dict[str, str]] = {}
        self.flow_state: Dict[str, Any] = {}
        self.client = httpx.AsyncClient(timeout=30.0)

    def _check(self, response: httpx.Response, expected: int, step: str) -> Dict[str, Any]:
        """Fail the step unless the response has the expected status."""
        if response.status_code != expected:
            self.logger.log_error(
                "unexpected_status", step,
                {"expected": expected, "status_code": response.status_code, "body": response.text[:200]}
            )
            raise RuntimeError(f"{step} failed with HTTP {response.status_code}: {response.text[:200]}")
        return response.json() if response.content else {}

    async def check_server_health(self) -> bool:
        """Check that the marketplace server is up"""
        print("🔍 Checking server health...")
        try:
            response = await self.client.get(f"{self.base_url}/health", timeout=5.0)
        except httpx.HTTPError as e:
            print(f"  ❌ {self.base_url} - Connection failed ({e})")
            return False

        if response.status_code != 200:
            print(f"  ❌ {self.base_url} - Unhealthy (HTTP {response.status_code})")
            return False

        print(f"  ✅ {self.base_url} - Healthy")
        return True

    async def step1_login(self):
        """Step 1: Open a session for every demo account"""
        print("\n🔐 Step 1: Logging in demo accounts")
        print("-" * 40)

        for username, password in self.demo_accounts.items():
            response = await self.client.post(
                f"{self.base_url}/login",
                data={"username": username, "password": password}
            )
            session = self._check(response, 200, f"login {username}")
            self.sessions[username] = {"Authorization": f"Bearer {session['access_token']}"}
            print(f"  ✅ {username} logged in (expires in {session['expires_in']}s)")

    async def step2_register_app(self, publisher: str) -> int:
        """Step 2: Register an application for the publisher"""
        print("\n📝 Step 2: Registering application")
        print("-" * 40)

        response = await self.client.post(f"{self.api_url}/", json={
            "name": "Demo Weather Widget",
            "description": "Shows the forecast next to your calendar events",
            "homepage_url": "https://weather.example.com",
            "callback_url": "https://weather.example.com/oauth/callback"
        }, headers=self.sessions[publisher])
        app = self._check(response, 201, "register app")

        self.flow_state["app_id"] = app["id"]
        print(f"  ✅ Application {app['id']} registered by {publisher}")
        return app["id"]

    async def step3_credentials(self, publisher: str, app_id: int):
        """Step 3: Issue credentials, then regenerate them"""
        print("\n🔑 Step 3: Issuing and regenerating credentials")
        print("-" * 40)

        url = f"{self.api_url}/{app_id}/credentials"
        first = self._check(await self.client.post(url, headers=self.sessions[publisher]), 200, "issue credentials")
        print(f"  🆔 client_id: {first['client_id']}")
        print(f"  🔐 client_secret: {first['client_secret'][:6]}... (shown once)")

        second = self._check(await self.client.post(url, headers=self.sessions[publisher]), 200, "regenerate credentials")
        if second["replaced_client_id"] != first["client_id"]:
            raise RuntimeError("Regeneration did not replace the previous client_id")
        print(f"  ♻️  Regenerated: {first['client_id'][:8]}... → {second['client_id'][:8]}...")

        self.flow_state["client_id"] = second["client_id"]

    async def step4_pricing_and_publish(self, publisher: str, app_id: int) -> int:
        """Step 4: Add pricing plans and publish the application"""
        print("\n💳 Step 4: Pricing plans and publishing")
        print("-" * 40)

        headers = self.sessions[publisher]
        plans_url = f"{self.api_url}/{app_id}/pricing-plans"
        free = self._check(await self.client.post(plans_url, json={
            "name": "Free", "price": 0, "features": ["3 calendars"]
        }, headers=headers), 201, "create free plan")
        pro = self._check(await self.client.post(plans_url, json={
            "name": "Pro", "price": 49, "billing_interval": "yearly",
            "features": ["Unlimited calendars", "Hourly forecast"]
        }, headers=headers), 201, "create pro plan")
        print(f"  ✅ Plans created: {free['name']} (id {free['id']}), {pro['name']} (id {pro['id']})")

        self._check(await self.client.post(f"{self.api_url}/{app_id}/publish", headers=headers), 200, "publish")
        print(f"  ✅ Application {app_id} published")
        return pro["id"]

    async def step5_reviews_and_subscriptions(self, app_id: int, plan_id: int):
        """Step 5: Other users review and subscribe"""
        print("\n⭐ Step 5: Reviews and subscriptions")
        print("-" * 40)

        reviews_url = f"{self.api_url}/{app_id}/reviews"
        for username, rating, text in [("bob", 5, "Exactly what I needed"), ("carol", 3, None)]:
            self._check(await self.client.post(reviews_url, json={
                "rating": rating, "review_text": text
            }, headers=self.sessions[username]), 201, f"review by {username}")
            print(f"  ✅ {username} rated {rating}/5")

        duplicate = await self.client.post(reviews_url, json={"rating": 1}, headers=self.sessions["bob"])
        print(f"  🚫 Second review by bob rejected (HTTP {duplicate.status_code})")

        self._check(await self.client.post(
            f"{self.api_url}/{app_id}/subscriptions", json={"plan_id": plan_id}, headers=self.sessions["bob"]
        ), 201, "subscribe")
        print(f"  ✅ bob subscribed to plan {plan_id}")

        summary = self._check(await self.client.get(f"{reviews_url}/summary"), 200, "review summary")
        self.flow_state["rating"] = summary
        print(f"  📊 Average {summary['average']:.2f} from {summary['total']} reviews, histogram {summary['histogram']}")

    async def step6_browse_marketplace(self):
        """Step 6: Browse the public marketplace"""
        print("\n🛒 Step 6: Browsing the marketplace")
        print("-" * 40)

        for view in ("list", "top-rated", "recent"):
            listing = self._check(await self.client.get(f"{self.api_url}/marketplace/{view}"), 200, f"marketplace {view}")
            names = ", ".join(app["name"] for app in listing) or "(empty)"
            print(f"  📋 {view}: {names}")

    async def run_complete_flow(self, publisher: str = "alice") -> Dict[str, Any]:
        """Run every step and report which ones completed"""
        print("🚀 Marketplace demo flow")
        print("=" * 40)

        results: Dict[str, Any] = {"publisher": publisher, "success": False, "steps_completed": []}

        if not await self.check_server_health():
            results["error"] = "server_unavailable"
            return results

        try:
            await self.step1_login()
            results["steps_completed"].append("login")

            app_id = await self.step2_register_app(publisher)
            results["steps_completed"].append("register")

            await self.step3_credentials(publisher, app_id)
            results["steps_completed"].append("credentials")

            plan_id = await self.step4_pricing_and_publish(publisher, app_id)
            results["steps_completed"].append("publish")

            await self.step5_reviews_and_subscriptions(app_id, plan_id)
            results["steps_completed"].append("reviews")

            await self.step6_browse_marketplace()
            results["steps_completed"].append("marketplace")
        except (RuntimeError, httpx.HTTPError) as e:
            results["error"] = str(e)
            print(f"\n❌ Flow stopped: {e}")
            return results

        results["success"] = True
        results["flow_state"] = self.flow_state

        self.logger.log_message(
            "DEMO-AUTOMATION", "MARKETPLACE",
            "Demo Flow Completed",
            {"app_id": self.flow_state["app_id"], "steps": len(results["steps_completed"])}
        )
        print("\n✅ Demo flow completed")
        return results

    async def cleanup(self):
        """Clean up resources"""
        await self.client.aclose()


async def main(argv: Optional[list] = None):
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(
        description="Automated marketplace walkthrough"
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8081",
        help="Marketplace server URL"
    )
    parser.add_argument(
        "--publisher",
        default="alice",
        choices=["alice", "bob", "carol"],
        help="Demo account that registers the application (default: alice)"
    )
    parser.add_argument(
        "--output",
        help="Save results to JSON file"
    )

    args = parser.parse_args(argv)
    automation = MarketplaceFlowAutomation(args.url)

    try:
        results = await automation.run_complete_flow(args.publisher)

        if args.output:
            with open(args.output, 'w') as f:
                json.dump(results, f, indent=2, default=str)
            print(f"\n💾 Results saved to: {args.output}")

        sys.exit(0 if results["success"] else 1)
    except KeyboardInterrupt:
        print("\n👋 Demo automation interrupted by user")
        sys.exit(130)
    finally:
        await automation.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
