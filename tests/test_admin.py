from types import SimpleNamespace
from unittest.mock import patch

import pytest

from app.billing import pending_signups
from app.core.config import settings
from app.integrations.clerk_api import IdentityProviderError

from fakes import stripe_obj

URL = "/api/admin/fix-missing-clerk-accounts"
KEY = {"adminKey": "admin-test-key"}


def _customer(customer_id, email, status="active", name="Ada Lovelace"):
    return stripe_obj(
        id=customer_id,
        email=email,
        name=name,
        subscriptions=stripe_obj(data=[stripe_obj(id=f"sub_{customer_id}", status=status, metadata={})]),
    )


@pytest.fixture
def upstream():
    with patch("app.integrations.stripe_api.list_customers_with_subscriptions") as list_customers, \
            patch("app.integrations.clerk_api.find_user_by_email", return_value=None) as find_user, \
            patch("app.integrations.clerk_api.create_user") as create_user, \
            patch("app.integrations.clerk_api.update_user_metadata") as update_metadata, \
            patch("app.integrations.stripe_api.update_customer"), \
            patch("app.integrations.stripe_api.update_subscription"):
        list_customers.return_value = []
        create_user.return_value = SimpleNamespace(id="user_fixed")
        yield SimpleNamespace(
            list_customers=list_customers,
            find_user=find_user,
            create_user=create_user,
            update_metadata=update_metadata,
        )


class TestAdminAuth:
    @pytest.mark.parametrize("configured", [None, "change-me-in-production"])
    def test_unconfigured_key_is_a_server_error(self, client, monkeypatch, configured):
        monkeypatch.setattr(settings, "ADMIN_API_KEY", configured)
        assert client.post(URL, json=KEY).status_code == 500

    def test_wrong_key(self, client, upstream):
        response = client.post(URL, json={"adminKey": "guess"})
        assert response.status_code == 401
        upstream.list_customers.assert_not_called()

    def test_missing_key(self, client, upstream):
        assert client.post(URL, json={}).status_code == 401


class TestFixMissingAccounts:
    def test_limit_is_clamped(self, client, upstream):
        client.post(URL, params={"limit": 5000}, json=KEY)
        upstream.list_customers.assert_called_with(100)
        client.post(URL, params={"limit": 0}, json=KEY)
        upstream.list_customers.assert_called_with(1)
        client.post(URL, json=KEY)
        upstream.list_customers.assert_called_with(100)

    def test_dry_run_reports_without_changes(self, client, upstream):
        upstream.list_customers.return_value = [
            _customer("cus_1", "missing@test.com"),
            _customer("cus_2", "canceled@test.com", status="canceled"),
            stripe_obj(id="cus_3", email=None, subscriptions=stripe_obj(data=[])),
        ]

        response = client.post(URL, params={"dryRun": "true"}, json=KEY)
        body = response.json()

        assert response.status_code == 200
        assert body["mode"] == "dry_run"
        assert body["customersChecked"] == 3
        assert body["issuesFound"] == 1
        assert body["issues"][0]["email"] == "missing@test.com"
        assert body["issues"][0]["subscriptionId"] == "sub_cus_1"
        assert "fixed" not in body["issues"][0]
        upstream.create_user.assert_not_called()

    def test_fix_uses_stored_signup_password(self, client, db_session, upstream):
        pending_signups.save_pending_signup(
            db_session,
            checkout_session_id="cs_stranded",
            email="missing@test.com",
            first_name="Ada",
            last_name="Lovelace",
            password="correct-horse-battery",
            plan_id="plan_doc_1",
        )
        upstream.list_customers.return_value = [_customer("cus_1", "missing@test.com")]

        body = client.post(URL, json=KEY).json()

        assert body["mode"] == "fix"
        issue = body["issues"][0]
        assert issue["fixed"] is True
        assert issue["clerkUserId"] == "user_fixed"
        assert issue["passwordResetRequired"] is False
        assert upstream.create_user.call_args.kwargs["password"] == "correct-horse-battery"

    def test_fix_without_stored_password_uses_random_and_reset(self, client, upstream):
        upstream.list_customers.return_value = [_customer("cus_1", "missing@test.com", name="Grace Brewster Hopper")]

        with patch("app.billing.provisioning.send_email") as send_email:
            issue = client.post(URL, json=KEY).json()["issues"][0]

        kwargs = upstream.create_user.call_args.kwargs
        assert kwargs["first_name"] == "Grace"
        assert kwargs["last_name"] == "Brewster Hopper"
        assert len(kwargs["password"]) >= 32
        assert issue["passwordResetRequired"] is True
        assert "Forgot password" in send_email.call_args.args[2]

    def test_failed_fix_is_reported(self, client, upstream):
        upstream.list_customers.return_value = [_customer("cus_1", "missing@test.com")]
        upstream.create_user.side_effect = IdentityProviderError("clerk down")

        issue = client.post(URL, json=KEY).json()["issues"][0]

        assert issue["fixed"] is False
        assert "clerk down" in issue["error"]

    def test_wrong_role_is_repaired(self, client, upstream):
        upstream.list_customers.return_value = [_customer("cus_1", "member@test.com", status="trialing")]
        upstream.find_user.return_value = SimpleNamespace(id="user_1", public_metadata={"role": "customer"})

        issue = client.post(URL, json=KEY).json()["issues"][0]

        assert issue["currentRole"] == "customer"
        assert issue["fixed"] is True
        upstream.update_metadata.assert_called_once_with(
            "user_1", public_metadata={"role": "subscriber"}, private_metadata={"stripeCustomerId": "cus_1"}
        )

    def test_healthy_subscriber_is_not_an_issue(self, client, upstream):
        upstream.list_customers.return_value = [_customer("cus_1", "member@test.com")]
        upstream.find_user.return_value = SimpleNamespace(id="user_1", public_metadata={"role": "subscriber"})

        body = client.post(URL, json=KEY).json()

        assert body["issuesFound"] == 0
        assert body["issues"] == []

    def test_clerk_lookup_error_is_reported(self, client, upstream):
        upstream.list_customers.return_value = [_customer("cus_1", "member@test.com")]
        upstream.find_user.side_effect = IdentityProviderError("rate limited")

        issue = client.post(URL, json=KEY).json()["issues"][0]

        assert issue["issue"] == "Error checking Clerk"
        assert "rate limited" in issue["error"]
