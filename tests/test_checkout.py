from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.billing import customers
from app.core.roles import CHECKOUT_BLOCKING_STATUSES

from fakes import stripe_obj

PLAN = {"documentId": "plan_doc_1", "name": "Academy Monthly", "stripePriceId": "price_123", "freeTrialDays": 0}


@pytest.fixture
def stripe_calls():
    with patch("app.integrations.stripe_api.find_customer_by_email", return_value=None) as find_customer, \
            patch("app.integrations.stripe_api.create_customer") as create_customer, \
            patch("app.integrations.stripe_api.update_customer") as update_customer, \
            patch("app.integrations.stripe_api.list_subscriptions", return_value=[]) as list_subscriptions, \
            patch("app.integrations.stripe_api.create_checkout_session") as create_session, \
            patch("app.integrations.clerk_api.update_user_metadata") as update_metadata, \
            patch("app.integrations.strapi_api.get_subscription_plan", return_value=dict(PLAN)) as get_plan:
        create_customer.return_value = stripe_obj(id="cus_created", metadata={})
        create_session.return_value = stripe_obj(id="cs_1", url="https://checkout.stripe.com/c/pay/cs_1")
        yield SimpleNamespace(
            find_customer=find_customer,
            create_customer=create_customer,
            update_customer=update_customer,
            list_subscriptions=list_subscriptions,
            create_session=create_session,
            update_metadata=update_metadata,
            get_plan=get_plan,
        )


class TestAuthRequired:
    @pytest.mark.parametrize(
        "path, body",
        [
            ("/api/subscription-checkout", {"subscriptionId": "plan_doc_1"}),
            ("/api/checkout", {"items": [{"name": "Tip", "price": 5}]}),
        ],
    )
    def test_requires_session(self, client, path, body):
        with patch("app.integrations.clerk_api.authenticate", return_value=None):
            response = client.post(path, json=body)
        assert response.status_code == 401
        assert "error" in response.json()


class TestSubscriptionCheckout:
    def test_binds_session_to_new_customer(self, client, signed_in, stripe_calls):
        response = client.post(
            "/api/subscription-checkout",
            json={"subscriptionId": "plan_doc_1"},
            headers={"Origin": "https://www.example.com"},
        )

        assert response.status_code == 200
        assert response.json()["sessionId"] == "cs_1"

        stripe_calls.create_customer.assert_called_once_with(
            "jane@example.com", name="Jane Doe", metadata={"clerkUserId": "user_123"}
        )
        stripe_calls.update_metadata.assert_called_once_with(
            "user_123", private_metadata={"stripeCustomerId": "cus_created"}
        )
        params = stripe_calls.create_session.call_args.kwargs
        assert params["customer"] == "cus_created"
        assert params["mode"] == "subscription"
        assert params["metadata"]["clerkUserId"] == "user_123"
        assert params["subscription_data"]["metadata"]["clerkUserId"] == "user_123"
        assert params["cancel_url"] == "https://www.example.com/upgrade"
        assert "trial_period_days" not in params["subscription_data"]

    def test_reuses_linked_customer(self, client, clerk_user, signed_in, stripe_calls):
        clerk_user.private_metadata = {"stripeCustomerId": "cus_linked"}

        client.post("/api/subscription-checkout", json={"subscriptionId": "plan_doc_1"})

        stripe_calls.create_customer.assert_not_called()
        assert stripe_calls.create_session.call_args.kwargs["customer"] == "cus_linked"

    @pytest.mark.parametrize("status", ["active", "trialing", "past_due", "incomplete"])
    def test_refuses_duplicate_subscription(self, client, clerk_user, signed_in, stripe_calls, status):
        clerk_user.private_metadata = {"stripeCustomerId": "cus_linked"}
        stripe_calls.list_subscriptions.return_value = [stripe_obj(id="sub_1", status=status)]

        response = client.post("/api/subscription-checkout", json={"subscriptionId": "plan_doc_1"})

        assert response.status_code == 409
        stripe_calls.create_session.assert_not_called()

    def test_unknown_plan(self, client, signed_in, stripe_calls):
        stripe_calls.get_plan.return_value = None
        assert client.post("/api/subscription-checkout", json={"subscriptionId": "nope"}).status_code == 404


class TestCartCheckout:
    def test_empty_cart(self, client, signed_in, stripe_calls):
        response = client.post("/api/checkout", json={"items": []})
        assert response.status_code == 400
        assert response.json() == {"error": "No items in cart"}

    def test_payment_session_for_mixed_cart(self, client, signed_in, stripe_calls):
        items = [
            {"name": "Tip Guide", "price": 25, "quantity": 1, "stripePriceId": "price_ebook"},
            {
                "id": 42,
                "name": "Piping Tip",
                "price": 12.5,
                "quantity": 2,
                "sku": "TIP-1",
                "selectedSize": "Large",
                "selectedColor": "Rose",
                "image": "/uploads/tip.png",
            },
        ]
        response = client.post("/api/checkout", json={"items": items}, headers={"Origin": "https://www.example.com"})

        assert response.status_code == 200
        params = stripe_calls.create_session.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["customer"] == "cus_created"
        assert params["client_reference_id"] == "user_123"
        assert params["metadata"]["clerkUserId"] == "user_123"
        assert params["shipping_address_collection"] == {"allowed_countries": ["US", "CA", "GB", "AU", "NZ"]}
        assert params["billing_address_collection"] == "required"
        assert params["allow_promotion_codes"] is True

        priced, inline = params["line_items"]
        assert priced == {"price": "price_ebook", "quantity": 1}
        assert inline["quantity"] == 2
        assert inline["price_data"]["unit_amount"] == 1250
        assert inline["price_data"]["currency"] == "usd"
        product = inline["price_data"]["product_data"]
        assert product["description"] == "Size: Large, Color: Rose"
        assert product["images"] == ["http://strapi.test/uploads/tip.png"]
        assert product["metadata"] == {"product_id": "42", "sku": "TIP-1"}

    def test_unresolvable_image_is_dropped(self, client, signed_in, stripe_calls):
        items = [{"name": "Tip", "price": 1, "image": "tip.png"}]
        client.post("/api/checkout", json={"items": items})
        product = stripe_calls.create_session.call_args.kwargs["line_items"][0]["price_data"]["product_data"]
        assert "images" not in product

    def test_user_without_email(self, client, clerk_user, signed_in, stripe_calls):
        clerk_user.email_addresses = []
        response = client.post("/api/checkout", json={"items": [{"name": "Tip", "price": 1}]})
        assert response.status_code == 400


class TestBlockingSubscription:
    def test_looks_past_the_first_page(self):
        older = [stripe_obj(id=f"sub_old_{n}", status="canceled") for n in range(12)]
        page = MagicMock()
        page.auto_paging_iter.return_value = iter(older + [stripe_obj(id="sub_live", status="past_due")])

        with patch("stripe.Subscription.list", return_value=page) as list_subscriptions:
            found = customers.blocking_subscription("cus_1", CHECKOUT_BLOCKING_STATUSES)

        assert found["id"] == "sub_live"
        assert list_subscriptions.call_args.kwargs["customer"] == "cus_1"
        assert list_subscriptions.call_args.kwargs["status"] == "all"

    def test_nothing_blocking(self):
        page = MagicMock()
        page.auto_paging_iter.return_value = iter([stripe_obj(id="sub_old", status="incomplete_expired")])
        with patch("stripe.Subscription.list", return_value=page):
            assert customers.blocking_subscription("cus_1", CHECKOUT_BLOCKING_STATUSES) is None
