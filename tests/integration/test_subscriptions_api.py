import pytest
from httpx import AsyncClient
from unittest.mock import patch

from salonpass.schemas.subscription import PaymentOutcome


@pytest.fixture
async def purchased(client: AsyncClient, customer, package):
    response = await client.post(
        "/api/v1/subscriptions",
        json={"customer_id": customer.id, "package_id": package.id, "payment_auth": "pm_card_visa"},
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
class TestSubscriptionEndpoints:
    """Test subscription API endpoints"""

    async def test_purchase(self, purchased):
        assert purchased["status"] == "active"
        assert purchased["visits_remaining"] == 5
        assert purchased["redemption_token"]

    async def test_purchase_declined(self, client: AsyncClient, gateway, customer, package):
        gateway.queue(PaymentOutcome.failed("card_declined"))

        response = await client.post(
            "/api/v1/subscriptions",
            json={"customer_id": customer.id, "package_id": package.id, "payment_auth": "pm_card_chargeDeclined"},
        )

        assert response.status_code == 402
        assert response.json()["error"] == "payment_declined"

    async def test_purchase_invalid_body(self, client: AsyncClient):
        response = await client.post("/api/v1/subscriptions", json={"customer_id": -1})

        assert response.status_code == 422

    async def test_redeem(self, client: AsyncClient, purchased):
        response = await client.post(
            "/api/v1/subscriptions/redeem",
            json={"token": purchased["redemption_token"], "salon_id": 1, "service_name": "Haircut"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["subscription_id"] == purchased["id"]
        assert data["visits_remaining"] == 4
        assert data["subscription_status"] == "active"

    async def test_redeem_unknown_token(self, client: AsyncClient):
        response = await client.post("/api/v1/subscriptions/redeem", json={"token": "ZZZ", "salon_id": 1})

        assert response.status_code == 404
        assert response.json()["error"] == "invalid_token"

    async def test_redeem_wrong_salon(self, client: AsyncClient, purchased):
        response = await client.post(
            "/api/v1/subscriptions/redeem",
            json={"token": purchased["redemption_token"], "salon_id": 2},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "salon_mismatch"

    async def test_get_and_list(self, client: AsyncClient, customer, purchased):
        single = await client.get(f"/api/v1/subscriptions/{purchased['id']}")
        by_token = await client.get(f"/api/v1/subscriptions/by-token/{purchased['redemption_token']}")
        owned = await client.get(f"/api/v1/subscriptions/customers/{customer.id}", params={"status": "active"})
        visits = await client.get(f"/api/v1/subscriptions/{purchased['id']}/visits")

        assert single.json()["id"] == purchased["id"]
        assert by_token.json()["id"] == purchased["id"]
        assert [s["id"] for s in owned.json()] == [purchased["id"]]
        assert visits.json() == []

    async def test_purchase_with_auto_renewal(self, client: AsyncClient, customer, package):
        response = await client.post(
            "/api/v1/subscriptions",
            json={
                "customer_id": customer.id,
                "package_id": package.id,
                "payment_auth": "pm_card_visa",
                "auto_renewal": True,
            },
        )

        assert response.status_code == 201
        assert response.json()["auto_renewal"] is True

    async def test_salon_views(self, client: AsyncClient, purchased):
        await client.post(
            "/api/v1/subscriptions/redeem",
            json={"token": purchased["redemption_token"], "salon_id": 1, "service_name": "Haircut"},
        )

        subscriptions = await client.get("/api/v1/subscriptions/salons/1", params={"status": "active"})
        visits = await client.get("/api/v1/subscriptions/salons/1/visits")
        none_yet = await client.get(
            "/api/v1/subscriptions/salons/1/visits", params={"since": "2030-01-01T00:00:00"}
        )
        other_salon = await client.get("/api/v1/subscriptions/salons/2")

        assert [s["id"] for s in subscriptions.json()] == [purchased["id"]]
        assert [v["service_name"] for v in visits.json()] == ["Haircut"]
        assert none_yet.json() == []
        assert other_salon.json() == []

    async def test_get_missing(self, client: AsyncClient):
        response = await client.get("/api/v1/subscriptions/999")

        assert response.status_code == 404

    async def test_cancel_by_customer(self, client: AsyncClient, customer, purchased):
        response = await client.post(
            f"/api/v1/subscriptions/{purchased['id']}/cancel",
            json={"actor": {"kind": "customer", "id": customer.id}},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = await client.post(
            f"/api/v1/subscriptions/{purchased['id']}/cancel",
            json={"actor": {"kind": "admin", "id": 1}},
        )
        assert again.status_code == 409

    async def test_renew_declined_suspends(self, client: AsyncClient, gateway, purchased):
        gateway.queue(PaymentOutcome.failed("insufficient_funds"))

        response = await client.post(
            f"/api/v1/subscriptions/{purchased['id']}/renew", json={"payment_auth": "pm_card_visa"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "suspended"
        assert response.json()["grace_until"] is not None


@pytest.mark.asyncio
class TestWebhookEndpoints:
    """Test payment callback endpoints"""

    async def test_refund_outcome(self, client: AsyncClient, purchased):
        response = await client.post(
            "/api/v1/webhooks/payments",
            json={"subscription_id": purchased["id"], "outcome": {"kind": "refunded", "amount": "250.00"}},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_refund_too_large(self, client: AsyncClient, purchased):
        response = await client.post(
            "/api/v1/webhooks/payments",
            json={"subscription_id": purchased["id"], "outcome": {"kind": "refunded", "amount": "999.00"}},
        )

        assert response.status_code == 422

    async def test_stripe_requires_signature(self, client: AsyncClient):
        response = await client.post("/api/v1/webhooks/payments/stripe", content=b"{}")

        assert response.status_code == 400

    async def test_stripe_event_applied(self, client: AsyncClient, purchased):
        event = {
            "type": "refund.created",
            "data": {"object": {
                "id": "re_1",
                "amount": 25000,
                "charge": "ch_1",
                "payment_intent": "pi_test_1",
                "status": "succeeded",
                "metadata": {},
            }},
        }

        with patch("salonpass.api.v1.endpoints.webhooks.settings.STRIPE_WEBHOOK_SECRET", "whsec_test"), \
                patch(
                    "salonpass.api.v1.endpoints.webhooks.StripePaymentGateway.construct_webhook_event",
                    return_value=event,
                ):
            response = await client.post(
                "/api/v1/webhooks/payments/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"}
            )

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        stored = await client.get(f"/api/v1/subscriptions/{purchased['id']}")
        assert stored.json()["status"] == "cancelled"
