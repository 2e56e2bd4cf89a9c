"""Integration tests for the payment, supplier and auction webhook endpoints."""

import json

import pytest
from dropship.api.routes import webhook_router
from dropship.auction.port import Buyer, ClosedItem, ClosedSale
from dropship.config import Settings
from dropship.lot.lot import LotStatus
from fastapi import FastAPI
from fastapi.testclient import TestClient

SUPPLIER_SECRET = "cj-secret"
AUCTION_SECRET = "basta-secret"

ADDRESS = {
    "name": "Ada Buyer",
    "line1": "1 Market St",
    "city": "San Francisco",
    "state": "CA",
    "postal_code": "94105",
    "country": "US",
}


@pytest.fixture()
def client(adapters):
    app = FastAPI()
    app.include_router(webhook_router)
    app.state.adapters = adapters
    return TestClient(app)


def _invoice_event(event_id, invoice_id, item_id, event_type="invoice.paid"):
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {
                "object": {
                    "object": "invoice",
                    "id": invoice_id,
                    "amount_paid": 2500,
                    "lines": {"data": [{"metadata": {"itemId": item_id}}]},
                }
            },
        }
    )


class TestPaymentWebhook:
    def test_bad_signature_rejected(self, client, store, make_lot):
        lot = make_lot(LotStatus.AUCTION_CLOSED)

        response = client.post(
            "/webhooks/payments",
            content=_invoice_event("evt_1", "in_1", lot.item_id),
            headers={"stripe-signature": "forged"},
        )

        assert response.status_code == 400
        assert store.get(str(lot.id)).status == LotStatus.AUCTION_CLOSED.value

    def test_paid_invoice_fulfilled(self, client, adapters, store, make_lot):
        adapters.auction.add_buyer(Buyer(user_id="buyer-1", email="ada@example.com", shipping_address=ADDRESS))
        lot = make_lot(LotStatus.AUCTION_CLOSED)

        response = client.post(
            "/webhooks/payments",
            content=_invoice_event("evt_1", "in_1", lot.item_id),
            headers={"stripe-signature": "test-signature"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processed"
        assert body["event_id"] == "evt_1"
        assert store.get(str(lot.id)).status == LotStatus.CJ_PAID.value

    def test_redelivery_acknowledged(self, client, adapters, make_lot):
        adapters.auction.add_buyer(Buyer(user_id="buyer-1", email="ada@example.com", shipping_address=ADDRESS))
        lot = make_lot(LotStatus.AUCTION_CLOSED)
        payload = _invoice_event("evt_1", "in_1", lot.item_id)
        headers = {"stripe-signature": "test-signature"}

        client.post("/webhooks/payments", content=payload, headers=headers)
        response = client.post("/webhooks/payments", content=payload, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"

    def test_malformed_payload(self, client):
        response = client.post(
            "/webhooks/payments", content='{"type": "invoice.paid"}', headers={"stripe-signature": "test-signature"}
        )
        assert response.status_code == 400


class TestSupplierWebhook:
    def test_unauthorized(self, client, make_lot):
        lot = make_lot(LotStatus.CJ_PAID)

        response = client.post(
            "/webhooks/supplier",
            json={"orderId": lot.supplier_order_id, "orderStatus": "SHIPPED"},
            headers={"x-cj-signature": "wrong"},
        )

        assert response.status_code == 401

    def test_signature_header_accepted(self, client, store, make_lot):
        lot = make_lot(LotStatus.CJ_PAID)

        response = client.post(
            "/webhooks/supplier",
            json={"orderId": lot.supplier_order_id, "orderStatus": "SHIPPED", "trackNumber": "TRK9"},
            headers={"x-cj-signature": SUPPLIER_SECRET},
        )

        assert response.status_code == 200
        assert response.json()["lot_status"] == LotStatus.SHIPPED.value
        assert store.get(str(lot.id)).tracking_number == "TRK9"

    def test_bearer_accepted(self, client, make_lot):
        lot = make_lot(LotStatus.CJ_PAID)

        response = client.post(
            "/webhooks/supplier",
            json={"orderId": lot.supplier_order_id, "orderStatus": "SHIPPED"},
            headers={"Authorization": f"Bearer {SUPPLIER_SECRET}"},
        )

        assert response.status_code == 200

    def test_unknown_order(self, client):
        response = client.post(
            "/webhooks/supplier",
            json={"orderId": "cj-missing", "orderStatus": "SHIPPED"},
            headers={"x-cj-signature": SUPPLIER_SECRET},
        )
        assert response.status_code == 404

    def test_missing_order_id(self, client):
        response = client.post(
            "/webhooks/supplier", json={"orderStatus": "SHIPPED"}, headers={"x-cj-signature": SUPPLIER_SECRET}
        )
        assert response.status_code == 400

    def test_unconfigured_secret(self, adapters, make_lot):
        adapters.settings = Settings(environment="test")
        app = FastAPI()
        app.include_router(webhook_router)
        app.state.adapters = adapters
        lot = make_lot(LotStatus.CJ_PAID)

        response = TestClient(app).post(
            "/webhooks/supplier",
            json={"orderId": lot.supplier_order_id, "orderStatus": "SHIPPED"},
            headers={"x-cj-signature": ""},
        )

        assert response.status_code == 500


class TestAuctionWebhook:
    def _closed_sale_payload(self):
        return {"actionType": "SALE_STATUS_CHANGED", "data": {"saleId": "sale-1", "saleStatus": "CLOSED"}}

    def test_token_header(self, client, adapters, store, make_lot):
        lot = make_lot(LotStatus.PUBLISHED)
        adapters.auction.close_sale(
            ClosedSale(
                sale_id="sale-1",
                items=(ClosedItem(item_id=lot.item_id, winner_user_id="buyer-1", winning_bid_cents=2600, bid_count=3),),
            )
        )

        response = client.post(
            "/webhooks/auction",
            json=self._closed_sale_payload(),
            headers={"x-fastbid-webhook-token": AUCTION_SECRET},
        )

        assert response.status_code == 200
        assert response.json()["closed"] == 1
        assert store.get(str(lot.id)).status == LotStatus.AUCTION_CLOSED.value

    def test_bad_token(self, client):
        response = client.post(
            "/webhooks/auction",
            json=self._closed_sale_payload(),
            headers={"x-fastbid-webhook-token": "nope"},
        )
        assert response.status_code == 401

    def test_ignored_action(self, client):
        response = client.post(
            "/webhooks/auction",
            json={"actionType": "BID_ON_ITEM", "data": {}},
            headers={"x-fastbid-webhook-token": AUCTION_SECRET},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
