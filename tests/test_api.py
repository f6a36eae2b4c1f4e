from tests.conftest import auth_header, fill_cart, make_event, sign_payload


def _checkout(client, db, user_id=1, method="cash", lines=None, headers=None):
    fill_cart(db, user_id, lines or {1: 2, 2: 1})
    return client.post(
        "/orders",
        json={"paymentMethod": method},
        headers={**auth_header(user_id), **(headers or {})},
    )


class TestOrders:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_create_order(self, client, db):
        resp = _checkout(client, db)

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["paymentMethod"] == "cash"
        assert float(body["totalAmount"]) == 25.00
        assert [(i["productName"], i["quantity"]) for i in body["items"]] == [("Keyboard", 2), ("Mouse", 1)]
        assert float(body["items"][0]["subtotal"]) == 20.00

        cart = client.get("/cart", headers=auth_header(1)).json()
        assert cart["items"] == []

    def test_requires_authentication(self, client):
        assert client.post("/orders", json={"paymentMethod": "cash"}).status_code == 401
        assert client.get("/orders", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_invalid_payment_method(self, client, db):
        assert _checkout(client, db, method="bitcoin").status_code == 400

    def test_empty_cart(self, client):
        resp = client.post("/orders", json={"paymentMethod": "cash"}, headers=auth_header(1))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cart is empty"

    def test_idempotency_key_header(self, client, db):
        first = _checkout(client, db, headers={"Idempotency-Key": "abc"})
        second = client.post(
            "/orders",
            json={"paymentMethod": "cash"},
            headers={**auth_header(1), "Idempotency-Key": "abc"},
        )

        assert first.json()["id"] == second.json()["id"]
        assert len(client.get("/orders", headers=auth_header(1)).json()) == 1

    def test_list_and_get_are_scoped_to_user(self, client, db):
        order_id = _checkout(client, db).json()["id"]

        assert [o["id"] for o in client.get("/orders", headers=auth_header(1)).json()] == [order_id]
        assert client.get("/orders", headers=auth_header(2)).json() == []
        assert client.get(f"/orders/{order_id}", headers=auth_header(1)).status_code == 200
        assert client.get(f"/orders/{order_id}", headers=auth_header(2)).status_code == 404

    def test_status_changes(self, client, db):
        order_id = _checkout(client, db).json()["id"]
        url = f"/orders/{order_id}/status"

        assert client.put(url, json={"status": "paid"}, headers=auth_header(1)).status_code == 204
        assert client.put(url, json={"status": "bogus"}, headers=auth_header(1)).status_code == 400
        assert client.put(url, json={"status": "pending"}, headers=auth_header(1)).status_code == 409
        assert client.put(url, json={"status": "shipped"}, headers=auth_header(1)).status_code == 204
        assert client.put(url, json={"status": "delivered"}, headers=auth_header(1)).status_code == 204
        assert client.put(url, json={"status": "cancelled"}, headers=auth_header(1)).status_code == 409

        assert client.get(f"/orders/{order_id}", headers=auth_header(1)).json()["status"] == "delivered"

    def test_status_change_of_missing_order(self, client):
        resp = client.put("/orders/999/status", json={"status": "shipped"}, headers=auth_header(1))
        assert resp.status_code == 404


class TestCardFlow:
    def test_intent_webhook_and_redirect(self, client, db, gateway, notifier):
        order = _checkout(client, db, method="card").json()

        resp = client.post(
            "/payment/create-payment-intent", json={"orderId": order["id"]}, headers=auth_header(1)
        )
        assert resp.status_code == 200
        intent = resp.json()
        assert intent["amount"] == 2500
        assert intent["clientSecret"]
        ref = intent["paymentIntentId"]

        again = client.post(
            "/payment/create-payment-intent", json={"orderId": order["id"]}, headers=auth_header(1)
        ).json()
        assert again["paymentIntentId"] == ref

        gateway.set_status(ref, "succeeded")
        payload = make_event("payment_intent.succeeded", ref)
        for _ in range(2):
            hook = client.post(
                "/payment/webhook",
                content=payload,
                headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
            )
            assert hook.status_code == 200
        assert hook.json()["duplicate"] is True

        confirmed = client.put(f"/orders/{order['id']}", json={"paymentIntentId": ref}, headers=auth_header(1))
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "paid"
        assert confirmed.json()["externalPaymentReference"] == ref
        assert [s for _, _, s in notifier.sent].count("paid") == 1

    def test_webhook_with_bad_signature(self, client, db):
        payload = make_event("payment_intent.succeeded", "pi_x")
        resp = client.post("/payment/webhook", content=payload, headers={"Stripe-Signature": "t=1,v1=bad"})
        assert resp.status_code == 400

    def test_webhook_without_signature(self, client):
        assert client.post("/payment/webhook", content=b"{}").status_code == 400

    def test_attach_different_reference_conflicts(self, client, db, gateway):
        order = _checkout(client, db, method="card").json()
        first = gateway.create_intent(2500, "usd", "k1", {})
        second = gateway.create_intent(2500, "usd", "k2", {})
        url = f"/orders/{order['id']}"

        assert client.put(url, json={"paymentIntentId": first.external_reference}, headers=auth_header(1)).status_code == 200
        assert client.put(url, json={"paymentIntentId": first.external_reference}, headers=auth_header(1)).status_code == 200
        assert client.put(url, json={"paymentIntentId": second.external_reference}, headers=auth_header(1)).status_code == 409

    def test_intent_for_cash_order_is_rejected(self, client, db):
        order = _checkout(client, db, method="cash").json()
        resp = client.post("/payment/create-payment-intent", json={"orderId": order["id"]}, headers=auth_header(1))
        assert resp.status_code == 400

    def test_gateway_outage_is_502(self, client, db, gateway):
        order = _checkout(client, db, method="card").json()
        gateway.configure(should_fail=True)

        resp = client.post("/payment/create-payment-intent", json={"orderId": order["id"]}, headers=auth_header(1))
        assert resp.status_code == 502

    def test_card_order_cannot_be_marked_paid_by_client(self, client, db):
        order = _checkout(client, db, method="card").json()
        resp = client.put(f"/orders/{order['id']}/status", json={"status": "paid"}, headers=auth_header(1))
        assert resp.status_code == 409


class TestCart:
    def test_add_update_remove(self, client):
        headers = auth_header(5)

        resp = client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["items"] == [{"productId": 1, "quantity": 2}]

        client.post("/cart/items", json={"productId": 1, "quantity": 1}, headers=headers)
        client.post("/cart/items", json={"productId": 2, "quantity": 1}, headers=headers)
        resp = client.put("/cart/items/2", json={"quantity": 4}, headers=headers)
        assert resp.json()["items"] == [{"productId": 1, "quantity": 3}, {"productId": 2, "quantity": 4}]

        resp = client.delete("/cart/items/1", headers=headers)
        assert resp.json()["items"] == [{"productId": 2, "quantity": 4}]

    def test_non_positive_quantity_is_400(self, client):
        resp = client.post("/cart/items", json={"productId": 1, "quantity": 0}, headers=auth_header(5))
        assert resp.status_code == 400

    def test_unknown_product_is_400(self, client):
        resp = client.post("/cart/items", json={"productId": 99, "quantity": 1}, headers=auth_header(5))
        assert resp.status_code == 400

    def test_remove_missing_line_is_404(self, client):
        assert client.delete("/cart/items/1", headers=auth_header(5)).status_code == 404
