from car_rental.models import Payment
from tests.conftest import auth


def checkout(client, rental_id, user_id=1, **overrides):
    payload = {"rental_id": rental_id, "amount": 199.99, "method": "credit_card"}
    payload.update(overrides)
    return client.post("/payments/checkout", headers=auth(user_id), json=payload)


def test_checkout_opens_session_in_minor_units(client, checkout_client, rental):
    response = checkout(client, rental["id"])
    assert response.status_code == 201

    call = checkout_client.opened[0]
    assert call["amount_minor_units"] == 19999
    assert call["currency"] == "usd"
    assert call["description"] == "Toyota Corolla rental"
    assert call["metadata"] == {"rental_id": rental["id"], "user_id": 1}

    body = response.json()
    assert body["session_id"] == "cs_test_1"
    assert body["url"] == "https://checkout.test/pay/cs_test_1"
    assert body["payment"]["status"] == "pending"
    assert body["payment"]["amount"] == 199.99
    assert body["payment"]["checkout_session_id"] == "cs_test_1"


def test_checkout_uses_supplied_names(client, checkout_client, rental):
    checkout(client, rental["id"], company_name="Tesla", model_name="Model 3")
    assert checkout_client.opened[0]["description"] == "Tesla Model 3 rental"


def test_checkout_failure_leaves_no_payment(client, checkout_client, rental, session_factory):
    checkout_client.fail = True

    response = checkout(client, rental["id"])
    assert response.status_code == 500
    assert response.json() == {"message": "Checkout provider error"}

    db = session_factory()
    try:
        assert db.query(Payment).count() == 0
    finally:
        db.close()


def test_checkout_for_someone_elses_rental(client, checkout_client, rental):
    response = checkout(client, rental["id"], user_id=2)
    assert response.status_code == 404
    assert checkout_client.opened == []


def test_checkout_for_paid_rental_conflicts(client, checkout_client, rental):
    assert checkout(client, rental["id"]).status_code == 201
    assert checkout(client, rental["id"]).status_code == 409
    assert len(checkout_client.opened) == 1


def test_success_requires_paid_session(client, checkout_client, rental):
    session_id = checkout(client, rental["id"]).json()["session_id"]

    response = client.get("/payment/success", params={"session_id": session_id})
    assert response.status_code == 402
    assert response.json() == {"message": "Payment not completed"}


def test_success_marks_payment_completed(client, checkout_client, rental):
    body = checkout(client, rental["id"]).json()
    checkout_client.pay(body["session_id"])

    response = client.get("/payment/success", params={"session_id": body["session_id"]})
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    payment = client.get(f"/payments/{body['payment']['id']}", headers=auth(1)).json()
    assert payment["status"] == "completed"


def test_success_for_unknown_session(client):
    response = client.get("/payment/success", params={"session_id": "cs_missing"})
    assert response.status_code == 404


def test_success_when_provider_is_down(client, checkout_client, rental):
    session_id = checkout(client, rental["id"]).json()["session_id"]
    checkout_client.fail = True

    response = client.get("/payment/success", params={"session_id": session_id})
    assert response.status_code == 500


def test_cancel_keeps_open_session_pending(client, checkout_client, rental):
    body = checkout(client, rental["id"]).json()

    response = client.get("/payments/cancel", params={"session_id": body["session_id"]})
    assert response.status_code == 200
    assert response.json() == {"message": "Payment cancelled"}

    payment = client.get(f"/payments/{body['payment']['id']}", headers=auth(1)).json()
    assert payment["status"] == "pending"


def test_cancel_marks_expired_session_failed(client, checkout_client, rental):
    body = checkout(client, rental["id"]).json()
    checkout_client.expire(body["session_id"])

    client.get("/payments/cancel", params={"session_id": body["session_id"]})

    payment = client.get(f"/payments/{body['payment']['id']}", headers=auth(1)).json()
    assert payment["status"] == "failed"


def test_paying_after_cancel_completes_payment(client, checkout_client, rental):
    body = checkout(client, rental["id"]).json()
    client.get("/payments/cancel", params={"session_id": body["session_id"]})
    checkout_client.pay(body["session_id"])

    response = client.get("/payment/success", params={"session_id": body["session_id"]})
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_paid_session_overrides_failed_status(client, checkout_client, rental):
    body = checkout(client, rental["id"]).json()
    client.put(f"/payments/{body['payment']['id']}", headers=auth(1), json={"status": "failed"})
    checkout_client.pay(body["session_id"])

    response = client.get("/payment/success", params={"session_id": body["session_id"]})
    assert response.json()["status"] == "completed"

def test_cancel_without_session(client):
    response = client.get("/payments/cancel")
    assert response.status_code == 200
    assert response.json() == {"message": "Payment cancelled"}


def test_checkout_holds_no_transaction_during_provider_call(client, checkout_client, rental):
    assert checkout(client, rental["id"]).status_code == 201
    assert checkout_client.in_transaction_on_open
    assert not any(checkout_client.in_transaction_on_open)


def test_checkout_rejects_sub_cent_amount(client, checkout_client, rental):
    response = checkout(client, rental["id"], amount=19.995)
    assert response.status_code == 422
    assert response.json()["errors"] == {"amount": ["Value error, Amount may not have more than 2 decimal places"]}
    assert checkout_client.opened == []
