import pytest
from postgrest.exceptions import APIError

from app.core.errors import NotFound, RewardAlreadyRedeemed, RewardNotAvailable
from app.repositories.customer import CustomerRepository
from app.services import rewards
from app.services.loyalty import LoyaltyService

PASS_TYPE = "pass.com.vigocoffee.loyalty"


def _register_device(fake_db, serial="cust-0001", token="push-token-1"):
    fake_db.rows("pass_registrations").append({
        "device_library_identifier": "device-1",
        "pass_type_identifier": PASS_TYPE,
        "serial_number": serial,
        "push_token": token,
    })


# ============================================
# Service
# ============================================


def test_purchase_adds_one_point_and_logs_transaction(fake_db, customer):
    result = LoyaltyService().record_purchase("cust-0001", employee_id="emp-1")

    assert result.state.points_balance == 10
    assert result.state.total_purchases == 10
    assert result.points_earned == rewards.POINTS_PER_PURCHASE
    assert result.status.reward_type == "coffee"
    assert result.message.endswith(rewards.MESSAGE_COFFEE)
    assert fake_db.rows("profiles")[0]["points_balance"] == 10

    transaction = fake_db.rows("transactions")[0]
    assert transaction["type"] == "purchase"
    assert transaction["points_change"] == 1
    assert transaction["points_balance_after"] == 10
    assert transaction["employee_id"] == "emp-1"


def test_purchase_succeeds_when_transaction_log_fails(fake_db, customer):
    fake_db.fail_on("transactions", "insert", APIError({"message": "relation does not exist", "code": "42P01"}))

    result = LoyaltyService().record_purchase("cust-0001")

    assert result.state.points_balance == 10


def test_purchase_surfaces_balance_write_failures(fake_db, customer):
    fake_db.fail_on("profiles", "update", APIError({"message": "permission denied", "code": "42501"}))

    with pytest.raises(APIError):
        LoyaltyService().record_purchase("cust-0001")


def test_purchase_for_unknown_customer(fake_db):
    with pytest.raises(NotFound):
        LoyaltyService().record_purchase("nobody")


def _customers_deleted_after_lookup(fake_db):
    class Customers(CustomerRepository):
        @staticmethod
        def get_pass_state(serial_number):
            state = CustomerRepository.get_pass_state(serial_number)
            fake_db.tables["profiles"] = []
            return state

    return Customers


def test_purchase_for_customer_deleted_mid_write_is_not_found(fake_db, customer):
    service = LoyaltyService(customers=_customers_deleted_after_lookup(fake_db))

    with pytest.raises(NotFound):
        service.record_purchase("cust-0001")

    assert fake_db.rows("profiles") == []
    assert fake_db.rows("transactions") == []


def test_redeem_for_customer_deleted_mid_write_is_not_found(fake_db, customer):
    fake_db.rows("profiles")[0]["points_balance"] = 10
    service = LoyaltyService(customers=_customers_deleted_after_lookup(fake_db))

    with pytest.raises(NotFound):
        service.redeem_reward("cust-0001", "coffee", 10)

    assert fake_db.rows("transactions") == []


def test_purchase_and_redeem_scenario(fake_db):
    fake_db.rows("profiles").append({"id": "cust-0002", "full_name": "Sam", "points_balance": 0})
    service = LoyaltyService()

    for _ in range(9):
        assert service.record_purchase("cust-0002").status.reward_earned is False

    tenth = service.record_purchase("cust-0002")
    assert tenth.status.earned_coffee is True
    assert tenth.status.reward_type == "coffee"

    redeemed = service.redeem_reward("cust-0002", "coffee", 10)
    assert redeemed.state.redeemed_rewards.coffees == {10}
    assert redeemed.state.points_balance == 10
    assert fake_db.rows("profiles")[0]["redeemed_rewards"] == {"coffees": [10], "meals": []}

    for _ in range(9):
        assert service.record_purchase("cust-0002").status.reward_earned is False

    assert service.record_purchase("cust-0002").status.earned_coffee is True


def test_redeem_rejects_repeat_and_unreached_thresholds(fake_db, customer):
    service = LoyaltyService()
    service.record_purchase("cust-0001")
    service.redeem_reward("cust-0001", "coffee", 10)

    with pytest.raises(RewardAlreadyRedeemed):
        service.redeem_reward("cust-0001", "coffee", 10)
    with pytest.raises(RewardNotAvailable):
        service.redeem_reward("cust-0001", "coffee", 20)
    with pytest.raises(RewardNotAvailable):
        service.redeem_reward("cust-0001", "meal", 10)


def test_redemption_logged_without_point_change(fake_db, customer):
    fake_db.rows("profiles")[0]["points_balance"] = 25

    LoyaltyService().redeem_reward("cust-0001", "meal", 25, employee_id="emp-1")

    transaction = fake_db.rows("transactions")[0]
    assert transaction["type"] == "redemption"
    assert transaction["points_change"] == 0
    assert transaction["reward_type"] == "meal"
    assert transaction["reward_points_threshold"] == 25


# ============================================
# Employee endpoints
# ============================================


def test_endpoints_require_employee_token(client, customer):
    assert client.post("/purchase", json={"customer_id": "cust-0001"}).status_code == 401
    assert client.get("/scan/cust-0001").status_code == 401


def test_non_employee_is_forbidden(client, customer, employee_headers, fake_db):
    fake_db.rows("employees")[0]["is_active"] = False

    response = client.post("/purchase", json={"customer_id": "cust-0001"}, headers=employee_headers)

    assert response.status_code == 403


def test_invalid_jwt_is_unauthorized(client, customer):
    response = client.get("/scan/cust-0001", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_scan_lists_available_rewards(client, customer, employee_headers, fake_db):
    fake_db.rows("profiles")[0].update({"points_balance": 30, "redeemed_rewards": {"coffees": [10], "meals": []}})

    response = client.get("/scan/cust-0001", headers=employee_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["customer"]["points_balance"] == 30
    assert body["customer"]["name"] == "Ana Lopez"
    assert body["available_rewards"] == {"coffees": [20, 30], "meals": [25]}
    assert body["reward_status"]["earned_coffee"] is True


def test_scan_unknown_customer(client, employee_headers):
    response = client.get("/scan/nobody", headers=employee_headers)

    assert response.status_code == 404
    assert response.json() == {"detail": "Customer not found"}


def test_purchase_endpoint_pushes_update_after_response(client, customer, employee_headers, fake_db, fake_apns):
    _register_device(fake_db)

    response = client.post("/purchase", json={"customer_id": "cust-0001"}, headers=employee_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["points_earned"] == 1
    assert body["reward_earned"] is True
    assert body["reward_type"] == "coffee"
    assert body["customer"]["points_balance"] == 10
    assert fake_apns.sent == [("push-token-1", PASS_TYPE)]


def test_purchase_succeeds_when_push_fails(client, customer, employee_headers, fake_db, fake_apns):
    _register_device(fake_db, token="stale-token")
    fake_apns.rejected.add("stale-token")

    response = client.post("/purchase", json={"customer_id": "cust-0001"}, headers=employee_headers)

    assert response.status_code == 200
    assert fake_apns.sent == []


def test_purchase_succeeds_when_device_lookup_fails(client, customer, employee_headers, fake_db):
    fake_db.fail_on("pass_registrations", "select", APIError({"message": "boom", "code": "500"}))

    response = client.post("/purchase", json={"customer_id": "cust-0001"}, headers=employee_headers)

    assert response.status_code == 200
    assert fake_db.rows("profiles")[0]["points_balance"] == 10


def test_redeem_endpoint(client, customer, employee_headers, fake_db, fake_apns):
    fake_db.rows("profiles")[0]["points_balance"] = 10
    _register_device(fake_db)

    response = client.post(
        "/redeem",
        json={"customer_id": "cust-0001", "type": "coffee", "points": 10},
        headers=employee_headers,
    )
    repeat = client.post(
        "/redeem",
        json={"customer_id": "cust-0001", "type": "coffee", "points": 10},
        headers=employee_headers,
    )

    assert response.status_code == 200
    assert response.json()["customer"]["redeemed_rewards"]["coffees"] == [10]
    assert fake_apns.sent == [("push-token-1", PASS_TYPE)]
    assert repeat.status_code == 400
    assert repeat.json() == {"detail": "Reward already redeemed"}


@pytest.mark.parametrize(
    "payload",
    [
        {"customer_id": "cust-0001", "type": "tea", "points": 10},
        {"customer_id": "cust-0001", "type": "coffee", "points": 0},
        {"customer_id": "", "type": "coffee", "points": 10},
    ],
)
def test_redeem_validates_payload(client, customer, employee_headers, payload):
    assert client.post("/redeem", json=payload, headers=employee_headers).status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
