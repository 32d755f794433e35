import pytest

from loan_engine_web.app import create_app

TERMS = {
    "principal": "10000",
    "rate": "12",
    "interest_type": "Reducing",
    "start_date": "2024-01-15",
    "duration": 12,
}

LOAN = {
    "id": "L1",
    "principal_amount": "10000",
    "interest_rate": "12",
    "start_date": "2024-01-01",
    "interest_type": "Reducing",
}

REPAYMENT = {
    "type": "Repayment",
    "date": "2024-01-15",
    "amount": "1020",
    "principal_applied": "1000",
    "interest_applied": "20",
}


@pytest.fixture
def app():
    app = create_app(database_url="sqlite://")
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def test_schedule_endpoint(client):
    response = client.post("/api/schedule", json=TERMS)

    assert response.status_code == 200
    data = response.get_json()
    assert len(data["schedule"]) == 12
    assert data["summary"]["installment_amount"] == "888.49"
    assert data["schedule"][0]["status"] == "Pending"


def test_summary_endpoint(client):
    response = client.post("/api/summary", json=dict(TERMS, interest_type="Flat"))
    assert response.get_json()["summary"]["number_of_installments"] == 12


def test_bad_requests_are_rejected(client):
    assert client.post("/api/schedule", json=dict(TERMS, interest_type="Balloon")).status_code == 400
    assert client.post("/api/schedule", data="not json", content_type="text/plain").status_code == 400
    response = client.post("/api/balance", json={"loan": LOAN})
    assert response.status_code == 400
    assert "as_of" in response.get_json()["error"]


def test_interest_endpoint(client):
    response = client.post(
        "/api/interest",
        json={"loan": LOAN, "from": "2024-01-01", "to": "2024-01-31"},
    )

    data = response.get_json()
    assert data["interest"]["total_interest"] == "98.63"
    assert data["events"] == []


def test_accrued_endpoint(client):
    response = client.post(
        "/api/accrued",
        json={"loan": LOAN, "transactions": [REPAYMENT], "as_of": "2024-01-30"},
    )

    data = response.get_json()
    assert data["accrued"]["interest_accrued"] == "93.37"
    assert data["accrued"]["principal_remaining"] == "9000.00"
    assert "settlement_estimate" in data


def test_waterfall_endpoint(client):
    row = {"installment_number": 1, "due_date": "2024-02-01", "interest_amount": "100", "principal_amount": "400"}
    response = client.post("/api/waterfall", json={"schedule": [row], "amount": "150"})

    update = response.get_json()["waterfall"]["updates"][0]
    assert update["status"] == "Partial"
    assert update["principal_paid"] == "50.00"


def test_recompute_and_balance_cache(client):
    response = client.post(
        "/api/balances/recompute",
        json={
            "as_of": "2024-01-30",
            "loans": [
                {"loan": LOAN, "transactions": [REPAYMENT]},
                {"loan": dict(LOAN, id="L2")},
            ],
        },
    )

    data = response.get_json()
    assert sorted(data["result"]["succeeded"]) == ["L1", "L2"]
    assert [b["loan_id"] for b in data["balances"]] == ["L1", "L2"]

    cached = client.get("/api/balances/L1").get_json()
    assert cached["principal_remaining"] == "9000.00"
    assert cached["interest_remaining"] == "73.37"
    assert cached["as_of"] == "2024-01-30"

    assert client.delete("/api/balances/L1").status_code == 204
    assert client.get("/api/balances/L1").status_code == 404
    assert [b["loan_id"] for b in client.get("/api/balances").get_json()["balances"]] == ["L2"]
