"""
Integration tests for the fee API.

Covers role enforcement, the error envelope and the main
structure -> ledger -> receipt -> reversal flow over HTTP.
"""

import pytest

from campus_fees.tests.factories import structure_json

AARAV = {"id": 1001, "name": "Aarav Sharma", "roll_no": "CSE2401", "department": "CSE", "course": "BTECH"}
DIYA = {"id": 1002, "name": "Diya Patel", "roll_no": "CSE2402", "department": "CSE", "course": "BTECH"}


@pytest.fixture
async def active_structure(client, admin_headers):
    """Create, approve and activate a structure over the API."""
    response = await client.post("/v1/fees/structures", json=structure_json(), headers=admin_headers)
    assert response.status_code == 201
    structure_id = response.json()["id"]

    response = await client.post(
        f"/v1/fees/structures/{structure_id}/approve", json={"remarks": "Board approved"}, headers=admin_headers
    )
    assert response.status_code == 200
    response = await client.post(f"/v1/fees/structures/{structure_id}/activate", headers=admin_headers)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
async def ledger(client, admin_headers, active_structure):
    response = await client.post("/v1/fees/ledgers", json={
        "student": AARAV,
        "fee_structure_id": active_structure["id"],
        "options": {"optional_heads": ["HOSTEL"]},
    }, headers=admin_headers)
    assert response.status_code == 201
    return response.json()


async def pay(client, headers, ledger_id, amount, mode="CASH"):
    return await client.post("/v1/fees/receipts", json={
        "ledger_id": ledger_id,
        "amount": amount,
        "payment_mode": mode,
    }, headers=headers)


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["currency"] == "INR"


async def test_missing_or_bad_token_rejected(client):
    response = await client.get("/v1/fees/ledgers")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/fees/ledgers", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


async def test_faculty_can_read_but_not_write(client, faculty_headers, ledger):
    response = await client.get(f"/v1/fees/ledgers/{ledger['id']}", headers=faculty_headers)
    assert response.status_code == 200

    response = await pay(client, faculty_headers, ledger["id"], 1000)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"

    response = await client.post("/v1/fees/structures", json=structure_json(), headers=faculty_headers)
    assert response.status_code == 403


async def test_structure_create_generates_code(client, admin_headers, active_structure):
    assert active_structure["code"] == "FS-202425-BTECH-CSE-S1"
    assert active_structure["status"] == "active"
    assert active_structure["approved_total"] == 5000000

    response = await client.get("/v1/fees/structures", params={"status": "active"}, headers=admin_headers)
    assert response.json()["total"] == 1

    response = await client.get("/v1/fees/structures/fee-heads", headers=admin_headers)
    assert "TUITION" in [head["head_code"] for head in response.json()]


async def test_assignment_locks_structure(client, admin_headers, active_structure, ledger):
    assert ledger["net_payable"] == 5000000
    assert ledger["fee_status"] == "UNPAID"
    assert {head["head_code"] for head in ledger["fee_heads"] if head["is_applicable"]} == {"TUITION", "LIBRARY", "HOSTEL"}

    structure_id = active_structure["id"]
    response = await client.get(f"/v1/fees/structures/{structure_id}", headers=admin_headers)
    assert response.json()["is_locked"] is True

    response = await client.patch(f"/v1/fees/structures/{structure_id}", json={"name": "Renamed"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_FEE_LOCKED"

    response = await client.post(f"/v1/fees/structures/{structure_id}/version", headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["code"] == "FS-202425-BTECH-CSE-S1-V2"
    assert response.json()["status"] == "draft"


async def test_duplicate_assignment_conflicts(client, admin_headers, active_structure, ledger):
    response = await client.post("/v1/fees/ledgers", json={
        "student": AARAV,
        "fee_structure_id": active_structure["id"],
    }, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_FEE_STATE"


async def test_bulk_assign(client, admin_headers, active_structure, ledger):
    response = await client.post("/v1/fees/ledgers/bulk-assign", json={
        "students": [AARAV, DIYA],
        "fee_structure_id": active_structure["id"],
    }, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert [item["student_id"] for item in body["success"]] == [1002]
    assert [item["student_id"] for item in body["failed"]] == [1001]


async def test_payment_and_reversal_flow(client, admin_headers, ledger):
    ledger_id = ledger["id"]

    response = await pay(client, admin_headers, ledger_id, 2000000, mode="UPI")
    assert response.status_code == 201
    payment = response.json()
    receipt = payment["receipt"]
    assert receipt["receipt_number"].startswith("RCP-")
    assert receipt["display_status"] == "ACTIVE"
    assert payment["ledger"]["outstanding_balance"] == 3000000
    assert payment["ledger"]["fee_status"] == "PARTIALLY_PAID"

    response = await client.get(f"/v1/fees/receipts/number/{receipt['receipt_number']}", headers=admin_headers)
    assert response.json()["id"] == receipt["id"]

    response = await client.post(
        f"/v1/fees/receipts/{receipt['id']}/reverse", json={"reason": "Payment failed at bank"}, headers=admin_headers
    )
    assert response.status_code == 200
    result = response.json()
    assert result["reversal"]["receipt_type"] == "REVERSAL"
    assert result["reversal"]["effective_amount"] == -2000000
    assert result["original"]["display_status"] == "REVERSED"
    assert result["ledger"]["total_paid"] == 0

    response = await client.post(
        f"/v1/fees/receipts/{receipt['id']}/reverse", json={"reason": "Again"}, headers=admin_headers
    )
    assert response.status_code == 409

    response = await client.get(f"/v1/fees/ledgers/{ledger_id}/balance", headers=admin_headers)
    assert response.json()["reversal_count"] == 1
    assert response.json()["outstanding_balance"] == 5000000

    response = await client.get(f"/v1/fees/receipts/ledger/{ledger_id}", headers=admin_headers)
    assert [item["receipt_type"] for item in response.json()] == ["PAYMENT", "REVERSAL"]


async def test_rejected_payment_uses_error_envelope_and_is_audited(client, admin_headers, ledger):
    response = await pay(client, admin_headers, ledger["id"], 5000001)

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_FEE_VALIDATION"
    assert body["message"] == "Payment amount exceeds outstanding balance"
    assert body["details"]["outstanding_balance"] == 5000000

    response = await client.get("/v1/fees/audit", params={"status": "FAILED"}, headers=admin_headers)
    assert response.status_code == 200
    logs = response.json()["logs"]
    assert [log["action"] for log in logs] == ["RECEIPT_CREATED"]


async def test_request_validation_envelope(client, admin_headers):
    response = await client.post("/v1/fees/receipts", json={"ledger_id": 1}, headers=admin_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


async def test_unknown_ledger_is_404(client, admin_headers):
    response = await client.get("/v1/fees/ledgers/9999", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


async def test_verify_and_close(client, admin_headers, ledger):
    receipt = (await pay(client, admin_headers, ledger["id"], 5000000)).json()["receipt"]

    response = await client.post(f"/v1/fees/receipts/{receipt['id']}/verify", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["display_status"] == "VERIFIED"

    response = await client.post(f"/v1/fees/ledgers/{ledger['id']}/close", json={"reason": "Settled"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["is_closed"] is True

    response = await pay(client, admin_headers, ledger["id"], 1)
    assert response.status_code == 409


async def test_student_sees_only_own_records(client, admin_headers, student_headers, active_structure, ledger):
    response = await client.post("/v1/fees/ledgers", json={
        "student": DIYA,
        "fee_structure_id": active_structure["id"],
    }, headers=admin_headers)
    assert response.status_code == 201
    await pay(client, admin_headers, ledger["id"], 1000000)

    response = await client.get("/v1/fees/student/ledgers", headers=student_headers)
    assert response.status_code == 200
    assert [item["student_id"] for item in response.json()] == [1001]

    response = await client.get("/v1/fees/student/summary", headers=student_headers)
    assert response.json()["total_outstanding"] == 4000000

    response = await client.get("/v1/fees/student/receipts", headers=student_headers)
    assert [item["amount"] for item in response.json()] == [1000000]

    response = await client.get("/v1/fees/ledgers", headers=student_headers)
    assert response.status_code == 403


async def test_staff_cannot_use_student_routes(client, admin_headers):
    response = await client.get("/v1/fees/student/ledgers", headers=admin_headers)
    assert response.status_code == 403


async def test_reports_and_overdue_refresh(client, admin_headers, faculty_headers, ledger):
    response = await client.get("/v1/fees/dashboard", headers=faculty_headers)
    assert response.status_code == 200
    assert response.json()["ledger_count"] == 1

    response = await client.get("/v1/fees/reports/aging", headers=faculty_headers)
    assert len(response.json()["buckets"]) == 4

    response = await client.get("/v1/fees/reports/integrity", headers=faculty_headers)
    assert response.status_code == 403
    response = await client.get("/v1/fees/reports/integrity", headers=admin_headers)
    assert response.json()["is_consistent"] is True

    response = await client.post("/v1/fees/ops/overdue-refresh", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"processed_count": 1, "newly_overdue": 0}

    response = await client.get("/v1/fees/audit/summary", headers=admin_headers)
    actions = {row["action"] for row in response.json()}
    assert {"LEDGER_CREATED", "REPORT_GENERATED", "OVERDUE_BATCH_PROCESSED"} <= actions
