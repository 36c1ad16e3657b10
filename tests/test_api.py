from io import BytesIO

import pytest
from openpyxl import load_workbook

from workorders.utils.tokens import make_access_token


def _error(resp, status_code):
    assert resp.status_code == status_code, resp.text
    body = resp.json()
    assert body["error"] is True
    return body["msg"]


# ---------- auth ----------

def test_register_and_login(client):
    resp = client.post("/api/auth/register",
                       json={"username": "boss", "password": "secret1", "role": "production_manager"})
    assert resp.status_code == 201, resp.text
    assert resp.json()["user"]["role"] == "production_manager"

    resp = client.post("/api/auth/login", json={"username": "boss", "password": "secret1"})
    assert resp.status_code == 200
    token = resp.json()["token"]

    resp = client.get("/api/operators", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["operators"] == []


def test_register_duplicate(client, manager):
    resp = client.post("/api/auth/register",
                       json={"username": "manager", "password": "123456", "role": "operator"})
    assert "already exists" in _error(resp, 409)


def test_register_validation(client):
    resp = client.post("/api/auth/register", json={"username": "ab", "password": "1", "role": "operator"})
    _error(resp, 422)


def test_login_bad_credentials(client, manager):
    resp = client.post("/api/auth/login", json={"username": "manager", "password": "wrong"})
    assert _error(resp, 401) == "Invalid credentials"


def test_change_password(client, operator, auth_headers):
    resp = client.put("/api/auth/password", headers=auth_headers(operator),
                      json={"old_password": "123456", "new_password": "654321"})
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"username": "operator1", "password": "654321"})
    assert resp.status_code == 200


@pytest.mark.parametrize("headers, msg", [
    ({}, "Authorization header is required"),
    ({"Authorization": "Token abc"}, "Invalid authorization format"),
    ({"Authorization": "Bearer not-a-token"}, "Invalid or expired token"),
])
def test_protected_routes_need_token(client, headers, msg):
    resp = client.get("/api/work-orders/assigned", headers=headers)
    assert _error(resp, 401) == msg


def test_deleted_user_token_rejected(client, manager, operator, auth_headers):
    resp = client.delete(f"/api/operators/{operator.id}", headers=auth_headers(manager))
    assert resp.status_code == 200

    resp = client.get("/api/work-orders/assigned", headers=auth_headers(operator))
    _error(resp, 401)
    resp = client.post("/api/auth/login", json={"username": "operator1", "password": "123456"})
    _error(resp, 401)


def test_health_is_public(client):
    assert client.get("/health").json()["status"] == "ok"


# ---------- RBAC ----------

@pytest.mark.parametrize("path", [
    "/api/reports/summary",
    "/api/reports/performance",
    "/api/audit-logs",
    "/api/work-orders",
])
def test_manager_only_routes(client, operator, auth_headers, path):
    resp = client.get(path, headers=auth_headers(operator))
    assert _error(resp, 403) == "Access forbidden: insufficient permissions"


def test_assigned_is_operator_only(client, manager, auth_headers):
    _error(client.get("/api/work-orders/assigned", headers=auth_headers(manager)), 403)


def test_unknown_role_in_token(client, manager):
    token = make_access_token(manager.id, manager.username, "admin")
    resp = client.get("/api/reports/dashboard", headers={"Authorization": f"Bearer {token}"})
    _error(resp, 403)


# ---------- наряды ----------

def _create(client, headers, operator_id, **extra):
    payload = {
        "product_name": "Widget",
        "quantity": 10,
        "production_deadline": "2030-06-15T12:00:00Z",
        "operator_id": operator_id,
    }
    payload.update(extra)
    return client.post("/api/work-orders", json=payload, headers=headers)


def test_work_order_flow(client, manager, operator, auth_headers):
    mh, oh = auth_headers(manager), auth_headers(operator)

    resp = _create(client, mh, operator.id)
    assert resp.status_code == 201, resp.text
    wo = resp.json()["work_order"]
    assert wo["status"] == "pending"
    assert wo["operator"]["username"] == "operator1"
    wo_id = wo["id"]

    resp = client.get("/api/work-orders/assigned", headers=oh)
    assert resp.json()["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}

    resp = client.put(f"/api/work-orders/{wo_id}/status", json={"status": "in_progress"}, headers=oh)
    assert resp.json()["work_order"]["status"] == "in_progress"

    resp = client.post(f"/api/work-orders/{wo_id}/progress",
                       json={"progress_description": "half", "progress_quantity": 5}, headers=oh)
    assert resp.status_code == 201

    resp = client.put(f"/api/work-orders/{wo_id}/status",
                      json={"status": "completed", "quantity": 9}, headers=oh)
    assert resp.json()["work_order"]["quantity"] == 9

    resp = client.put(f"/api/work-orders/{wo_id}/status", json={"status": "in_progress"}, headers=oh)
    assert "Invalid status transition" in _error(resp, 400)

    history = client.get(f"/api/work-orders/{wo_id}/history", headers=oh).json()["history"]
    assert [h["status"] for h in history] == ["pending", "in_progress", "completed"]

    progress = client.get(f"/api/work-orders/{wo_id}/progress", headers=oh).json()["progress"]
    assert [p["progress_quantity"] for p in progress] == [5]


def test_progress_on_pending_is_invalid_state(client, manager, operator, auth_headers):
    wo_id = _create(client, auth_headers(manager), operator.id).json()["work_order"]["id"]

    resp = client.post(f"/api/work-orders/{wo_id}/progress",
                       json={"progress_description": "early"}, headers=auth_headers(operator))
    _error(resp, 400)


def test_foreign_operator_forbidden(client, manager, operator, other_operator, auth_headers):
    wo_id = _create(client, auth_headers(manager), operator.id).json()["work_order"]["id"]
    oh = auth_headers(other_operator)

    _error(client.get(f"/api/work-orders/{wo_id}", headers=oh), 403)
    _error(client.put(f"/api/work-orders/{wo_id}/status", json={"status": "in_progress"}, headers=oh), 403)


def test_create_validation(client, manager, operator, auth_headers):
    _error(_create(client, auth_headers(manager), operator.id, quantity=0), 422)
    _error(_create(client, auth_headers(manager), 999), 404)
    _error(_create(client, auth_headers(manager), manager.id), 400)


def test_update_and_delete(client, manager, operator, auth_headers):
    mh = auth_headers(manager)
    wo_id = _create(client, mh, operator.id).json()["work_order"]["id"]

    resp = client.put(f"/api/work-orders/{wo_id}", json={"product_name": "Gizmo"}, headers=mh)
    assert resp.json()["work_order"]["product_name"] == "Gizmo"

    logs = client.get(f"/api/work-orders/{wo_id}/logs", headers=mh).json()["logs"]
    assert logs[0]["action"] == "update"
    assert logs[0]["changes"] == {"product_name": {"old": "Widget", "new": "Gizmo"}}
    assert logs[0]["user"]["username"] == "manager"

    assert client.delete(f"/api/work-orders/{wo_id}", headers=mh).status_code == 200
    listing = client.get("/api/work-orders", headers=mh).json()
    assert listing["work_orders"] == []
    assert client.get(f"/api/work-orders/{wo_id}", headers=mh).json()["work_order"]["deleted_at"]

    _error(client.put(f"/api/work-orders/{wo_id}", json={"product_name": "x"}, headers=mh), 404)


def test_add_note(client, manager, operator, auth_headers):
    wo_id = _create(client, auth_headers(manager), operator.id).json()["work_order"]["id"]

    resp = client.post(f"/api/work-orders/{wo_id}/logs",
                       json={"note": "starting now", "status": "in_progress"},
                       headers=auth_headers(operator))
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["work_order"]["status"] == "in_progress"
    assert body["log"]["action"] == "custom"
    assert body["log"]["note"] == "starting now"


def test_audit_logs_listing(client, manager, operator, auth_headers):
    mh = auth_headers(manager)
    _create(client, mh, operator.id)
    _create(client, mh, operator.id)

    resp = client.get("/api/audit-logs", params={"entity_type": "WorkOrder", "limit": 1}, headers=mh)
    body = resp.json()
    assert body["pagination"] == {"total": 2, "page": 1, "limit": 1, "pages": 2}
    assert body["audit_logs"][0]["action"] == "create"


def test_list_search_and_pagination(client, manager, operator, auth_headers):
    mh = auth_headers(manager)
    for name in ("Laptop Pro", "Power Bank", "Laptop Air"):
        _create(client, mh, operator.id, product_name=name)

    body = client.get("/api/work-orders", params={"search": "laptop"}, headers=mh).json()
    assert body["pagination"]["total"] == 2

    body = client.get("/api/work-orders", params={"status": "bogus"}, headers=mh)
    _error(body, 400)


# ---------- отчёты ----------

def test_reports(client, manager, operator, auth_headers):
    mh = auth_headers(manager)
    _create(client, mh, operator.id)
    window = {"start_date": "2030-06-01", "end_date": "2030-06-30"}

    summary = client.get("/api/reports/dashboard", params=window, headers=auth_headers(operator)).json()
    assert summary["summary"][-1] == {"status": "total", "count": 1}

    rows = client.get("/api/reports/summary", params=window, headers=mh).json()["summary"]
    assert [r["product_name"] for r in rows] == ["Widget", "Total"]

    rows = client.get(f"/api/reports/summary/{operator.id}", headers=mh).json()["summary"]
    assert rows[0]["total_wo"] == 1

    perf = client.get("/api/reports/performance", headers=mh).json()["performances"]
    assert perf[0]["username"] == "operator1" and perf[0]["assigned"] == 1

    bad = client.get("/api/reports/summary",
                     params={"start_date": "2030-06-30", "end_date": "2030-06-01"}, headers=mh)
    _error(bad, 400)


def test_summary_export(client, manager, operator, auth_headers):
    mh = auth_headers(manager)
    _create(client, mh, operator.id)

    resp = client.get("/api/reports/summary/export",
                      params={"start_date": "2030-06-01", "end_date": "2030-06-30"}, headers=mh)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "attachment" in resp.headers["content-disposition"]

    ws = load_workbook(BytesIO(resp.content)).active
    values = [row for row in ws.iter_rows(values_only=True)]
    products = [row[0] for row in values[4:]]
    assert products == ["Widget", "Total"]
