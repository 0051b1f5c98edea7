"""
HTTP API tests.

Role checks, error envelopes and the main scheduling flow end to end.
"""

import pytest

from transport_planner.app.models.route_alert import AlertType
from transport_planner.app.services.alert_service import AlertService


async def _create_route(client, headers, **body):
    body.setdefault("name", "Harbor run")
    response = await client.post("/v1/fleet/routes", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == "up"


@pytest.mark.asyncio
async def test_requests_without_valid_token_are_rejected(client):
    response = await client.get("/v1/templates")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/templates", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_viewer_cannot_mutate(client, auth_headers):
    response = await client.post("/v1/fleet/drivers", json={"name": "Nobody"}, headers=auth_headers("viewer"))
    assert response.status_code == 403

    response = await client.get("/v1/fleet/drivers", headers=auth_headers("viewer"))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_route_codes_and_duplicate_plates(client, auth_headers):
    headers = auth_headers("planner")
    route = await _create_route(client, headers)
    assert route["route_code"] == f"RTE{route['id']:06d}"

    first = await client.post("/v1/fleet/vehicles", json={"plate_number": "70-1234"}, headers=headers)
    assert first.status_code == 201
    assert first.json()["vehicle_code"].startswith("VEH")

    second = await client.post("/v1/fleet/vehicles", json={"plate_number": "70-1234"}, headers=headers)
    assert second.status_code == 409
    assert second.json()["error_code"] == "ERR_DUPLICATE_001"

    listed = await client.get("/v1/fleet/vehicles", headers=headers)
    assert len(listed.json()) == 1


@pytest.mark.asyncio
async def test_template_flow(client, auth_headers):
    headers = auth_headers("planner")
    route = await _create_route(client, headers, estimated_duration_minutes=60)

    response = await client.post("/v1/templates", json={
        "route_id": route["id"],
        "schedule_name": "Mon/Wed/Fri harbor",
        "days_of_week": [5, 1, 3],
        "start_date": "2025-03-03",
        "end_date": "2025-03-09",
        "departure_time": "08:00:00",
        "status": "Confirmed",
    }, headers=headers)
    assert response.status_code == 201, response.text
    template = response.json()
    assert template["days_of_week"] == [1, 3, 5]
    assert template["version"] == 1

    window = {"start_date": "2025-03-03", "end_date": "2025-03-09"}
    calendar = await client.get("/v1/occurrences", params=window, headers=auth_headers("viewer"))
    assert calendar.status_code == 200
    assert [o["schedule_date"] for o in calendar.json()["occurrences"]] == [
        "2025-03-03", "2025-03-05", "2025-03-07"
    ]

    stale = await client.patch(
        f"/v1/templates/{template['id']}", json={"departure_time": "09:00:00", "expected_version": 5},
        headers=headers,
    )
    assert stale.status_code == 409
    assert stale.json()["error_code"] == "ERR_CONFLICT_001"

    updated = await client.patch(
        f"/v1/templates/{template['id']}", json={"departure_time": "09:00:00", "expected_version": 1},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["version"] == 2

    nulled = await client.patch(
        f"/v1/templates/{template['id']}", json={"schedule_name": None}, headers=headers
    )
    assert nulled.status_code == 422
    assert nulled.json()["error_code"] == "ERR_VALIDATION_001"

    tuesday = await client.put(
        f"/v1/templates/{template['id']}/occurrences/2025-03-04", json={"notes": "extra"}, headers=headers
    )
    assert tuesday.status_code == 422
    assert tuesday.json()["error_code"] == "ERR_VALIDATION_001"

    removed = await client.delete(
        f"/v1/templates/{template['id']}/occurrences/2025-03-05", params={"reason": "Holiday"}, headers=headers
    )
    assert removed.status_code == 200
    assert removed.json()["is_deleted"] is True

    calendar = await client.get("/v1/occurrences", params=window, headers=headers)
    body = calendar.json()
    assert body["total"] == 2
    assert all(o["departure_time"] == "09:00:00" for o in body["occurrences"])


@pytest.mark.asyncio
async def test_occurrence_window_validation(client, auth_headers):
    response = await client.get(
        "/v1/occurrences", params={"start_date": "2025-03-09", "end_date": "2025-03-03"},
        headers=auth_headers("viewer"),
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_alert_read_state(client, db_session, users, auth_headers):
    alert = await AlertService.create_alert(db_session, users["viewer"].id, AlertType.CHANGE, "Schedule changed")
    await db_session.commit()

    listed = await client.get("/v1/alerts", headers=auth_headers("viewer"))
    assert [a["id"] for a in listed.json()] == [alert.id]

    other = await client.patch(f"/v1/alerts/{alert.id}/read", headers=auth_headers("planner"))
    assert other.status_code == 404

    own = await client.patch(f"/v1/alerts/{alert.id}/read", headers=auth_headers("viewer"))
    assert own.status_code == 200

    unread = await client.get("/v1/alerts", params={"unread_only": True}, headers=auth_headers("viewer"))
    assert unread.json() == []


@pytest.mark.asyncio
async def test_suggestion_config_is_admin_only(client, auth_headers):
    current = await client.get("/v1/suggestions/config", headers=auth_headers("viewer"))
    assert current.status_code == 200
    assert current.json()["distance_weight"] == 0.4

    denied = await client.put(
        "/v1/suggestions/config", json={"values": {"efficiency_threshold": 0.8}}, headers=auth_headers("planner")
    )
    assert denied.status_code == 403

    invalid = await client.put(
        "/v1/suggestions/config", json={"values": {"distance_weight": 0.9}}, headers=auth_headers("admin")
    )
    assert invalid.status_code == 422

    accepted = await client.put(
        "/v1/suggestions/config", json={"values": {"efficiency_threshold": 0.8}}, headers=auth_headers("admin")
    )
    assert accepted.status_code == 200
    assert accepted.json()["efficiency_threshold"] == 0.8


@pytest.mark.asyncio
async def test_audit_trail_is_admin_only(client, auth_headers):
    route = await _create_route(client, auth_headers("planner"))

    denied = await client.get("/v1/admin/audit", headers=auth_headers("planner"))
    assert denied.status_code == 403

    response = await client.get(
        "/v1/admin/audit", params={"table_name": "routes", "record_id": str(route["id"])},
        headers=auth_headers("admin"),
    )
    assert response.status_code == 200
    logs = response.json()["logs"]
    assert [log["operation"] for log in logs] == ["INSERT"]
    assert logs[0]["new_values"]["route_code"] == route["route_code"]
