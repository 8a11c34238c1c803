from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shared.config.database import get_db
from shared.security.api_key import INTERNAL_API_KEY
from services.order_service.main import order_app
from services.orchestrator.main import bulk_app
from services.reminder_service.main import reminder_app
from services.waitlist_service.main import waitlist_app
from services.waitlist_service.service import get_reminder_scheduler, get_workflow

APPS = (order_app, waitlist_app, reminder_app, bulk_app)
API_HEADERS = {"X-Internal-API-Key": INTERNAL_API_KEY}


@pytest_asyncio.fixture
async def client_for(session_factory, workflow, scheduler):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    for sub_app in APPS:
        sub_app.dependency_overrides[get_db] = override_get_db
        sub_app.dependency_overrides[get_workflow] = lambda: workflow
        sub_app.dependency_overrides[get_reminder_scheduler] = lambda: scheduler

    clients = []

    def _client(sub_app, headers=API_HEADERS):
        client = AsyncClient(transport=ASGITransport(app=sub_app), base_url="http://test", headers=headers)
        clients.append(client)
        return client

    yield _client

    for client in clients:
        await client.aclose()
    for sub_app in APPS:
        sub_app.dependency_overrides.clear()


async def submit(client, contact="shop@example.test"):
    response = await client.post("/", json={"applicant_contact": contact})
    assert response.status_code == 201
    return response.json()


@pytest.mark.parametrize("sub_app", APPS)
async def test_health_needs_no_key(client_for, sub_app):
    response = await client_for(sub_app, headers={}).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


async def test_admin_routes_require_internal_key(client_for):
    response = await client_for(waitlist_app, headers={}).post("/", json={"applicant_contact": "a@b.test"})
    assert response.status_code == 403

    response = await client_for(order_app, headers={"X-Internal-API-Key": "wrong"}).get("/")
    assert response.status_code == 403


async def test_submit_and_walk_through_transitions(client_for, transport):
    client = client_for(waitlist_app)
    created = await submit(client)

    response = await client.post(f"/{created['id']}/transitions", json={"event": "approve"})

    assert response.status_code == 200
    body = response.json()
    assert body["application"]["request_status"] == "approved"
    assert body["payment_status"] == "pending"
    assert body["fulfillment_status"] == "processing"
    assert body["warnings"] == []
    assert transport.templates() == ["deposit-request"]


async def test_invalid_transition_is_a_conflict(client_for):
    client = client_for(waitlist_app)
    created = await submit(client)

    response = await client.post(f"/{created['id']}/transitions", json={"event": "mark_order_ready"})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"] == "invalid_transition"
    assert detail["from"] == "pending"
    assert detail["event"] == "mark_order_ready"


async def test_unknown_event_is_rejected_by_validation(client_for):
    client = client_for(waitlist_app)
    created = await submit(client)

    response = await client.post(f"/{created['id']}/transitions", json={"event": "teleport"})

    assert response.status_code == 422


async def test_missing_application_is_not_found(client_for):
    client = client_for(waitlist_app)

    assert (await client.get("/424242")).status_code == 404
    response = await client.post("/424242/transitions", json={"event": "approve"})
    assert response.status_code == 404


async def test_payment_gateway_outage_is_bad_gateway(client_for, make_application, payment_links):
    application = await make_application("order_ready")
    payment_links.fail = True

    response = await client_for(waitlist_app).post(
        f"/{application.id}/transitions",
        json={"event": "select_payment_method", "params": {"method": "direct"}},
    )

    assert response.status_code == 502


async def test_get_application_includes_derived_statuses(client_for, make_application):
    application = await make_application("invoice")

    response = await client_for(waitlist_app).get(f"/{application.id}")

    body = response.json()
    assert body["payment_status"] == "pending"
    assert body["fulfillment_status"] == "processing"
    assert body["application"]["payment_method_selected"] == "invoice"
    assert body["application"]["payment_due_date"] is not None


async def test_bulk_reports_per_item_outcomes(client_for, make_application):
    ready = await make_application("deposit_paid")
    not_ready = await make_application("approved")

    response = await client_for(bulk_app).post(
        "/", json={"action": "mark_order_ready", "ids": [ready.id, not_ready.id]}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == [ready.id]
    assert list(body["failed"]) == [str(not_ready.id)]


async def test_bulk_refuses_per_item_actions(client_for):
    response = await client_for(bulk_app).post("/", json={"action": "assign_tracking", "ids": [1]})

    assert response.status_code == 422


async def test_order_listing_endpoint(client_for, make_application):
    await make_application("approved")
    await make_application()

    response = await client_for(order_app).get("/", params={"fulfillment_status": "processing"})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["partial"] is False
    assert body["orders"][0]["origin"] == "waitlist"


async def test_sweep_and_list_reminders(client_for, make_application, clock):
    application = await make_application("invoice")
    client = client_for(reminder_app)
    when = (clock.now + timedelta(days=10, minutes=5)).isoformat()

    sweep = await client.post("/sweep", json={"now": when})
    reminders = await client.get(f"/{application.id}")

    assert sweep.status_code == 200
    assert len(sweep.json()["sent"]) == 1
    kinds = {r["kind"]: r["sent"] for r in reminders.json()}
    assert kinds == {"four_day_notice": True, "one_day_notice": False}


async def test_reschedule_endpoint(client_for, make_application, clock):
    application = await make_application("invoice")
    new_due = clock.now + timedelta(days=40)

    response = await client_for(reminder_app).post(
        f"/{application.id}/reschedule", json={"due_date": new_due.isoformat()}
    )

    assert response.status_code == 201
    assert len(response.json()) == 2


async def test_reschedule_direct_order_is_a_conflict(client_for, make_application):
    application = await make_application("direct")

    response = await client_for(reminder_app).post(f"/{application.id}/reschedule", json={})

    assert response.status_code == 409
