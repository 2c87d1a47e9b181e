"""
HTTP API: queuing syncs, status, cancellation and store connections
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.constants.sync import Platform, SyncMethod, SyncState
from app.db.session import get_db
from app.main import app
from app.repositories.sync_status_repository import SyncStatusRepository
from app.tasks.sync_tasks import SYNC_TASKS


class QueuedTask:
    """Stands in for a Celery task; records .delay() calls."""

    def __init__(self, kind: str, queued: list):
        self.kind = kind
        self.queued = queued

    def delay(self, *args):
        self.queued.append((self.kind, args))
        return SimpleNamespace(id=f"task-{len(self.queued)}")


@pytest.fixture
def queued(monkeypatch):
    calls = []
    for kind in list(SYNC_TASKS):
        monkeypatch.setitem(SYNC_TASKS, kind, QueuedTask(kind, calls))
    return calls


@pytest.fixture
def client(db: Session, queued):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(user_id: str):
    return {"X-User-Id": user_id}


# ==================== Queuing ====================

def test_full_sync_is_queued(client, headers, queued, db, user_id, shopify_connection):
    """Test: Starting a sync queues the task and marks the row pending"""
    response = client.post("/api/v1/sync/shopify/full", headers=headers)

    assert response.status_code == 202
    body = response.json()
    assert body["task_id"] == "task-1"
    assert body["method"] == SyncMethod.PAGINATED_BATCH
    assert body["check_url"] == "/api/v1/sync/tasks/task-1"
    assert queued == [("full", (user_id, Platform.SHOPIFY, None))]
    assert SyncStatusRepository(db).get(user_id, Platform.SHOPIFY).status == SyncState.PENDING


def test_overrides_and_preset_are_forwarded(client, headers, queued, user_id, shopify_connection):
    response = client.post(
        "/api/v1/sync/shopify/batch",
        headers=headers,
        json={"settings": {"batch_size": 50}, "preset": "small"},
    )

    assert response.status_code == 202
    assert queued == [("batch", (user_id, Platform.SHOPIFY, {"batch_size": 50, "preset": "small"}))]


def test_out_of_range_settings_are_rejected(client, headers, queued, db, user_id, shopify_connection):
    """Test: Invalid settings are refused with 422 before anything is queued"""
    response = client.post(
        "/api/v1/sync/shopify/full",
        headers=headers,
        json={"settings": {"batch_size": 500}},
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_SYNC_SETTINGS"
    assert queued == []
    assert SyncStatusRepository(db).get(user_id, Platform.SHOPIFY) is None



@pytest.mark.parametrize("state", [SyncState.PENDING, SyncState.IN_PROGRESS])
def test_busy_row_rejects_new_sync(client, headers, queued, db, user_id, shopify_connection, state):
    SyncStatusRepository(db).upsert(user_id, Platform.SHOPIFY, status=state)

    response = client.post("/api/v1/sync/shopify/auto", headers=headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "SYNC_IN_PROGRESS"
    assert queued == []


def test_missing_connection_is_rejected(client, headers, queued):
    response = client.post("/api/v1/sync/shopify/full", headers=headers)

    assert response.status_code == 404
    assert response.json()["error_code"] == "STORE_CONNECTION_UNAVAILABLE"
    assert queued == []


def test_malformed_token_is_rejected(client, headers, queued, db, shopify_connection):
    shopify_connection.access_token = "not-a-token"
    db.commit()

    response = client.post("/api/v1/sync/shopify/full", headers=headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_CREDENTIALS"


def test_bulk_sync_needs_bulk_capable_platform(client, headers, queued, woocommerce_connection):
    response = client.post("/api/v1/sync/woocommerce/bulk", headers=headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "BULK_EXPORT_NOT_SUPPORTED"
    assert queued == []


def test_bulk_sync_is_queued(client, headers, queued, user_id, shopify_connection):
    response = client.post("/api/v1/sync/shopify/bulk", headers=headers)

    assert response.status_code == 202
    assert response.json()["method"] == SyncMethod.BULK_EXPORT
    assert queued == [("bulk", (user_id, Platform.SHOPIFY))]


def test_unknown_platform(client, headers):
    assert client.post("/api/v1/sync/magento/full", headers=headers).status_code == 404


def test_user_header_is_required(client):
    assert client.get("/api/v1/sync/shopify/status").status_code == 422
    assert client.get("/api/v1/sync/shopify/status", headers={"X-User-Id": "  "}).status_code == 401


# ==================== Status, cancel, reconcile ====================

def test_status_before_and_after_a_run(client, headers, db, user_id):
    assert client.get("/api/v1/sync/shopify/status", headers=headers).status_code == 404

    SyncStatusRepository(db).mark_success(user_id, Platform.SHOPIFY, products_synced=12)
    response = client.get("/api/v1/sync/shopify/status", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == SyncState.SUCCESS
    assert body["products_synced"] == 12


def test_cancel_running_sync(client, headers, db, user_id):
    """Test: Cancelling flags the running row; the worker picks it up"""
    status_repo = SyncStatusRepository(db)
    status_repo.mark_in_progress(user_id, Platform.SHOPIFY, SyncMethod.PAGINATED_BATCH, {})

    response = client.post("/api/v1/sync/shopify/cancel", headers=headers)

    assert response.json()["cancel_requested"] is True
    assert status_repo.is_cancel_requested(user_id, Platform.SHOPIFY)


def test_cancel_queued_sync(client, headers, db, user_id, shopify_connection):
    """Test: A queued sync can be cancelled before a worker picks it up"""
    client.post("/api/v1/sync/shopify/full", headers=headers)

    response = client.post("/api/v1/sync/shopify/cancel", headers=headers)

    body = response.json()
    assert body["cancel_requested"] is True
    assert body["status"] == SyncState.PENDING
    assert SyncStatusRepository(db).is_cancel_requested(user_id, Platform.SHOPIFY)


def test_cancel_without_running_sync(client, headers):
    body = client.post("/api/v1/sync/shopify/cancel", headers=headers).json()
    assert body["cancel_requested"] is False
    assert body["status"] == SyncState.IDLE


def test_reconcile_endpoint(client, headers):
    response = client.post("/api/v1/sync/shopify/reconcile", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["actual_product_count"] == 0
    assert body["conflicts_detected"] == []


# ==================== Store connections ====================

def test_save_and_read_store_connection(client, headers):
    response = client.put(
        "/api/v1/stores/woocommerce",
        headers=headers,
        json={"store_url": "https://woo.example.com", "consumer_key": "ck_1", "consumer_secret": "cs_1"},
    )

    assert response.status_code == 200
    assert response.json()["is_active"] is True
    assert "consumer_secret" not in response.json()

    read = client.get("/api/v1/stores/woocommerce", headers=headers)
    assert read.json()["store_url"] == "https://woo.example.com"


def test_invalid_credentials_are_not_saved(client, headers):
    response = client.put(
        "/api/v1/stores/shopify",
        headers=headers,
        json={"store_url": "shop.myshopify.com", "access_token": "wrong"},
    )

    assert response.status_code == 400
    assert client.get("/api/v1/stores/shopify", headers=headers).status_code == 404


def test_deactivate_store_connection(client, headers, shopify_connection):
    response = client.delete("/api/v1/stores/shopify", headers=headers)

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert client.post("/api/v1/sync/shopify/full", headers=headers).status_code == 404
