"""
Celery sync tasks, run eagerly with Task.apply()
"""
from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

import app.services.sync.orchestrator as orchestrator_module
import app.tasks.scheduled_tasks as scheduled_tasks_module
import app.tasks.sync_tasks as sync_tasks_module
import app.tasks.task_logger as task_logger_module
from app.constants.sync import Platform, SyncState
from app.models.sync_models import SyncTaskLog
from app.repositories.sync_status_repository import SyncStatusRepository
from app.tasks.scheduled_tasks import reconcile_stale_syncs, schedule_auto_syncs
from app.tasks.sync_tasks import run_full_sync
from app.utils.time_helpers import utcnow
from tests.fakes import FakeSourceClient, factory_for, shopify_item

FAST = {"batch_size": 10, "rate_limit_delay": 0, "rate_limit_jitter": 0}


@pytest.fixture
def progress(db: Session, monkeypatch):
    """Point the tasks at the test session and capture progress updates."""
    updates = []
    monkeypatch.setattr(sync_tasks_module, "SessionLocal", lambda: db)
    monkeypatch.setattr(task_logger_module, "SessionLocal", lambda: db)
    monkeypatch.setattr(sync_tasks_module, "progress_observer", lambda task, metadata=None: updates.append)
    return updates


@pytest.fixture
def alerts(monkeypatch):
    sent = []
    monkeypatch.setattr(sync_tasks_module, "send_sync_error_alert", lambda **kwargs: sent.append(kwargs))
    return sent


@pytest.fixture
def source(monkeypatch):
    client = FakeSourceClient(items=[shopify_item(i) for i in range(30)], reported_total=30)
    monkeypatch.setattr(orchestrator_module, "get_source_client", factory_for(client))
    return client


def _task_log(db: Session) -> SyncTaskLog:
    return db.query(SyncTaskLog).one()


def test_full_sync_task_logs_success(db, user_id, shopify_connection, progress, alerts, source):
    """Test: A successful run returns the SyncResult and is logged as success"""
    result = run_full_sync.apply(args=[user_id, Platform.SHOPIFY, FAST]).get()

    assert result["status"] == "success"
    assert result["products_synced"] == 30
    assert progress[-1].current == 100
    assert alerts == []

    log = _task_log(db)
    assert log.status == "success"
    assert log.user_id == user_id
    assert log.platform == Platform.SHOPIFY
    assert log.result["products_synced"] == 30
    assert log.completed_at is not None


def test_failed_run_alerts_and_logs_failure(db, user_id, progress, alerts, source):
    """Test: A run ending in error sends an alert and marks the log failed"""
    result = run_full_sync.apply(args=[user_id, Platform.SHOPIFY, FAST]).get()

    assert result["status"] == "error"
    assert result["error_code"] == "STORE_CONNECTION_UNAVAILABLE"
    assert len(alerts) == 1
    assert alerts[0]["recoverable"] is False
    assert alerts[0]["platform"] == Platform.SHOPIFY

    log = _task_log(db)
    assert log.status == "failure"
    assert "Store connection not found" in log.error_message


def test_busy_status_skips_run(db, user_id, shopify_connection, progress, alerts, source):
    SyncStatusRepository(db).upsert(user_id, Platform.SHOPIFY, status=SyncState.IN_PROGRESS)

    result = run_full_sync.apply(args=[user_id, Platform.SHOPIFY, FAST]).get()

    assert result["status"] == "skipped"
    assert result["error_code"] == "SYNC_IN_PROGRESS"
    assert source.requested_pages == []


def test_schedule_auto_syncs_skips_busy_stores(db, user_id, shopify_connection, woocommerce_connection,
                                               progress, monkeypatch):
    queued = []
    monkeypatch.setattr(
        scheduled_tasks_module, "run_auto_sync",
        SimpleNamespace(delay=lambda *args: queued.append(args) or SimpleNamespace(id="task-1")),
    )
    shopify_connection.auto_sync_products = True
    woocommerce_connection.auto_sync_products = True
    db.commit()
    SyncStatusRepository(db).upsert(user_id, Platform.WOOCOMMERCE, status=SyncState.IN_PROGRESS)

    summary = schedule_auto_syncs.apply().get()

    assert summary == {"queued": 1, "skipped": 1, "task_ids": ["task-1"]}
    assert queued == [(user_id, Platform.SHOPIFY)]
    assert SyncStatusRepository(db).get(user_id, Platform.SHOPIFY).status == SyncState.PENDING


def test_reconcile_stale_syncs_task(db, user_id, progress):
    row = SyncStatusRepository(db).upsert(user_id, Platform.SHOPIFY, status=SyncState.IN_PROGRESS)
    row.updated_at = utcnow() - timedelta(hours=2)
    db.commit()

    summary = reconcile_stale_syncs.apply().get()

    assert summary["reconciled"] == 1
    assert summary["conflicts_resolved"] == 1
    assert SyncStatusRepository(db).get(user_id, Platform.SHOPIFY).status == SyncState.ERROR
