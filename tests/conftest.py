from datetime import datetime, timezone

import pytest

from chorepoints.ops import StructuredLogger
from chorepoints.persistence import LedgerStore
from chorepoints.service import ChoreLedger

FIXED_NOW = datetime(2024, 5, 6, 17, 30, tzinfo=timezone.utc)


@pytest.fixture()
def store(tmp_path):
    ledger_store = LedgerStore(f"sqlite:///{tmp_path / 'ledger.db'}", lock_timeout=2.0)
    ledger_store.create_db_and_tables()
    yield ledger_store
    ledger_store.dispose()


@pytest.fixture()
def event_log():
    return StructuredLogger()


@pytest.fixture()
def ledger(store, event_log):
    return ChoreLedger(store, logger=event_log, retry_backoff=0, clock=lambda: FIXED_NOW)


@pytest.fixture()
def catalog(ledger):
    return ledger.catalog
