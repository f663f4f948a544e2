import gc
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from chorepoints.exceptions import InsufficientPointsError, TransientStoreError
from chorepoints.ops import StructuredLogger
from chorepoints.persistence import LedgerStore
from chorepoints.service import ChoreLedger

PARENT = "parent-1"


def _redeem(ledger, child_id, reward_id):
    try:
        return ledger.redeem_reward(child_id, reward_id)
    except InsufficientPointsError as exc:
        return exc


def test_concurrent_redemptions_never_overspend(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Dev", points=30)
    reward = catalog.add_reward(PARENT, "Comic", 10)

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: _redeem(ledger, child.id, reward.id), range(10)))

    successes = [outcome for outcome in outcomes if not isinstance(outcome, InsufficientPointsError)]
    refusals = [outcome for outcome in outcomes if isinstance(outcome, InsufficientPointsError)]
    assert len(successes) == 3
    assert len(refusals) == 7
    assert sorted(result.new_balance for result in successes) == [0, 10, 20]
    assert ledger.get_child_balance(child.id) == 0
    assert len(catalog.redemption_history(child.id)) == 3


def test_concurrent_awards_and_penalties_do_not_lose_updates(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Dev", points=100)
    rule = catalog.add_rule(PARENT, "Messy room", 3)

    def work(index: int) -> None:
        if index % 2:
            ledger.report_rule_violation(child.id, rule.id)
        else:
            ledger.adjust_balance(child.id, 5, reason="bonus")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(work, range(20)))

    assert ledger.get_child_balance(child.id) == 100 + 10 * 5 - 10 * 3
    assert len(catalog.violation_history(child.id)) == 10


def test_other_children_do_not_wait_on_a_held_ledger(store, ledger, catalog) -> None:
    busy = catalog.add_child(PARENT, "Dev", points=10)
    free = catalog.add_child(PARENT, "Eli", points=10)

    with store.child_transaction(busy.id):
        with ThreadPoolExecutor(max_workers=1) as pool:
            balance = pool.submit(ledger.mutator.apply_delta, free.id, 5).result(timeout=5)

    assert balance == 15


def test_lock_timeout_surfaces_after_retry_budget(tmp_path, catalog) -> None:
    impatient_store = LedgerStore(f"sqlite:///{tmp_path / 'ledger.db'}", lock_timeout=0.05)
    log = StructuredLogger()
    impatient = ChoreLedger(impatient_store, logger=log, retry_attempts=3, retry_backoff=0)
    child = catalog.add_child(PARENT, "Dev", points=10)
    holding = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with impatient_store.child_transaction(child.id):
            holding.set()
            release.wait(5)

    holder = threading.Thread(target=hold)
    holder.start()
    try:
        assert holding.wait(5)
        with pytest.raises(TransientStoreError):
            impatient.adjust_balance(child.id, 5)
    finally:
        release.set()
        holder.join()
        impatient_store.dispose()

    retries = log.tail(event="transient_retry")
    assert [entry["attempt"] for entry in retries] == [1, 2]
    assert impatient.get_child_balance(child.id) == 10


def test_two_stores_on_one_database_never_overspend(store, ledger, catalog) -> None:
    second_store = LedgerStore(store.url)
    second = ChoreLedger(second_store, logger=StructuredLogger(), retry_backoff=0)
    child = catalog.add_child(PARENT, "Dev", points=30)
    reward = catalog.add_reward(PARENT, "Comic", 10)
    ledgers = (ledger, second)

    try:
        with ThreadPoolExecutor(max_workers=20) as pool:
            outcomes = list(pool.map(lambda index: _redeem(ledgers[index % 2], child.id, reward.id), range(20)))
    finally:
        second_store.dispose()

    successes = [outcome for outcome in outcomes if not isinstance(outcome, InsufficientPointsError)]
    assert len(successes) == 3
    assert sorted(result.new_balance for result in successes) == [0, 10, 20]
    assert ledger.get_child_balance(child.id) == 0
    assert len(catalog.redemption_history(child.id)) == 3


def test_busy_database_surfaces_after_retry_budget(store, catalog) -> None:
    child = catalog.add_child(PARENT, "Dev", points=10)
    busy_store = LedgerStore(store.url, store_timeout=0.05)
    log = StructuredLogger()
    impatient = ChoreLedger(busy_store, logger=log, retry_attempts=3, retry_backoff=0)
    writer = sqlite3.connect(store.engine.url.database, isolation_level=None)
    writer.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(TransientStoreError, match="database is locked"):
            impatient.adjust_balance(child.id, 5)
    finally:
        writer.execute("ROLLBACK")
        writer.close()
        busy_store.dispose()

    retries = log.tail(event="transient_retry")
    assert [entry["attempt"] for entry in retries] == [1, 2]
    assert all(entry["operation"] == "adjust_balance" for entry in retries)
    assert catalog.get_child(child.id).points == 10


def test_lock_registry_forgets_idle_children(store, ledger, catalog) -> None:
    first = catalog.add_child(PARENT, "Dev", points=10)
    second = catalog.add_child(PARENT, "Eli", points=10)

    for child in (first, second):
        ledger.adjust_balance(child.id, 5)
    gc.collect()

    assert first.id not in store._locks
    assert second.id not in store._locks
    assert len(store._locks) == 0
    assert ledger.get_child_balance(first.id) == 15
