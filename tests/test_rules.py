import pytest

from chorepoints.exceptions import NotFoundError

PARENT = "parent-1"
OTHER_PARENT = "parent-2"


def test_penalty_is_clamped_but_record_keeps_nominal_amount(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben", points=5)
    rule = catalog.add_rule(PARENT, "No shouting", 10)

    result = ledger.report_rule_violation(child.id, rule.id)

    assert result.new_balance == 0
    assert result.penalty_applied == 5
    assert result.record.points_penalty == 10
    assert result.record.rule_label == "No shouting"
    assert ledger.get_child_balance(child.id) == 0


def test_full_penalty_when_balance_covers_it(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben", points=40)
    rule = catalog.add_rule(PARENT, "Screen time over", 15)

    result = ledger.report_rule_violation(child.id, rule.id)

    assert result.penalty_applied == 15
    assert result.new_balance == 25


def test_repeated_violations_are_not_deduplicated(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben", points=30)
    rule = catalog.add_rule(PARENT, "Late for dinner", 10)

    first = ledger.report_rule_violation(child.id, rule.id)
    second = ledger.report_rule_violation(child.id, rule.id)

    assert first.record.id != second.record.id
    assert second.new_balance == 10
    history = catalog.violation_history(child.id)
    assert len(history) == 2
    assert {record.points_penalty for record in history} == {10}


def test_violation_on_zero_balance_still_recorded(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben")
    rule = catalog.add_rule(PARENT, "Hitting", 20)

    result = ledger.report_rule_violation(child.id, rule.id)

    assert result.new_balance == 0
    assert result.penalty_applied == 0
    assert len(catalog.violation_history(child.id)) == 1


def test_rule_outside_scope_is_not_found_and_not_recorded(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben", points=10)
    foreign_rule = catalog.add_rule(OTHER_PARENT, "Other house rule", 5)

    with pytest.raises(NotFoundError):
        ledger.report_rule_violation(child.id, foreign_rule.id)
    with pytest.raises(NotFoundError):
        ledger.report_rule_violation(child.id, 9999)

    assert catalog.violation_history(child.id) == []
    assert ledger.get_child_balance(child.id) == 10


def test_records_survive_rule_changes_and_deletion(ledger, catalog) -> None:
    child = catalog.add_child(PARENT, "Ben", points=50)
    rule = catalog.add_rule(PARENT, "Talking back", 10)
    ledger.report_rule_violation(child.id, rule.id)

    catalog.update_rule(rule.id, parent_id=PARENT, points_penalty=25)
    catalog.delete_rule(rule.id, parent_id=PARENT)

    (record,) = catalog.violation_history(child.id)
    assert record.rule_id is None
    assert record.rule_label == "Talking back"
    assert record.points_penalty == 10
    assert ledger.get_child_balance(child.id) == 40
