from collections import namedtuple

import pytest
from sqlalchemy import event

from partsledger.extensions import db
from partsledger.models import InventoryTransaction
from partsledger.services import stock_ledger
from partsledger.services.stock_ledger import IN, OUT, StockLevel, project_stock
from partsledger.validation import ConflictError, NotFoundError, ValidationError


Entry = namedtuple("Entry", "direction quantity")


def _seed(part_id, direction, quantity):
    stock_ledger.record_movement(part_id=part_id, direction=direction, quantity=quantity)
    db.session.commit()


def test_project_stock_reducer():
    level = project_stock([Entry(IN, 10), Entry(OUT, 3), Entry(IN, 2), Entry(OUT, 12)])
    assert level == StockLevel(incoming=12, outgoing=15)
    assert level.stock == -3


def test_project_stock_rejects_unknown_direction():
    with pytest.raises(ValueError):
        project_stock([Entry("SIDEWAYS", 1)])


def test_current_stock_matches_projection(db_session, part_a):
    _seed(part_a.id, IN, 10)
    _seed(part_a.id, OUT, 4)
    _seed(part_a.id, IN, 1)

    rows = db_session.query(InventoryTransaction).filter_by(part_id=part_a.id).all()
    assert stock_ledger.current_stock(part_a.id) == project_stock(rows).stock == 7


def test_stock_is_never_clamped(db_session, part_a):
    _seed(part_a.id, OUT, 5)
    assert stock_ledger.current_stock(part_a.id) == -5


def test_record_movement_validates(db_session, part_a):
    with pytest.raises(ValidationError):
        stock_ledger.record_movement(part_id=part_a.id, direction=IN, quantity=0)
    with pytest.raises(ValidationError):
        stock_ledger.record_movement(part_id=part_a.id, direction="BOTH", quantity=1)


def test_bulk_stock_single_query(app, db_session, make_part):
    parts = [make_part(f"{1000 + i}") for i in range(25)]
    for part in parts:
        stock_ledger.record_movement(part_id=part.id, direction=IN, quantity=3)
    db_session.commit()
    part_ids = [p.id for p in parts]

    statements = []

    def _count(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    engine = db.engine
    event.listen(engine, "before_cursor_execute", _count)
    try:
        levels = stock_ledger.bulk_stock(part_ids)
    finally:
        event.remove(engine, "before_cursor_execute", _count)

    assert len(statements) == 1
    assert all(levels[p.id].stock == 3 for p in parts)


def test_list_stock_query_count_bounded(app, db_session, make_part):
    for i in range(30):
        part = make_part(f"{2000 + i}")
        stock_ledger.record_movement(part_id=part.id, direction=IN, quantity=i + 1)
    db_session.commit()

    statements = []

    def _count(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(statement)

    engine = db.engine
    event.listen(engine, "before_cursor_execute", _count)
    try:
        rows = stock_ledger.list_stock()
    finally:
        event.remove(engine, "before_cursor_execute", _count)

    assert len(rows) == 30
    assert len(statements) <= 2


def test_list_stock_only_purchased(db_session, part_a, part_b):
    _seed(part_a.id, IN, 2)
    rows = stock_ledger.list_stock(only_purchased=True)
    assert [r["id"] for r in rows] == [part_a.id]
    assert rows[0]["stock"] == 2


def test_list_stock_cache_invalidated_by_adjustment(db_session, part_a):
    assert stock_ledger.list_stock()[0]["stock"] == 0
    stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=9)
    assert stock_ledger.list_stock()[0]["stock"] == 9


def test_adjust_stock_writes_single_corrective_entry(db_session, part_a):
    _seed(part_a.id, IN, 10)

    result = stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=4, note="Cycle count")
    assert result["previous_stock"] == 10
    assert result["new_stock"] == 4
    assert result["adjustment_delta"] == -6
    assert result["transaction"]["direction"] == OUT
    assert result["transaction"]["quantity"] == 6
    assert stock_ledger.current_stock(part_a.id) == 4


def test_adjust_stock_noop_when_at_target(db_session, part_a):
    _seed(part_a.id, IN, 3)
    result = stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=3)
    assert result["adjustment_delta"] == 0
    assert result["transaction"] is None
    assert db_session.query(InventoryTransaction).count() == 1


def test_adjust_stock_rejects_negative_and_deleted(db_session, part_a):
    with pytest.raises(ValidationError):
        stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=-1)

    part_a.is_deleted = True
    db_session.commit()
    with pytest.raises(NotFoundError):
        stock_ledger.adjust_stock(part_id=part_a.id, target_quantity=1)


def test_assert_stock_available_lists_short_parts(db_session, part_a, part_b):
    _seed(part_a.id, IN, 5)
    stock_ledger.assert_stock_available({part_a.id: 5})

    with pytest.raises(ConflictError) as exc_info:
        stock_ledger.assert_stock_available({part_a.id: 6, part_b.id: 1})
    short = {row["part_id"] for row in exc_info.value.details["items"]}
    assert short == {part_a.id, part_b.id}


def test_get_stock(db_session, part_a):
    _seed(part_a.id, IN, 8)
    _seed(part_a.id, OUT, 2)
    assert stock_ledger.get_stock(part_a.id) == {"part_id": part_a.id, "stock": 6, "incoming": 8, "outgoing": 2}


def test_part_transactions_newest_first(db_session, part_a):
    _seed(part_a.id, IN, 1)
    _seed(part_a.id, IN, 2)
    txs = stock_ledger.list_part_transactions(part_a.id)
    assert [t.quantity for t in txs] == [2, 1]


def test_ledger_rules_are_module_docstring():
    assert "Stock Ledger Invariants" in stock_ledger.__doc__
