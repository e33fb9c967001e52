import pytest

from restaurant_pos.core.errors import NotFoundError, ValidationError
from restaurant_pos.models.table import CLEANING, FREE, OCCUPIED, OUT_OF_ORDER, RESERVED, Table
from restaurant_pos.services.tables import TableRegistry
from tests.fixtures_data import RESERVATION_PAYLOAD


def _registry():
    return TableRegistry([Table(1, "T1", section="Main"), Table(2, "T2", section="Patio"), Table(3, "T3")])


def test_reservation_only_on_free_table():
    tables = _registry()

    table = tables.reserve(1, RESERVATION_PAYLOAD)

    assert table.status == RESERVED
    assert table.reservation["name"] == "Silva"
    with pytest.raises(ValidationError):
        tables.reserve(1, RESERVATION_PAYLOAD)

    tables.clear_reservation(1)

    assert tables.get(1).status == FREE
    assert tables.get(1).reservation is None
    with pytest.raises(ValidationError):
        tables.clear_reservation(1)


def test_seating_a_reserved_table_consumes_the_reservation():
    tables = _registry()
    tables.reserve(2, RESERVATION_PAYLOAD)

    table = tables.seat(2, order_id=11, staff_id="waiter-3")

    assert table.status == OCCUPIED
    assert table.reservation is None
    assert table.assigned_staff_id == "waiter-3"


def test_tables_being_cleaned_or_out_of_order_cannot_be_seated():
    tables = _registry()
    tables.set_status(1, CLEANING)
    tables.set_status(2, OUT_OF_ORDER)

    with pytest.raises(ValidationError):
        tables.seat(1, order_id=1)
    with pytest.raises(ValidationError):
        tables.seat(2, order_id=1)


def test_last_order_out_leaves_table_for_cleaning():
    tables = _registry()
    tables.seat(1, order_id=1)
    tables.seat(1, order_id=2)

    tables.release(1, 1)
    assert tables.get(1).status == OCCUPIED
    assert tables.get(1).current_order_id == 2

    tables.release(1, 2)
    assert tables.get(1).status == CLEANING
    assert tables.get(1).current_order_id is None


def test_freeing_a_table_clears_its_assignment():
    tables = _registry()
    tables.seat(1, order_id=5, staff_id="waiter-1")

    table = tables.set_status(1, FREE)

    assert table.assigned_staff_id is None
    assert table.current_order_id is None
    assert table.order_ids == []


def test_listing_and_statistics():
    tables = _registry()
    tables.seat(1, order_id=1)

    assert [table.id for table in tables.list_tables(section="Patio")] == [2]
    assert [table.id for table in tables.list_tables(status=FREE)] == [2, 3]

    stats = tables.statistics()
    assert stats["total"] == 3
    assert stats[OCCUPIED] == 1
    assert stats[FREE] == 2


def test_unknown_table_and_status_are_rejected():
    tables = _registry()

    with pytest.raises(NotFoundError):
        tables.get(99)
    with pytest.raises(ValidationError):
        tables.set_status(1, "on_fire")
