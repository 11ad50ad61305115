import pytest

from psysite.contact_items import (
    ContactItemNotFound,
    active_items,
    delete_item,
    insert_item,
    move_item,
    next_item_id,
    resolve_drag,
    sorted_items,
    update_item,
)


def make_items(*ids):
    return [
        {"id": item_id, "type": "whatsapp", "title": f"Item {item_id}", "isActive": True, "order": index}
        for index, item_id in enumerate(ids)
    ]


def ids_and_orders(items):
    return [(item["id"], item["order"]) for item in sorted_items(items)]


def assert_dense(items):
    assert sorted(item["order"] for item in items) == list(range(len(items)))


def test_reorder_moves_last_item_to_front():
    items = make_items(1, 2, 3)
    result = move_item(items, 2, 0)
    assert ids_and_orders(result) == [(3, 0), (1, 1), (2, 2)]


def test_move_is_a_single_element_move_not_a_swap():
    result = move_item(make_items(1, 2, 3, 4), 0, 2)
    assert [item["id"] for item in result] == [2, 3, 1, 4]
    assert_dense(result)


def test_move_with_equal_or_missing_positions_is_noop():
    items = make_items(1, 2, 3)
    assert move_item(items, 1, 1) is None
    assert move_item(items, 0, 3) is None
    assert move_item(items, -1, 0) is None
    assert move_item([], 0, 0) is None


def test_insert_assigns_next_id_and_appends():
    result = insert_item(make_items(5), {"type": "email", "title": "Email"})
    assert ids_and_orders(result) == [(5, 0), (6, 1)]
    assert result[-1]["title"] == "Email"


def test_insert_into_empty_collection_assigns_id_one():
    result = insert_item([], {"type": "phone", "title": "Phone"})
    assert result == [{"type": "phone", "title": "Phone", "id": 1, "order": 0}]


def test_insert_id_exceeds_every_existing_id_even_with_gaps():
    items = [{"id": 9, "order": 1}, {"id": 2, "order": 0}]
    assert next_item_id(items) == 10
    result = insert_item(items, {"title": "New"})
    assert max(item["id"] for item in result) == 10
    assert_dense(result)


def test_insert_ignores_caller_supplied_id_and_order():
    result = insert_item(make_items(1), {"id": 99, "order": 42, "title": "X"})
    assert ids_and_orders(result) == [(1, 0), (2, 1)]


def test_delete_renumbers_remaining_items():
    result = delete_item(make_items(1, 2, 3), 2)
    assert ids_and_orders(result) == [(1, 0), (3, 1)]


def test_delete_only_item_yields_empty_collection():
    assert delete_item(make_items(7), 7) == []


def test_delete_unknown_id_reports_not_found():
    items = make_items(1, 2)
    with pytest.raises(ContactItemNotFound) as excinfo:
        delete_item(items, 42)
    assert excinfo.value.item_id == 42
    assert ids_and_orders(items) == [(1, 0), (2, 1)]


def test_update_replaces_fields_but_keeps_id_and_order():
    items = make_items(1, 2)
    result = update_item(items, 2, {"title": "Changed", "isActive": False, "id": 50, "order": 0})
    changed = [item for item in result if item["id"] == 2][0]
    assert changed["title"] == "Changed"
    assert changed["isActive"] is False
    assert changed["order"] == 1
    assert items[1]["title"] == "Item 2"


def test_update_unknown_id_reports_not_found():
    with pytest.raises(ContactItemNotFound):
        update_item(make_items(1), 3, {"title": "Nope"})


def test_mutations_keep_order_dense():
    items = make_items(1, 2, 3, 4, 5)
    items = delete_item(items, 3)
    assert_dense(items)
    items = insert_item(items, {"title": "New"})
    assert_dense(items)
    items = move_item(items, 4, 1)
    assert_dense(items)
    assert [item["id"] for item in items] == [1, 6, 2, 4, 5]


def test_resolve_drag_uses_display_order_positions():
    items = [{"id": 1, "order": 2}, {"id": 2, "order": 0}, {"id": 3, "order": 1}]
    assert resolve_drag(items, 1, 2) == (2, 0)


def test_resolve_drag_discards_incomplete_or_unknown_gestures():
    items = make_items(1, 2, 3)
    assert resolve_drag(items, 1, None) is None
    assert resolve_drag(items, 2, 2) is None
    assert resolve_drag(items, 1, 99) is None
    assert resolve_drag(items, 99, 1) is None


def test_active_items_filters_hidden_without_touching_order():
    items = make_items(1, 2, 3)
    items[1]["isActive"] = False
    assert [item["id"] for item in active_items(items)] == [1, 3]
