from datetime import date, datetime, timedelta
from types import SimpleNamespace

from conftest import borrow_request
from stockroom import borrowing, dashboard
from stockroom.cache import CacheVersions

SIGNATURE = "http://storage.test/storage/v1/object/public/item-images/signatures/sig.png"


def log(email, action, created_at):
    return SimpleNamespace(user_email=email, action_type=action, created_at=created_at)


def item(name, quantity, status="In Stock", reorder_point=20, condition="Brand New", category=None):
    return SimpleNamespace(
        name=name, quantity=quantity, status=status, reorder_point=reorder_point,
        condition=condition, category=category, created_at=datetime(2026, 10, 1),
    )


def test_inventory_stats():
    stats = dashboard.inventory_stats([
        item("Cement", 100, category="Masonry"),
        item("Sand", 20, status="Low Stock", category="Masonry"),
        item("Paint", 5, status="Low Stock", condition="Defected", category=""),
    ])
    assert stats["total_items"] == 125
    assert stats["in_stock_quantity"] == 100
    assert stats["low_stock"] == 2
    assert stats["defected_quantity"] == 5
    assert stats["total_records"] == 3
    assert stats["category_distribution"] == {"Masonry": 120, "Uncategorized": 5}


def test_percentage_formatting():
    assert dashboard.percentage(0, 0) == "0"
    assert dashboard.percentage(1, 3) == "33.3"
    assert dashboard.percentage(5, 5) == "100.0"


def test_start_of_week_is_sunday_midnight():
    # 2026-10-18 is a Sunday
    assert dashboard.start_of_week(datetime(2026, 10, 18, 9, 30)) == datetime(2026, 10, 18)
    assert dashboard.start_of_week(datetime(2026, 10, 24, 23, 59)) == datetime(2026, 10, 18)
    assert dashboard.start_of_week(datetime(2026, 10, 17, 12, 0)) == datetime(2026, 10, 11)


def test_weekly_activity_groups_by_user():
    now = datetime(2026, 10, 21, 12, 0)
    logs = [
        log("clerk@example.com", "ADD", datetime(2026, 10, 19, 8)),
        log("clerk@example.com", "UPDATE", datetime(2026, 10, 20, 8)),
        log("clerk@example.com", "ITEM_GIVEN", datetime(2026, 10, 20, 9)),
        log("root@example.com", "DELETE", datetime(2026, 10, 18, 0)),
        log("root@example.com", "ADD", datetime(2026, 10, 17, 23, 59)),
    ]
    assert dashboard.weekly_activity(logs, now) == [
        {"name": "clerk", "email": "clerk@example.com", "actions": 3, "adds": 1, "updates": 1, "deletes": 0},
        {"name": "root", "email": "root@example.com", "actions": 1, "adds": 0, "updates": 0, "deletes": 1},
    ]


def test_recent_activity_merges_and_limits():
    items = [
        SimpleNamespace(name=f"Item {n}", created_at=datetime(2026, 10, n + 1)) for n in range(4)
    ]
    borrows = [
        SimpleNamespace(item_name="Drill", status="Returned", updated_at=datetime(2026, 10, 10), created_at=None),
        SimpleNamespace(item_name="Ladder", status="Active", updated_at=None, created_at=datetime(2026, 10, 2, 12)),
    ]
    feed = dashboard.recent_activity(items, borrows)

    assert len(feed) == 5
    assert feed[0]["title"] == "Item returned"
    assert feed[0]["description"] == "Drill"
    assert [entry["description"] for entry in feed[1:]] == ["Item 3", "Item 2", "Ladder", "Item 1"]
    assert feed[3]["title"] == "Item borrowed"
    assert feed[1]["title"] == "New inventory item added"


def test_stock_levels():
    levels = dashboard.stock_levels([
        item("Cement", 100, category="Masonry", reorder_point=20),
        item("Sand", 15, category="Masonry", reorder_point=20),
        item("Nails", 30, category="Hardware", reorder_point=20),
    ])
    assert levels["categories"] == [
        {"category": "Masonry", "quantity": 115, "threshold": 40},
        {"category": "Hardware", "quantity": 30, "threshold": 20},
    ]
    assert [i.name for i in levels["well_stocked"]] == ["Cement"]
    assert [i.name for i in levels["needs_reorder"]] == ["Sand"]


def test_build_dashboard_from_database(db, make_item):
    cement = make_item(name="Cement", quantity=60, category="Masonry")
    make_item(name="Broken saw", quantity=2, condition="Defected", category="Tools")
    borrowing.create_borrow(db, borrow_request(cement.id, 10), SIGNATURE)
    cache = CacheVersions()

    result = dashboard.build_dashboard(db, cache)

    assert result.total_items == 52
    assert result.in_stock_quantity == 50
    assert result.defected_quantity == 2
    assert result.borrowed_active == 1
    assert result.borrowed_percentage == f"{1 / 53 * 100:.1f}"
    assert result.category_distribution == {"Masonry": 50, "Tools": 2}
    assert result.recent_activity[0].description in {"Cement", "Broken saw"}
    assert result.versions["inventory"] == 0


def test_build_dashboard_is_memoized_until_invalidated(db, make_item):
    make_item(name="Cement", quantity=60)
    cache = CacheVersions()
    assert dashboard.build_dashboard(db, cache).total_items == 60

    make_item(name="Sand", quantity=40)
    assert dashboard.build_dashboard(db, cache).total_items == 60

    cache.invalidate("inventory")
    refreshed = dashboard.build_dashboard(db, cache)
    assert refreshed.total_items == 100
    assert refreshed.versions["inventory"] == 1


def test_report_summary(db, make_item):
    cement = make_item(name="Cement", quantity=60, unit_price=10)
    make_item(name="Sand", quantity=0, unit_price=5)
    overdue = borrowing.create_borrow(
        db,
        borrow_request(
            cement.id, 5,
            borrow_date=date.today() - timedelta(days=9),
            return_date=date.today() - timedelta(days=2),
        ),
        SIGNATURE,
    )
    returned = borrowing.create_borrow(db, borrow_request(cement.id, 5), SIGNATURE)
    borrowing.mark_returned(db, returned.id)

    summary = dashboard.report_summary(db)
    assert summary.total_items == 2
    assert summary.total_quantity == 55
    assert summary.total_value == 600
    assert summary.out_of_stock_items == 1
    assert summary.borrowed_active == 1
    assert summary.borrowed_overdue == 1
    assert summary.borrowed_returned == 1
    assert overdue.status == "Active"
