# Overview: Catalog reads and atomic stock adjustments used by ordering.

"""
Catalog Reader

Category/item CRUD lives outside this service. What ordering needs is:
item lookups scoped to a tenant, the menu snapshot shown to a session,
and stock adjustments that can never drive stock below zero.

STOCK RULES:
- stock=None means unlimited; adjustments are no-ops for such items
- decrements are one conditional UPDATE (stock >= n), never read-then-write
- callers run adjustments inside their own transaction and commit once
"""

from sqlalchemy import update

from ..extensions import db
from ..models import Category, Item
from ..errors import NotFoundError


def get_item(item_id: int, org_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if not item or item.org_id != org_id:
        raise NotFoundError(f"Item {item_id} not found")
    return item


def get_menu(org_id: int) -> list[dict]:
    """Active categories with their active and available items, in display order."""
    categories = (
        db.session.query(Category)
        .filter_by(org_id=org_id, is_active=True)
        .order_by(Category.sort_order, Category.name)
        .all()
    )
    items = (
        db.session.query(Item)
        .filter_by(org_id=org_id, is_active=True, is_available=True)
        .order_by(Item.name)
        .all()
    )

    by_category: dict[int, list[dict]] = {}
    for item in items:
        by_category.setdefault(item.category_id, []).append(item.to_dict())

    menu = []
    for category in categories:
        row = category.to_dict()
        row["items"] = by_category.get(category.id, [])
        menu.append(row)
    return menu


def try_decrement_stock(item_id: int, quantity: int) -> bool:
    """
    Decrement finite stock by `quantity` if enough remains.

    Returns True when the row was updated or the item is unlimited, False when
    a concurrent sale left less than `quantity`. Does not commit.
    """
    stmt = (
        update(Item)
        .where(Item.id == item_id, Item.stock.is_not(None), Item.stock >= quantity)
        .values(stock=Item.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        return True

    # No row matched: either unlimited stock (fine) or not enough left
    stock = db.session.query(Item.stock).filter_by(id=item_id).scalar()
    return stock is None


def restore_stock(item_id: int, quantity: int) -> None:
    """Compensating increment for finite-stock items. Does not commit."""
    stmt = (
        update(Item)
        .where(Item.id == item_id, Item.stock.is_not(None))
        .values(stock=Item.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
