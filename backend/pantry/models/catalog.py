from __future__ import annotations

from ..extensions import db
from pantry.time_utils import to_utc_z


class Category(db.Model):
    """Menu section (Beverages, Snacks...). Scoped to an organization."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
        }


class Item(db.Model):
    """
    Catalog item.

    STOCK: stock=None means unlimited. A finite stock is only ever changed by
    single-statement conditional updates (see catalog_service), never by
    read-modify-write in application code.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("stock IS NULL OR stock >= 0", name="ck_items_stock_non_negative"),
        db.Index("ix_items_org_category", "org_id", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(255), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=True)

    is_free = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "is_free": self.is_free,
            "is_active": self.is_active,
            "is_available": self.is_available,
            "updated_at": to_utc_z(self.updated_at),
        }
