from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product.

    STOCK DESIGN:
    - Flat products keep their count in Product.stock.
    - Variation-bearing products keep one count per VariationCombination;
      Product.stock is not consulted for lines that reference a combination.

    Category is referenced by NAME (denormalized foreign key). Renaming a
    category rewrites Product.category in bulk.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=False, index=True)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Flat stock; may go negative when out-of-stock override is enabled
    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)
    unit = db.Column(db.String(32), nullable=False, default="piece")
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variation_combinations = db.relationship(
        "VariationCombination",
        back_populates="product",
        order_by="VariationCombination.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_variations(self) -> bool:
        return bool(self.variation_combinations)

    def find_combination(self, combination_id: int | None) -> "VariationCombination | None":
        if combination_id is None:
            return None
        for combination in self.variation_combinations:
            if combination.id == combination_id:
                return combination
        return None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "unit": self.unit,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "has_variations": self.has_variations,
            "variation_combinations": [c.to_dict() for c in self.variation_combinations],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VariationCombination(db.Model):
    """
    One sellable configuration of a variation-bearing product (e.g. Red / L).

    Owned by its Product; `id` is the stable reference that sale lines and
    returned items carry as variation_combination_id.
    """
    __tablename__ = "product_variation_combinations"
    __table_args__ = (
        db.Index("ix_variation_combinations_product_position", "product_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    combination_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=False, unique=True)

    # Ordered [[key, value], ...] pairs, e.g. [["Color", "Red"], ["Size", "L"]]
    variations = db.Column(db.JSON, nullable=False, default=list)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("Product", back_populates="variation_combinations")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "combination_name": self.combination_name,
            "sku": self.sku,
            "variations": [list(pair) for pair in (self.variations or [])],
            "price_cents": self.price_cents,
            "stock": self.stock,
            "is_active": self.is_active,
        }


class Category(db.Model):
    """
    Product category.

    product_count is DERIVED: recomputed from a live count of active products
    on every read and write, never maintained incrementally.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(16), nullable=False, default="#3B82F6")
    icon = db.Column(db.String(64), nullable=False, default="Package")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    product_count = db.Column(db.Integer, nullable=False, default=0)

    created_by_id = db.Column(db.String(64), nullable=False)
    created_by_name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "product_count": self.product_count,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
