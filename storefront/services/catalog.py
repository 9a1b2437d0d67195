from typing import Dict, Iterable, Optional
from models import db
from models.product import Product


class ProductCatalog:
    """Read-only access to live product records."""

    def get_product(self, product_id) -> Optional[Product]:
        try:
            pid = int(product_id)
        except (TypeError, ValueError):
            return None
        product = db.session.get(Product, pid)
        if product is None or not product.is_active:
            return None
        return product

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = {int(pid) for pid in product_ids}
        if not ids:
            return {}
        rows = Product.query.filter(Product.id.in_(ids), Product.is_active.is_(True)).all()
        return {p.id: p for p in rows}
