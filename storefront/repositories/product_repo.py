# storefront/repositories/product_repo.py
import uuid

from sqlmodel import Session

from storefront.models.product import Product


class ProductRepository:
    """
    Data access layer for Product.

    - Pure DB operations, no business logic.
    - Stock/sold changes do NOT go through here; see InventoryLedger.
    """

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id, populate_existing=True)

    def get_many(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        products: dict[uuid.UUID, Product] = {}
        for product_id in set(product_ids):
            product = session.get(Product, product_id)
            if product is not None:
                products[product_id] = product
        return products
