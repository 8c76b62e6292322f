import logging
import math
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from stock_management.models.product import Product
from stock_management.models.sale import Sale  # noqa: F401  (Product.sales target)
from stock_management.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from stock_management.utils.cache import cache_service
from stock_management.utils.transactions import UnitOfWork, run_unit_of_work

logger = logging.getLogger(__name__)


class ProductService:
    """
    Service class for catalog (Product) CRUD operations.

    This service handles:
    - Creating new products
    - Reading products (with caching)
    - Listing products and categories
    - Updating products
    - Deleting products (their sales go with them)
    - Cache invalidation

    Writes run through run_unit_of_work and lock the row they change, so
    they serialise with concurrent sells of the same product.
    """

    CACHE_PREFIX = "product"
    CATALOG_PREFIX = "catalog"
    CATEGORIES_KEY = "categories"

    def __init__(self, db: Session):
        self.db = db

    def create(self, product_data: ProductCreate) -> Product:
        """
        Create a new product.

        Args:
            product_data: Product creation data

        Returns:
            Created product instance
        """
        def work(uow: UnitOfWork) -> Product:
            product = Product(**product_data.model_dump())
            uow.add(product)
            uow.flush()
            return product

        product = run_unit_of_work(self.db, work)
        self.db.refresh(product)
        self.invalidate(categories=True)
        logger.info(f"Product #{product.id} '{product.name}' created")
        return product

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get a product by ID straight from the database."""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_by_id_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).

        Args:
            product_id: Product ID to look up

        Returns:
            Product data as dictionary or None
        """
        cached = cache_service.get(self.CACHE_PREFIX, str(product_id))
        if cached:
            return cached

        product = self.get_by_id(product_id)
        if not product:
            return None

        product_dict = ProductResponse.model_validate(product).model_dump(mode="json")
        cache_service.set(self.CACHE_PREFIX, str(product_id), product_dict)
        return product_dict

    def get_all(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str = None,
        category: str = None,
    ) -> tuple[List[Product], int, int]:
        """
        Get paginated list of products.

        Args:
            page: Page number (1-indexed)
            page_size: Number of items per page
            search: Optional search term for product name
            category: Optional exact category filter

        Returns:
            Tuple of (products list, total count, total pages)
        """
        query = self.db.query(Product)

        if search:
            query = query.filter(Product.name.ilike(f"%{search}%"))
        if category:
            query = query.filter(Product.category == category)

        total = query.count()
        total_pages = math.ceil(total / page_size) if total > 0 else 1

        offset = (page - 1) * page_size
        products = query.order_by(Product.id.desc()).offset(offset).limit(page_size).all()

        return products, total, total_pages

    def categories(self) -> List[str]:
        """Distinct category names, alphabetically."""
        cached = cache_service.get(self.CATALOG_PREFIX, self.CATEGORIES_KEY)
        if cached is not None:
            return cached

        rows = self.db.query(Product.category).distinct().order_by(Product.category).all()
        names = [row.category for row in rows]
        cache_service.set(self.CATALOG_PREFIX, self.CATEGORIES_KEY, names)
        return names

    def update(self, product_id: int, product_data: ProductUpdate) -> Optional[Product]:
        """
        Update an existing product.

        Args:
            product_id: ID of product to update
            product_data: Update data (only non-None fields are updated)

        Returns:
            Updated product or None if not found
        """
        update_data = product_data.model_dump(exclude_unset=True)

        def work(uow: UnitOfWork) -> Optional[Product]:
            product = uow.locked(self.db.query(Product).filter(Product.id == product_id)).first()
            if not product:
                return None
            for field, value in update_data.items():
                if value is not None or field == "description":
                    setattr(product, field, value)
            uow.flush()
            return product

        product = run_unit_of_work(self.db, work)
        if not product:
            return None

        self.db.refresh(product)
        self.invalidate([product_id], categories=True)
        return product

    def delete(self, product_id: int) -> bool:
        """
        Delete a product and, through the cascade, all of its sales.

        Returns:
            True if deleted, False if not found
        """
        def work(uow: UnitOfWork) -> bool:
            product = uow.locked(self.db.query(Product).filter(Product.id == product_id)).first()
            if not product:
                return False
            uow.delete(product)
            return True

        deleted = run_unit_of_work(self.db, work)
        if deleted:
            self.invalidate([product_id], categories=True)
            logger.info(f"Product #{product_id} deleted")
        return deleted

    @classmethod
    def invalidate(cls, product_ids: Iterable[int] = (), categories: bool = False) -> None:
        """Drop cached product details (and optionally the category list)."""
        cache_service.delete_many(cls.CACHE_PREFIX, [str(pid) for pid in product_ids])
        if categories:
            cache_service.delete(cls.CATALOG_PREFIX, cls.CATEGORIES_KEY)
