"""Product Repository - catalog reads and atomic stock adjustments."""
from typing import List, Optional

from checkout.services.models import Product, ProductVariant

from .base import BaseRepository


class ProductRepository(BaseRepository):
    """Product and variant database operations."""

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self.client.table("products").select("*").eq(
            "id", product_id
        ).limit(1).execute()
        return Product(**result.data[0]) if result.data else None

    async def get_variants(self, product_id: str) -> List[ProductVariant]:
        """Variants in declaration order."""
        result = await self.client.table("product_variants").select("*").eq(
            "product_id", product_id
        ).order("position").execute()
        return [ProductVariant(**v) for v in result.data]

    async def decrement_stock(
        self, product_id: str, variant_id: str | None, quantity: int
    ) -> int:
        """Atomically decrement stock, clamped at zero.

        Returns the stock left across the product's variants, or its own
        stock when it has none.
        """
        result = await self.client.rpc("decrement_stock", {
            "p_product_id": product_id,
            "p_variant_id": variant_id,
            "p_quantity": quantity,
        }).execute()
        return int(result.data or 0)

    async def restore_stock(
        self, product_id: str, variant_id: str | None, quantity: int
    ) -> int:
        """Atomically add stock back. Returns the product's total stock."""
        result = await self.client.rpc("restore_stock", {
            "p_product_id": product_id,
            "p_variant_id": variant_id,
            "p_quantity": quantity,
        }).execute()
        return int(result.data or 0)

    async def set_active(self, product_id: str, is_active: bool) -> None:
        await self.client.table("products").update({
            "is_active": is_active
        }).eq("id", product_id).execute()
