"""Catalog domain: resolves cart lines to authoritative price and stock."""
from checkout.errors import ERROR_PRODUCT_NOT_FOUND, ERROR_VARIANT_NOT_FOUND, ProductNotFound, VariantNotFound
from checkout.services.models import Product, ProductVariant, ResolvedLine
from checkout.services.repositories import ProductRepository


class CatalogReader:
    """Price/stock lookups. Reads live catalog state on every call."""

    def __init__(self, products_repo: ProductRepository):
        self.products_repo = products_repo

    async def resolve_line(self, product_id: str, variant_selector: str | None = None) -> ResolvedLine:
        """
        Resolve a product (and optional variant) to unit price and stock.

        With a selector, the variant is matched by id or size. Without one,
        the product's base price/stock is used, else its first variant.

        Raises:
            ProductNotFound: unknown product id
            VariantNotFound: selector matches no variant, or nothing is priced
        """
        product = await self.products_repo.get_by_id(product_id)
        if product is None:
            raise ProductNotFound(ERROR_PRODUCT_NOT_FOUND, product_id=product_id)

        if variant_selector:
            variants = await self.products_repo.get_variants(product_id)
            variant = _match_variant(variants, variant_selector)
            if variant is None:
                raise VariantNotFound(
                    ERROR_VARIANT_NOT_FOUND, product_id=product_id, variant=variant_selector
                )
            return _from_variant(product, variant)

        if product.price is not None:
            return ResolvedLine(
                product_id=product.id,
                display_name=product.name,
                unit_price=product.price,
                available_stock=product.stock,
            )

        variants = await self.products_repo.get_variants(product_id)
        if not variants:
            raise VariantNotFound(ERROR_VARIANT_NOT_FOUND, product_id=product_id)
        return _from_variant(product, variants[0])


def _match_variant(variants: list[ProductVariant], selector: str) -> ProductVariant | None:
    for variant in variants:
        if variant.id == selector:
            return variant
    wanted = selector.strip().lower()
    for variant in variants:
        if variant.size and variant.size.strip().lower() == wanted:
            return variant
    return None


def _from_variant(product: Product, variant: ProductVariant) -> ResolvedLine:
    name = f"{product.name} ({variant.size})" if variant.size else product.name
    return ResolvedLine(
        product_id=product.id,
        variant_id=variant.id,
        display_name=name,
        unit_price=variant.price,
        available_stock=variant.stock,
    )
