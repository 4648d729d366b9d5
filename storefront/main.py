import asyncio
import logging

from storefront.config import settings
from storefront.db.remote import close_client
from storefront.db.sqlite import init_db
from storefront.errors import PersistenceError
from storefront.services.cart import get_cart_store
from storefront.services.catalog import get_catalog
from storefront.utils.formatters import money

logger = logging.getLogger("storefront")


async def main() -> int:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        init_db()
    except PersistenceError:
        logger.exception("database init failed, cart runs in memory only")

    cart = get_cart_store()
    logger.info("cart: %d items, total %s", cart.cart_count, money(cart.cart_total))

    catalog = get_catalog()
    try:
        result = await catalog.refresh()
    finally:
        await close_client()
        cart.flush()

    if result is None:
        logger.error("catalog unavailable: %s", catalog.last_error)
        return 1

    logger.info("categories: %s", ", ".join(result.categories))
    logger.info("products: %d", len(result.products))
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
