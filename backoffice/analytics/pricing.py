"""
Price Monitoring

Compares the unit cost implied by a new expense with a product's recorded
cost price and suggests a selling price that keeps the product's markup.
The catalog is only read; applying a suggestion is left to the caller.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.analytics.ledgers import ProductCatalog
from backoffice.analytics.schemas import PriceChangeSuggestion
from backoffice.analytics.series import coerce_amount
from backoffice.database.models import Product

logger = structlog.get_logger(__name__)

DEFAULT_THRESHOLD = 1.0


def compute_cost_per_unit(amount: Optional[float], quantity: Optional[float]) -> Optional[float]:
    """``amount / quantity`` for a positive quantity, else ``None``."""
    if quantity is None or amount is None:
        return None
    quantity = coerce_amount(quantity)
    if quantity <= 0:
        return None
    return coerce_amount(amount) / quantity


def suggest_price_change(
    product: Optional[Product],
    product_name: str,
    amount: float,
    quantity: float,
    threshold: float = DEFAULT_THRESHOLD,
) -> PriceChangeSuggestion:
    """
    Build a price change suggestion for an expense against ``product``.

    A change is flagged when the new unit cost moves at least ``threshold``
    percent away from the recorded cost price. The suggested selling price
    applies the product's markup (stored, or implied by its current price and
    cost) to the new unit cost.
    """
    cost_per_unit = compute_cost_per_unit(amount, quantity) or 0.0

    if cost_per_unit <= 0:
        return PriceChangeSuggestion(
            product_name=product_name,
            new_cost_price=cost_per_unit,
            message="Invalid cost per unit calculated from expense",
        )

    if product is None:
        return PriceChangeSuggestion(
            product_name=product_name,
            new_cost_price=round(cost_per_unit, 2),
            message=(
                f'No matching product found for "{product_name}". '
                "Price monitoring only works for existing products."
            ),
        )

    selling_price = coerce_amount(product.price)
    current_cost = coerce_amount(product.cost_price)
    stored_markup = coerce_amount(product.markup_percentage)

    if current_cost <= 0:
        suggested = cost_per_unit * (1 + stored_markup / 100) if stored_markup > 0 else selling_price
        return PriceChangeSuggestion(
            has_price_change=True,
            product_id=product.id,
            product_name=product.name,
            current_cost_price=0.0,
            new_cost_price=round(cost_per_unit, 2),
            current_selling_price=selling_price,
            suggested_selling_price=round(suggested, 2),
            markup_percentage=round(stored_markup, 2),
            message=(
                f'Product "{product.name}" doesn\'t have a cost price set. '
                f"The new cost price is {cost_per_unit:.2f}."
            ),
        )

    change = abs(cost_per_unit - current_cost) / current_cost * 100

    if change < threshold:
        return PriceChangeSuggestion(
            product_id=product.id,
            product_name=product.name,
            current_cost_price=current_cost,
            new_cost_price=round(cost_per_unit, 2),
            current_selling_price=selling_price,
            price_change_percentage=round(change, 2),
            message=f"Cost price change is minimal ({change:.2f}%). No update needed.",
        )

    markup = stored_markup if stored_markup > 0 else (selling_price - current_cost) / current_cost * 100
    suggested = cost_per_unit * (1 + markup / 100)
    direction = "increased" if cost_per_unit > current_cost else "decreased"

    return PriceChangeSuggestion(
        has_price_change=True,
        product_id=product.id,
        product_name=product.name,
        current_cost_price=current_cost,
        new_cost_price=round(cost_per_unit, 2),
        current_selling_price=selling_price,
        suggested_selling_price=round(suggested, 2),
        markup_percentage=round(markup, 2),
        price_change_percentage=round(change, 2),
        message=(
            f'Cost price for "{product.name}" has {direction} from {current_cost:.2f} '
            f"to {cost_per_unit:.2f} ({change:.2f}% {direction}). With {markup:.2f}% markup, "
            f"suggested selling price is {suggested:.2f}."
        ),
    )


class PriceMonitor:
    """Looks up the matching product and evaluates a price change."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self.catalog = ProductCatalog(session_factory)
        self.threshold = threshold

    async def check_price_change(
        self,
        store_id: str,
        product_name: str,
        amount: float,
        quantity: float,
        product_id: Optional[str] = None,
    ) -> PriceChangeSuggestion:
        product = None
        if (compute_cost_per_unit(amount, quantity) or 0) > 0:
            product = await self.catalog.find_match(store_id, product_id, product_name)

        suggestion = suggest_price_change(product, product_name, amount, quantity, self.threshold)
        logger.info(
            "Price check evaluated",
            store_id=store_id,
            product_name=product_name,
            matched=product is not None,
            has_price_change=suggestion.has_price_change,
            change_percentage=suggestion.price_change_percentage,
        )
        return suggestion
