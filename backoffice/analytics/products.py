"""
Product Rankings

Ranked product lists over the line items of a filtered transaction window:
top sellers and best performers by revenue, most profitable by margin,
fastest moving by stock turnover, and worst performers with stock on hand
but no sales.
"""

from typing import List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.analytics.ledgers import LedgerFilter, ProductCatalog, ProductSales, TransactionLedger
from backoffice.analytics.periods import window_days
from backoffice.analytics.schemas import FastMovingProduct, ProfitableProduct, TopProduct, UnsoldProduct
from backoffice.analytics.series import coerce_amount
from backoffice.analytics.timezone import TimeWindow


def _top(sale: ProductSales) -> dict:
    return {
        "product_id": sale.product_id,
        "product_name": sale.product_name,
        "quantity_sold": sale.quantity,
        "revenue": round(sale.revenue, 2),
    }


def profit_margin(sale: ProductSales) -> float:
    """
    Margin proxy: revenue per unit over the average unit price, in percent.

    Line items carry no cost of goods, so this is an approximation.
    """
    if sale.quantity <= 0 or sale.avg_unit_price <= 0:
        return 0.0
    return (sale.revenue / sale.quantity) / sale.avg_unit_price * 100


class ProductRankings:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.transactions = TransactionLedger(session_factory)
        self.catalog = ProductCatalog(session_factory)

    async def top_products(self, flt: LedgerFilter, window: TimeWindow, limit: int) -> List[TopProduct]:
        sales = await self.transactions.product_sales(flt, window, order_by="revenue", limit=limit)
        return [TopProduct(**_top(sale)) for sale in sales]

    async def best_performers(self, flt: LedgerFilter, window: TimeWindow, limit: int) -> List[TopProduct]:
        return await self.top_products(flt, window, limit)

    async def most_profitable(self, flt: LedgerFilter, window: TimeWindow, limit: int) -> List[ProfitableProduct]:
        sales = await self.transactions.product_sales(flt, window)
        ranked = sorted(sales, key=lambda sale: (profit_margin(sale), sale.revenue), reverse=True)
        return [
            ProfitableProduct(
                **_top(sale),
                avg_unit_price=round(sale.avg_unit_price, 2),
                profit_margin=round(profit_margin(sale), 2),
            )
            for sale in ranked[:limit]
        ]

    async def fastest_moving(self, flt: LedgerFilter, window: TimeWindow, limit: int) -> List[FastMovingProduct]:
        """Units sold per unit of current stock, with units sold per day of the window."""
        sales = await self.transactions.product_sales(flt, window, order_by="quantity")
        products = await self.catalog.by_ids(flt.store_id, [sale.product_id for sale in sales])
        days = window_days(window)

        scored = []
        for sale in sales:
            product = products.get(sale.product_id)
            stock = int(product.stock_quantity or 0) if product is not None else 0
            turnover = sale.quantity / max(stock, 1)
            scored.append((turnover, sale, stock))
        scored.sort(key=lambda item: (item[0], item[1].quantity), reverse=True)

        return [
            FastMovingProduct(
                **_top(sale),
                current_stock=stock,
                turnover_rate=round(turnover, 2),
                daily_velocity=round(sale.quantity / days, 2),
            )
            for turnover, sale, stock in scored[:limit]
        ]

    async def worst_performers(self, flt: LedgerFilter, window: TimeWindow, limit: int) -> List[UnsoldProduct]:
        products = await self.catalog.unsold_with_stock(
            flt.store_id,
            TransactionLedger.sold_product_ids(flt, window),
            limit,
        )
        return [
            UnsoldProduct(
                product_id=product.id,
                product_name=product.name,
                category=product.category,
                current_stock=int(product.stock_quantity or 0),
                price=coerce_amount(product.price),
                stock_value=round(coerce_amount(product.price) * int(product.stock_quantity or 0), 2),
            )
            for product in products
        ]
