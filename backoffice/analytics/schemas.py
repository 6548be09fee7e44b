"""
Report payload models.

Field names are snake_case in Python and camelCase on the wire. Amounts are
plain numbers in the store currency; percentages are numbers where ``25.0``
means 25%.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# SERIES
# =============================================================================

class SalesPeriodPoint(CamelModel):
    """One bucket of a sales series."""

    period: str
    revenue: float = 0.0
    transactions: int = 0


class ExpensePeriodPoint(CamelModel):
    """One bucket of an expense series."""

    period: str
    amount: float = 0.0
    count: int = 0


class MonthlySalesPoint(CamelModel):
    """One month of the trailing sales trend."""

    month: str
    sales: float = 0.0
    transactions: int = 0
    online_sales: float = Field(0.0, alias="onlineSales")
    in_store_sales: float = Field(0.0, alias="inStoreSales")


class WeekdaySales(CamelModel):
    day_of_week: int = Field(alias="dayOfWeek")
    day_name: str = Field(alias="dayName")
    revenue: float = 0.0
    transactions: int = 0


class HourlySales(CamelModel):
    hour: int
    revenue: float = 0.0
    transactions: int = 0


# =============================================================================
# PRODUCTS
# =============================================================================

class TopProduct(CamelModel):
    """Product ranked by line-item sales."""

    product_id: str = Field(alias="productId")
    product_name: str = Field(alias="productName")
    quantity_sold: float = Field(0.0, alias="quantitySold")
    revenue: float = 0.0


class ProfitableProduct(TopProduct):
    avg_unit_price: float = Field(0.0, alias="avgUnitPrice")
    profit_margin: float = Field(0.0, alias="profitMargin")


class FastMovingProduct(TopProduct):
    current_stock: int = Field(0, alias="currentStock")
    turnover_rate: float = Field(0.0, alias="turnoverRate")
    daily_velocity: float = Field(0.0, alias="dailyVelocity")


class UnsoldProduct(CamelModel):
    """Product with stock on hand and no sales in the window."""

    product_id: str = Field(alias="productId")
    product_name: str = Field(alias="productName")
    category: Optional[str] = None
    current_stock: int = Field(0, alias="currentStock")
    price: float = 0.0
    stock_value: float = Field(0.0, alias="stockValue")
    quantity_sold: float = Field(0.0, alias="quantitySold")
    revenue: float = 0.0


class CategoryCount(CamelModel):
    category: str
    count: int = 0
    total_value: float = Field(0.0, alias="totalValue")


class CategoryStock(CamelModel):
    category: str
    total_stock: int = Field(0, alias="totalStock")
    total_value: float = Field(0.0, alias="totalValue")


class StockAlert(CamelModel):
    product_id: str = Field(alias="productId")
    product_name: str = Field(alias="productName")
    current_stock: int = Field(alias="currentStock")
    min_stock_level: int = Field(alias="minStockLevel")
    alert_type: str = Field(alias="alertType")


class CategorySales(CamelModel):
    category: str
    revenue: float = 0.0
    quantity_sold: float = Field(0.0, alias="quantitySold")
    products_sold: int = Field(0, alias="productsSold")
    transactions: int = 0
    percentage: float = 0.0


class CategoryPerformance(CategorySales):
    catalog_products: int = Field(0, alias="catalogProducts")
    stock_value: float = Field(0.0, alias="stockValue")
    revenue_per_product: float = Field(0.0, alias="revenuePerProduct")


class ProductAnalytics(CamelModel):
    total_products: int = Field(0, alias="totalProducts")
    active_products: int = Field(0, alias="activeProducts")
    low_stock_products: int = Field(0, alias="lowStockProducts")
    out_of_stock_products: int = Field(0, alias="outOfStockProducts")
    top_selling_products: List[TopProduct] = Field(default_factory=list, alias="topSellingProducts")
    category_breakdown: List[CategoryCount] = Field(default_factory=list, alias="categoryBreakdown")


class InventoryAnalytics(CamelModel):
    total_inventory_value: float = Field(0.0, alias="totalInventoryValue")
    low_stock_items: int = Field(0, alias="lowStockItems")
    out_of_stock_items: int = Field(0, alias="outOfStockItems")
    stock_alerts: List[StockAlert] = Field(default_factory=list, alias="stockAlerts")
    category_stock: List[CategoryStock] = Field(default_factory=list, alias="categoryStock")


# =============================================================================
# TRANSACTIONS & SALES
# =============================================================================

class TransactionLine(CamelModel):
    product_id: Optional[str] = Field(None, alias="productId")
    product_name: str = Field("", alias="productName")
    quantity: float = 0
    unit_price: float = Field(0.0, alias="unitPrice")
    total_price: float = Field(0.0, alias="totalPrice")


class RecentTransaction(CamelModel):
    id: str
    total_amount: float = Field(0.0, alias="totalAmount")
    payment_method: str = Field(alias="paymentMethod")
    order_source: str = Field(alias="orderSource")
    status: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")


class TransactionRecord(RecentTransaction):
    items: List[TransactionLine] = Field(default_factory=list)


class PaymentBreakdownItem(CamelModel):
    method: str
    count: int = 0
    amount: float = 0.0


class SalesAnalytics(CamelModel):
    total_revenue: float = Field(0.0, alias="totalRevenue")
    total_transactions: int = Field(0, alias="totalTransactions")
    average_transaction_value: float = Field(0.0, alias="averageTransactionValue")
    sales_by_period: List[SalesPeriodPoint] = Field(default_factory=list, alias="salesByPeriod")
    top_products: List[TopProduct] = Field(default_factory=list, alias="topProducts")
    payment_method_breakdown: List[PaymentBreakdownItem] = Field(
        default_factory=list, alias="paymentMethodBreakdown"
    )


# =============================================================================
# DASHBOARD
# =============================================================================

class PeriodInfo(CamelModel):
    """The resolved primary window and its comparison window."""

    label: str
    kind: str
    start: datetime
    end: datetime
    previous_start: datetime = Field(alias="previousStart")
    previous_end: datetime = Field(alias="previousEnd")
    granularity: str
    timezone: str


class DashboardMetrics(CamelModel):
    """Assembled dashboard report."""

    # Primary period totals
    total_sales: float = Field(0.0, alias="totalSales")
    total_transactions: int = Field(0, alias="totalTransactions")
    average_transaction_value: float = Field(0.0, alias="averageTransactionValue")
    total_expenses: float = Field(0.0, alias="totalExpenses")
    net_profit: float = Field(0.0, alias="netProfit")
    growth_rate: float = Field(0.0, alias="growthRate")

    # Period over period
    sales_vs_previous_period: float = Field(0.0, alias="salesVsPreviousPeriod")
    expenses_vs_previous_period: float = Field(0.0, alias="expensesVsPreviousPeriod")
    profit_vs_previous_period: float = Field(0.0, alias="profitVsPreviousPeriod")
    transactions_vs_previous_period: float = Field(0.0, alias="transactionsVsPreviousPeriod")

    # Day over day
    sales_vs_yesterday: float = Field(0.0, alias="salesVsYesterday")
    expenses_vs_yesterday: float = Field(0.0, alias="expensesVsYesterday")
    profit_vs_yesterday: float = Field(0.0, alias="profitVsYesterday")
    transactions_vs_yesterday: float = Field(0.0, alias="transactionsVsYesterday")

    # Always-current point totals
    today_sales: float = Field(0.0, alias="todaySales")
    today_transactions: int = Field(0, alias="todayTransactions")
    monthly_sales: float = Field(0.0, alias="monthlySales")
    monthly_transactions: int = Field(0, alias="monthlyTransactions")
    monthly_expenses: float = Field(0.0, alias="monthlyExpenses")

    # Catalog
    total_products: int = Field(0, alias="totalProducts")
    low_stock_items: int = Field(0, alias="lowStockItems")

    # Breakdowns
    payment_methods: Dict[str, float] = Field(default_factory=dict, alias="paymentMethods")
    order_sources: Dict[str, float] = Field(default_factory=dict, alias="orderSources")

    # Rankings
    top_products: List[TopProduct] = Field(default_factory=list, alias="topProducts")
    best_performers: List[TopProduct] = Field(default_factory=list, alias="bestPerformers")
    most_profitable_products: List[ProfitableProduct] = Field(default_factory=list, alias="mostProfitableProducts")
    fastest_moving_products: List[FastMovingProduct] = Field(default_factory=list, alias="fastestMovingProducts")
    worst_performers: List[UnsoldProduct] = Field(default_factory=list, alias="worstPerformers")
    recent_transactions: List[RecentTransaction] = Field(default_factory=list, alias="recentTransactions")

    # Series
    sales_by_month: List[MonthlySalesPoint] = Field(default_factory=list, alias="salesByMonth")
    sales_by_period: List[SalesPeriodPoint] = Field(default_factory=list, alias="salesByPeriod")
    expenses_by_period: List[ExpensePeriodPoint] = Field(default_factory=list, alias="expensesByPeriod")

    period: Optional[PeriodInfo] = None


# =============================================================================
# EXPENSES
# =============================================================================

class CategoryAmount(CamelModel):
    category: str
    amount: float = 0.0
    count: int = 0


class PaymentMethodAmount(CamelModel):
    payment_method: str = Field(alias="paymentMethod")
    amount: float = 0.0
    count: int = 0


class MonthAmount(CamelModel):
    month: str
    amount: float = 0.0
    count: int = 0


class TopExpenseItem(CamelModel):
    product_name: str = Field(alias="productName")
    total_amount: float = Field(0.0, alias="totalAmount")
    total_quantity: float = Field(0.0, alias="totalQuantity")
    count: int = 0


class ExpenseStats(CamelModel):
    total_expenses: int = Field(0, alias="totalExpenses")
    total_amount: float = Field(0.0, alias="totalAmount")
    by_category: List[CategoryAmount] = Field(default_factory=list, alias="byCategory")
    by_payment_method: List[PaymentMethodAmount] = Field(default_factory=list, alias="byPaymentMethod")
    by_month: List[MonthAmount] = Field(default_factory=list, alias="byMonth")
    top_expense_items: List[TopExpenseItem] = Field(default_factory=list, alias="topExpenseItems")


class MonthlyExpenseSummary(CamelModel):
    month: int
    month_name: str = Field(alias="monthName")
    total: float = 0.0
    count: int = 0
    categories: Dict[str, float] = Field(default_factory=dict)


class MonthlyExpenseReport(CamelModel):
    year: int
    total: float = 0.0
    months: List[MonthlyExpenseSummary] = Field(default_factory=list)


class ExpenseRecord(CamelModel):
    id: str
    date: datetime
    product_name: str = Field(alias="productName")
    product_id: Optional[str] = Field(None, alias="productId")
    quantity: Optional[float] = None
    amount: float = 0.0
    cost_per_unit: Optional[float] = Field(None, alias="costPerUnit")
    category: str
    payment_method: Optional[str] = Field(None, alias="paymentMethod")


# =============================================================================
# PRICE MONITORING
# =============================================================================

class PriceCheckRequest(CamelModel):
    product_name: str = Field(alias="productName", min_length=1)
    product_id: Optional[str] = Field(None, alias="productId")
    amount: float = Field(ge=0)
    quantity: float = Field(gt=0)


class PriceChangeSuggestion(CamelModel):
    has_price_change: bool = Field(False, alias="hasPriceChange")
    product_id: Optional[str] = Field(None, alias="productId")
    product_name: str = Field("", alias="productName")
    current_cost_price: Optional[float] = Field(None, alias="currentCostPrice")
    new_cost_price: float = Field(0.0, alias="newCostPrice")
    price_change_percentage: float = Field(0.0, alias="priceChangePercentage")
    current_selling_price: Optional[float] = Field(None, alias="currentSellingPrice")
    suggested_selling_price: Optional[float] = Field(None, alias="suggestedSellingPrice")
    markup_percentage: Optional[float] = Field(None, alias="markupPercentage")
    message: str = ""
