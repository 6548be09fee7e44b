"""
Unit Tests - Price Monitoring
"""
import pytest

from backoffice.analytics.pricing import compute_cost_per_unit, suggest_price_change
from backoffice.database.models import Product


def make_product(**fields) -> Product:
    fields.setdefault("id", "prod-1")
    fields.setdefault("store_id", "store-1")
    fields.setdefault("name", "Flour 1kg")
    fields.setdefault("price", 15.0)
    fields.setdefault("cost_price", 10.0)
    return Product(**fields)


class TestComputeCostPerUnit:
    """Tests for cost per unit derivation"""

    def test_amount_over_quantity(self):
        """Test 125 over 10 units"""
        assert compute_cost_per_unit(125, 10) == 12.5

    @pytest.mark.parametrize("amount,quantity", [(125, 0), (125, -2), (125, None), (None, 10)])
    def test_missing_or_non_positive_quantity(self, amount, quantity):
        """Test no cost per unit without a positive quantity"""
        assert compute_cost_per_unit(amount, quantity) is None


class TestSuggestPriceChange:
    """Tests for price change suggestions"""

    def test_markup_from_current_prices(self):
        """Cost 10 and price 15 imply 50% markup; new cost 12.5 suggests 18.75"""
        suggestion = suggest_price_change(make_product(), "Flour 1kg", amount=125, quantity=10)

        assert suggestion.has_price_change is True
        assert suggestion.new_cost_price == 12.5
        assert suggestion.price_change_percentage == 25.0
        assert suggestion.markup_percentage == 50.0
        assert suggestion.suggested_selling_price == 18.75
        assert "increased" in suggestion.message

    def test_stored_markup_wins(self):
        """Test a stored markup is applied as is"""
        product = make_product(markup_percentage=20.0)
        suggestion = suggest_price_change(product, "Flour 1kg", amount=125, quantity=10)

        assert suggestion.suggested_selling_price == 15.0

    def test_cost_decrease(self):
        """Test a lower cost suggests a lower price"""
        suggestion = suggest_price_change(make_product(), "Flour 1kg", amount=80, quantity=10)

        assert suggestion.has_price_change is True
        assert suggestion.price_change_percentage == 20.0
        assert suggestion.suggested_selling_price == 12.0
        assert "decreased" in suggestion.message

    def test_change_below_threshold(self):
        """Test changes under 1% are not flagged"""
        suggestion = suggest_price_change(make_product(), "Flour 1kg", amount=100.5, quantity=10)

        assert suggestion.has_price_change is False
        assert suggestion.price_change_percentage == 0.5
        assert suggestion.suggested_selling_price is None

    def test_product_without_cost_price(self):
        """Test a product with no recorded cost is always flagged"""
        product = make_product(cost_price=None)
        suggestion = suggest_price_change(product, "Flour 1kg", amount=125, quantity=10)

        assert suggestion.has_price_change is True
        assert suggestion.current_cost_price == 0.0
        assert suggestion.suggested_selling_price == 15.0

    def test_no_matching_product(self):
        """Test unknown products are reported, not flagged"""
        suggestion = suggest_price_change(None, "Mystery item", amount=125, quantity=10)

        assert suggestion.has_price_change is False
        assert "No matching product" in suggestion.message
        assert suggestion.new_cost_price == 12.5

    def test_invalid_cost(self):
        """Test zero quantity gives an invalid cost"""
        suggestion = suggest_price_change(make_product(), "Flour 1kg", amount=125, quantity=0)

        assert suggestion.has_price_change is False
        assert suggestion.message.startswith("Invalid cost per unit")

    def test_wire_names(self):
        """Test camelCase serialization"""
        payload = suggest_price_change(make_product(), "Flour 1kg", 125, 10).model_dump(by_alias=True)

        assert payload["suggestedSellingPrice"] == 18.75
        assert payload["priceChangePercentage"] == 25.0
