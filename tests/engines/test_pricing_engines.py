"""
Tests for the pure pricing engines.

Covers:
- Vintage extraction (leading year, trailing year, no year)
- Price and case-config parsing of spreadsheet cells
- Order totals (duty on subtotal, VAT on subtotal + duty, logistics)
- Distributor B2B quote, including the 100% margin guard
- Bulk pricing pipeline (B2B then D2C, USD and AED), including the full-margin guard
- Engine tracing
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pco_engines import (
    CalculationVariables,
    DistributorMargin,
    MarginType,
    OrderRates,
    QuoteLine,
    calculate_b2b_quote,
    clean_text,
    compute_order_totals,
    convert_to_usd,
    extract_vintage,
    line_total,
    parse_case_config,
    parse_price,
    price_bulk_row,
    quote_order_lines,
)
from pco_engines.order_totals import OrderTotals
from pco_engines.tracer import compute_input_fingerprint

CENT = Decimal("0.01")


def _close(actual: Decimal, expected: str, tolerance: Decimal = CENT) -> bool:
    return abs(actual - Decimal(expected)) <= tolerance


class _Line:
    def __init__(self, quantity: int, line_total_usd: Decimal):
        self.quantity = quantity
        self.line_total_usd = line_total_usd


class TestVintageExtraction:
    """Vintage inference from product names."""

    def test_trailing_year(self):
        result = extract_vintage("Opus One 2018")
        assert result.vintage == "2018"
        assert result.name == "Opus One"

    def test_leading_year_wins(self):
        result = extract_vintage("2019 Screaming Eagle Cabernet")
        assert result.vintage == "2019"
        assert result.name == "Screaming Eagle Cabernet"

    def test_no_year_leaves_name_untouched(self):
        result = extract_vintage("Champagne NV")
        assert result.vintage is None
        assert result.name == "Champagne NV"

    def test_last_year_taken_when_not_leading(self):
        result = extract_vintage("Chateau Latour 1990 Magnum 2005")
        assert result.vintage == "2005"
        assert result.name == "Chateau Latour 1990 Magnum"

    def test_parenthesised_year_and_punctuation_stripped(self):
        result = extract_vintage("Petrus (2010)")
        assert result == ("2010", "Petrus")

    def test_year_inside_longer_number_ignored(self):
        result = extract_vintage("Lot 120185 Claret")
        assert result.vintage is None

    def test_out_of_range_year_ignored(self):
        assert extract_vintage("Madeira 1850").vintage is None
        assert extract_vintage("Future 2045").vintage is None


class TestCellParsing:
    """Spreadsheet cell coercion at the engine boundary."""

    @pytest.mark.parametrize(
        "cell,expected",
        [
            ("£1,250.00", Decimal("1250.00")),
            ("  99.5 ", Decimal("99.5")),
            (120, Decimal("120")),
            (12.5, Decimal("12.5")),
            (Decimal("7"), Decimal("7")),
        ],
    )
    def test_valid_prices(self, cell, expected):
        assert parse_price(cell) == expected

    @pytest.mark.parametrize("cell", [None, "", "POA", 0, -5, "0.00", True, float("nan")])
    def test_unpriceable_cells(self, cell):
        assert parse_price(cell) is None

    @pytest.mark.parametrize(
        "cell,expected",
        [(12, 12), ("6", 6), ("6x75cl", 6), (" 3 x 150cl", 3), (6.0, 6), (None, 6), ("", 6), ("case", 6), (0, 6)],
    )
    def test_case_config(self, cell, expected):
        assert parse_case_config(cell, 6) == expected

    def test_clean_text(self):
        assert clean_text("  Krug ") == "Krug"
        assert clean_text("   ") is None
        assert clean_text(None) is None
        assert clean_text(2018) == "2018"


class TestOrderTotals:
    """Totals composition over line items."""

    def test_worked_example(self):
        items = [_Line(2, Decimal("7200")), _Line(3, Decimal("4351.50"))]
        totals = compute_order_totals(items=items, rates=OrderRates())

        assert totals.item_count == 2
        assert totals.case_count == 5
        assert totals.subtotal_usd == Decimal("11551.50")
        assert totals.duty_usd == Decimal("2310.30")
        # VAT on subtotal + duty
        assert totals.vat_usd == Decimal("693.09")
        assert totals.logistics_usd == Decimal("86.63625")
        assert totals.total_usd == Decimal("14641.52625")

    def test_empty_order_is_zero(self):
        totals = compute_order_totals(items=[], rates=OrderRates())
        assert totals == OrderTotals(0, 0, Decimal(0), Decimal(0), Decimal(0), Decimal(0), Decimal(0))

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            OrderRates(duty_percent=Decimal("-1"))

    def test_line_total_rejects_non_positive_quantity(self):
        with pytest.raises(ValueError, match="quantity"):
            line_total(0, Decimal("10"))

    @settings(max_examples=200)
    @given(
        lines=st.lists(
            st.tuples(
                st.integers(min_value=1, max_value=500),
                st.decimals(min_value=0, max_value=100000, places=2),
            ),
            max_size=12,
        ),
        duty=st.decimals(min_value=0, max_value=100, places=2),
        vat=st.decimals(min_value=0, max_value=30, places=2),
        logistics=st.decimals(min_value=0, max_value=10, places=3),
    )
    def test_total_is_sum_of_components(self, lines, duty, vat, logistics):
        items = [_Line(q, line_total(q, p)) for q, p in lines]
        rates = OrderRates(duty_percent=duty, vat_percent=vat, logistics_percent=logistics)
        totals = compute_order_totals(items=items, rates=rates)

        assert totals.subtotal_usd == sum((i.line_total_usd for i in items), Decimal(0))
        assert totals.total_usd == (
            totals.subtotal_usd + totals.duty_usd + totals.vat_usd + totals.logistics_usd
        )
        assert totals.case_count == sum(q for q, _ in lines)
        assert totals.total_usd >= totals.subtotal_usd


class TestB2BQuote:
    """Distributor quote calculator."""

    def test_worked_example(self):
        quote = calculate_b2b_quote(
            in_bond_usd=Decimal("5000"),
            transfer_cost_usd=Decimal("200"),
            import_tax_percent=Decimal("20"),
            margin=DistributorMargin(MarginType.PERCENTAGE, Decimal("15")),
        )
        assert _close(quote.import_tax, "1000")
        assert _close(quote.landed_price, "6200")
        assert _close(quote.price_after_margin, "7294.1176")
        assert _close(quote.vat, "364.7059")
        assert _close(quote.customer_quote_price, "7658.8235")

    def test_full_margin_leaves_landed_price(self):
        quote = calculate_b2b_quote(
            in_bond_usd=Decimal("5000"),
            margin=DistributorMargin(MarginType.PERCENTAGE, Decimal("100")),
        )
        assert quote.price_after_margin == quote.landed_price
        assert quote.distributor_margin == 0

    def test_fixed_margin_adds_amount(self):
        quote = calculate_b2b_quote(
            in_bond_usd=Decimal("1000"),
            transfer_cost_usd=Decimal("0"),
            import_tax_percent=Decimal("0"),
            margin=DistributorMargin(MarginType.FIXED, Decimal("250")),
            vat_percent=Decimal("0"),
        )
        assert quote.customer_quote_price == Decimal("1250")

    def test_order_lines_spread_transfer_per_case(self):
        quote = quote_order_lines(
            lines=[
                QuoteLine(quantity=2, line_total_usd=Decimal("2000")),
                QuoteLine(quantity=2, line_total_usd=Decimal("3000")),
            ],
            transfer_cost_usd=Decimal("200"),
        )
        assert [line.per_case.transfer_cost for line in quote.lines] == [Decimal("50"), Decimal("50")]
        assert quote.totals.in_bond_price == Decimal("5000")
        assert quote.totals.transfer_cost == Decimal("200")
        assert _close(quote.totals.customer_quote_price, "7658.8235")

    def test_line_margin_overrides_default(self):
        quote = quote_order_lines(
            lines=[
                QuoteLine(quantity=1, line_total_usd=Decimal("100"),
                          margin=DistributorMargin(MarginType.FIXED, Decimal("10"))),
            ],
            transfer_cost_usd=Decimal("0"),
            import_tax_percent=Decimal("0"),
            vat_percent=Decimal("0"),
        )
        assert quote.totals.price_after_margin == Decimal("110")

    def test_empty_order_quotes_zero_in_bond(self):
        quote = quote_order_lines(lines=[])
        assert quote.lines == ()
        assert quote.totals.in_bond_price == 0
        assert quote.totals.transfer_cost == Decimal("200")

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(ValueError, match="quantity"):
            quote_order_lines(lines=[QuoteLine(quantity=0, line_total_usd=Decimal("1"))])


class TestBulkPricing:
    """Per-row B2B then D2C pipeline."""

    def test_gbp_row_through_full_pipeline(self):
        variables = CalculationVariables()
        price = price_bulk_row(
            source_price=Decimal("100"), currency="GBP", case_config=6, variables=variables
        )

        price_usd = Decimal("100") * Decimal("1.27")
        margined = price_usd / (1 - Decimal("0.05"))
        in_bond_case = margined + Decimal("12")
        delivered = in_bond_case * Decimal("1.10") * Decimal("1.50") * Decimal("1.05")

        assert price.source_currency == "GBP"
        assert price.price_usd == price_usd
        assert price.freight_per_case_usd == Decimal("12")
        assert price.in_bond_case_usd == in_bond_case
        assert price.in_bond_bottle_usd == in_bond_case / 6
        assert price.in_bond_case_aed == in_bond_case * Decimal("3.67")
        assert price.delivered_case_usd == delivered
        assert price.delivered_bottle_aed == delivered / 6 * Decimal("3.67")

    def test_blank_currency_uses_input_currency(self):
        variables = CalculationVariables(input_currency="EUR")
        price = price_bulk_row(
            source_price=Decimal("100"), currency="  ", case_config=12, variables=variables
        )
        assert price.source_currency == "EUR"
        assert price.price_usd == Decimal("108")

    def test_unknown_currency_priced_as_usd(self, captured_logs):
        variables = CalculationVariables()
        assert convert_to_usd(Decimal("50"), "CHF", variables) == Decimal("50")
        assert any(r["message"] == "unknown_currency_priced_as_usd" for r in captured_logs())

    def test_fixed_company_margin(self):
        variables = CalculationVariables(
            input_currency="USD",
            margin_type=MarginType.FIXED,
            margin_absolute=Decimal("20"),
            freight_per_bottle=Decimal("0"),
        )
        price = price_bulk_row(
            source_price=Decimal("100"), currency=None, case_config=6, variables=variables
        )
        assert price.margined_usd == Decimal("120")

    @pytest.mark.parametrize("margin_percent", [Decimal("100"), Decimal("120")])
    def test_full_company_margin_passes_price_through(self, margin_percent):
        variables = CalculationVariables(
            input_currency="USD", margin_percent=margin_percent, freight_per_bottle=Decimal("0")
        )
        price = price_bulk_row(
            source_price=Decimal("840"), currency=None, case_config=6, variables=variables
        )
        assert price.price_usd == Decimal("840")
        assert price.margined_usd == Decimal("840")
        assert price.in_bond_case_usd == Decimal("840")
        assert price.delivered_case_aed.is_finite()

    def test_non_positive_case_config_rejected(self):
        with pytest.raises(ValueError):
            price_bulk_row(
                source_price=Decimal("1"), currency="USD", case_config=0,
                variables=CalculationVariables(),
            )

    def test_variables_round_trip_through_dict(self):
        variables = CalculationVariables(margin_type=MarginType.FIXED, margin_absolute=Decimal("3.5"))
        data = variables.to_dict()
        assert data["margin_type"] == "fixed"
        assert data["margin_absolute"] == "3.5"
        assert CalculationVariables.from_dict(data) == variables

    def test_legacy_absolute_margin_spelling(self):
        assert CalculationVariables.from_dict({"margin_type": "absolute"}).margin_type is MarginType.FIXED

    def test_unknown_variable_rejected(self):
        with pytest.raises(ValueError, match="Unknown calculation variables"):
            CalculationVariables.from_dict({"shipping": "1"})

    @pytest.mark.parametrize(
        "field,value",
        [("gbp_to_usd", Decimal("0")), ("vat_percent", Decimal("-1")), ("default_case_config", 0)],
    )
    def test_invalid_variables_rejected(self, field, value):
        with pytest.raises(ValueError):
            CalculationVariables(**{field: value})


class TestEngineTracing:
    """Engine invocations leave a PRICING_ENGINE_TRACE record."""

    def test_trace_emitted(self, captured_logs):
        compute_order_totals(items=[], rates=OrderRates())
        traces = [r for r in captured_logs() if r["message"] == "PRICING_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "order_totals"
        assert len(traces[-1]["input_fingerprint"]) == 16

    def test_fingerprint_is_deterministic(self):
        kwargs = {"rates": OrderRates(), "items": []}
        first = compute_input_fingerprint(("rates",), kwargs)
        assert first == compute_input_fingerprint(("rates",), dict(kwargs))
        other = compute_input_fingerprint(("rates",), {"rates": OrderRates(vat_percent=Decimal("0"))})
        assert first != other
