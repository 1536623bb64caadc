from decimal import Decimal

import pytest

from errors import PriceNotFoundError, ValidationError
from price_tables import BOOK_PRINTOUTS, MAP_PRODUCTS, PRINTOUTS
from pricing import (
    ProductConfiguration,
    assemble_total,
    binding_options,
    calculate_quote,
    color_key,
    lamination_options,
    paper_options,
    resolve_unit_price,
    to_money,
    update_selection,
)


def _every_printout_entry():
    for size, papers in PRINTOUTS.items():
        for paper, prices in papers.items():
            for key, price in prices.items():
                yield size, paper, key, price


def test_resolver_returns_tabulated_price_for_every_printout_entry():
    for size, paper, key, price in _every_printout_entry():
        assert resolve_unit_price("printouts", size, paper, key) == price


def test_resolver_covers_books_and_maps():
    assert resolve_unit_price("books", "B5", "70 Gsm", "colorBoth") == BOOK_PRINTOUTS["B5"]["70 Gsm"]["colorBoth"]
    assert resolve_unit_price("maps", "A0", "Color", "Per Meter") == MAP_PRODUCTS["A0"]["Color"]["Per Meter"]
    assert resolve_unit_price("photos", "Glossy", "A0") == Decimal("300")


@pytest.mark.parametrize("category, keys", [
    ("printouts", ("A3", "65 Gsm", "bwSingle")),      # 65 Gsm only exists for A4
    ("printouts", ("A4", "70 Gsm", "sepia")),
    ("printouts", ("A5", "70 Gsm", "bwSingle")),
    ("printouts", ("A4", "70 Gsm")),                   # stops short of a price
    ("maps", ("A2", "B/W", "Per Meter")),              # A2 is sheet-only
    ("photos", ("Matt", "A2")),
    ("stickers", ("A4",)),
])
def test_resolver_signals_not_found_for_absent_combinations(category, keys):
    with pytest.raises(PriceNotFoundError) as exc:
        resolve_unit_price(category, *keys)
    assert exc.value.status_code == 404


def test_color_key():
    assert color_key("bw", "single") == "bwSingle"
    assert color_key("color", "both") == "colorBoth"
    assert color_key("COLOR", None) == "colorSingle"
    assert color_key("bwBoth", "single") == "bwBoth"
    with pytest.raises(ValidationError):
        color_key("sepia", "single")
    with pytest.raises(ValidationError):
        color_key(5, "single")
    with pytest.raises(ValidationError):
        color_key("bw", ["single"])


def test_printout_quote_with_binding_and_lamination():
    config = ProductConfiguration(
        category="printouts", size="A4", paper_type="70 Gsm", color_type="bw", sides="single",
        binding="Spiral Binding", binding_pages="Upto 100 Pages", lamination="Thin 50 Micron",
        quantity=100,
    )
    quote = calculate_quote(config)

    assert quote.unit_price == Decimal("0.90")
    assert quote.base_print_price == Decimal("90.00")
    assert quote.binding_price == Decimal("25.00")  # flat per order
    assert quote.lamination_price == Decimal("1000.00")  # per sheet
    assert quote.total_price == Decimal("1115.00")
    assert quote.price_per_unit == Decimal("11.15")


def test_not_required_addons_cost_nothing():
    config = ProductConfiguration(size="A4", paper_type="100 Gsm", color_type="color", sides="both",
                                  binding="Not Required", lamination="Not Required", quantity=3)
    quote = calculate_quote(config)
    assert quote.total_price == Decimal("27.00")
    assert quote.binding_price == Decimal("0")
    assert quote.lamination_price == Decimal("0")


def test_binding_without_tier_is_a_configuration_error():
    config = ProductConfiguration(size="A4", paper_type="70 Gsm", binding="Spiral Binding", quantity=10)
    with pytest.raises(PriceNotFoundError):
        calculate_quote(config)


def test_hard_binding_uses_style_tiers():
    config = ProductConfiguration(size="A3", paper_type="130 Gsm", color_type="color", sides="single",
                                  binding="Hard Binding", binding_pages="With Golden Print", quantity=2)
    quote = calculate_quote(config)
    assert quote.base_print_price == Decimal("40.00")
    assert quote.binding_price == Decimal("200.00")
    assert quote.total_price == Decimal("240.00")


def test_book_quote_multiplies_pages_and_copies():
    config = ProductConfiguration(category="books", size="A5", paper_type="70 Gsm", color_type="color",
                                  sides="both", pages=120, quantity=2,
                                  binding="Glue Binding", binding_pages="Upto 150 Pages")
    quote = calculate_quote(config)
    assert quote.base_print_price == Decimal("816.00")
    assert quote.binding_price == Decimal("50.00")  # per copy
    assert quote.total_price == Decimal("866.00")
    assert quote.price_per_unit == Decimal("433.00")


def test_map_quote_with_lamination():
    config = ProductConfiguration(category="maps", size="A1", paper_type=None, color_type="color",
                                  pricing_type="Per Meter", lamination="50 Micron", quantity=3)
    quote = calculate_quote(config)
    assert quote.base_print_price == Decimal("600.00")
    assert quote.lamination_price == Decimal("360.00")
    assert quote.total_price == Decimal("960.00")


def test_photo_quote():
    config = ProductConfiguration(category="photos", size="5X7", paper_type="Matt",
                                  lamination="Glossy", quantity=4)
    quote = calculate_quote(config)
    assert quote.total_price == Decimal("140.00")

    with pytest.raises(PriceNotFoundError):
        calculate_quote(ProductConfiguration(category="photos", size="A2", paper_type="Matt"))


def test_from_dict_validates_quantity_and_pages():
    base = {"category": "printouts", "size": "A4", "paper_type": "70 Gsm"}

    config = ProductConfiguration.from_dict({**base, "quantity": "5"})
    assert config.quantity == 5
    assert config.color_type == "bw"

    for bad in (0, -2, "many", None, True):
        with pytest.raises(ValidationError):
            ProductConfiguration.from_dict({**base, "quantity": bad})

    with pytest.raises(ValidationError):
        ProductConfiguration.from_dict({**base, "quantity": 11}, max_quantity=10)
    with pytest.raises(ValidationError):
        ProductConfiguration.from_dict({**base, "pages": 0})
    with pytest.raises(ValidationError):
        ProductConfiguration.from_dict({**base, "category": "stickers"})
    with pytest.raises(ValidationError):
        ProductConfiguration.from_dict({"category": "printouts"})


def test_options_follow_size():
    assert paper_options("A3") == ["70 Gsm", "75 Gsm", "100 Gsm", "130 Gsm"]
    assert "Not Required" in binding_options("A4")
    assert "Not Required" not in binding_options("A3")
    assert lamination_options("A3")[0] == "Not Required"
    assert paper_options("A2", "photos") == ["Glossy"]
    assert binding_options("A4", "maps") == {}


def test_update_selection_resets_dependent_choices_on_size_change():
    start = ProductConfiguration(size="A4", paper_type="65 Gsm", binding="Spiral Binding",
                                 binding_pages="Upto 50 Pages", lamination="Thick 125 Micron", quantity=7)

    changed = update_selection(start, "size", "A3")

    assert changed.size == "A3"
    assert changed.paper_type == "70 Gsm"
    assert changed.binding is None
    assert changed.binding_pages is None
    assert changed.lamination == "Not Required"
    assert changed.quantity == 7
    # reducer never mutates its input
    assert start.size == "A4" and start.binding == "Spiral Binding"


def test_update_selection_keeps_other_choices():
    start = ProductConfiguration(size="A4", paper_type="75 Gsm", lamination="Thin 50 Micron")
    changed = update_selection(start, "color_type", "color")
    assert changed.color_type == "color"
    assert changed.paper_type == "75 Gsm"
    assert changed.lamination == "Thin 50 Micron"

    with pytest.raises(ValidationError):
        update_selection(start, "finish", "gloss")
    with pytest.raises(ValidationError):
        update_selection(start, "size", ["A3"])


def test_assemble_total():
    totals = assemble_total(Decimal("1000"), Decimal("150"))
    assert totals.total == Decimal("850.00")

    clamped = assemble_total(Decimal("100"), Decimal("150"))
    assert clamped.discount == Decimal("100.00")
    assert clamped.total == Decimal("0.00")

    with_fees = assemble_total("590", "118", "40")
    assert with_fees.fees == Decimal("40.00")
    assert with_fees.total == Decimal("512.00")

    assert assemble_total(50, -10).discount == Decimal("0.00")

    with pytest.raises(ValidationError):
        assemble_total(-1, 0)
    with pytest.raises(ValidationError):
        assemble_total(10, 0, -5)


def test_total_is_never_negative():
    for subtotal in (0, 1, 99.99, 1000):
        for discount in (0, 0.5, 50, 5000):
            assert assemble_total(subtotal, discount).total >= 0


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(None) == Decimal("0.00")
    with pytest.raises(ValidationError):
        to_money("abc")
    with pytest.raises(ValidationError):
        to_money("NaN")
    with pytest.raises(ValidationError):
        to_money([1])


def test_resolver_treats_unhashable_keys_as_missing():
    with pytest.raises(PriceNotFoundError):
        resolve_unit_price("printouts", ["A4"], "70 Gsm", "bwSingle")
    with pytest.raises(PriceNotFoundError):
        resolve_unit_price("printouts", "A4", {"paper": "70 Gsm"}, "bwSingle")
    with pytest.raises(PriceNotFoundError):
        resolve_unit_price(["printouts"], "A4", "70 Gsm", "bwSingle")


@pytest.mark.parametrize("field, value", [
    ("size", 4),
    ("paper_type", ["70 Gsm"]),
    ("category", ["printouts"]),
    ("color_type", 5),
    ("binding", {"name": "Spiral Binding"}),
])
def test_from_dict_requires_text_attributes(field, value):
    data = {"size": "A4", "paper_type": "70 Gsm", field: value}
    with pytest.raises(ValidationError) as exc:
        ProductConfiguration.from_dict(data)
    assert field in exc.value.message
