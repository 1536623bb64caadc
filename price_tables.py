# Static price tables for configurable print products.
# Prices are per unit (sheet, page or print) unless the table says otherwise.

from decimal import Decimal as D

NOT_REQUIRED = "Not Required"

# color/sides keys shared by printouts and books
COLOR_KEYS = ("bwSingle", "bwBoth", "colorSingle", "colorBoth")

# --- Printouts: size -> paper type -> color key -----------------------------
PRINTOUTS = {
    "A4": {
        "65 Gsm": {"bwSingle": D("0.84"), "bwBoth": D("0.98"), "colorSingle": D("3.00"), "colorBoth": D("5.00")},
        "70 Gsm": {"bwSingle": D("0.90"), "bwBoth": D("1.10"), "colorSingle": D("3.50"), "colorBoth": D("6.00")},
        "75 Gsm": {"bwSingle": D("1.00"), "bwBoth": D("1.20"), "colorSingle": D("4.00"), "colorBoth": D("7.00")},
        "100 Gsm": {"bwSingle": D("1.85"), "bwBoth": D("3.10"), "colorSingle": D("5.00"), "colorBoth": D("9.00")},
        "100 Gsm BOND": {"bwSingle": D("2.00"), "bwBoth": D("3.50"), "colorSingle": D("7.00"), "colorBoth": D("10.00")},
    },
    "A3": {
        "70 Gsm": {"bwSingle": D("3.00"), "bwBoth": D("4.50"), "colorSingle": D("10.00"), "colorBoth": D("15.00")},
        "75 Gsm": {"bwSingle": D("3.50"), "bwBoth": D("5.00"), "colorSingle": D("12.00"), "colorBoth": D("20.00")},
        "100 Gsm": {"bwSingle": D("4.00"), "bwBoth": D("6.00"), "colorSingle": D("15.00"), "colorBoth": D("22.00")},
        "130 Gsm": {"bwSingle": D("5.00"), "bwBoth": D("8.00"), "colorSingle": D("20.00"), "colorBoth": D("25.00")},
    },
}

# --- Lamination: size -> type (per sheet) -----------------------------------
LAMINATION = {
    "A4": {NOT_REQUIRED: D("0"), "Thin 50 Micron": D("10"), "Thick 125 Micron": D("20")},
    "A3": {NOT_REQUIRED: D("0"), "Thin 50 Micron": D("30"), "Thick 125 Micron": D("40")},
}

_PAGE_TIERS = (
    "Upto 50 Pages",
    "Upto 100 Pages",
    "Upto 150 Pages",
    "Upto 200 Pages",
    "Upto 250 Pages",
    "Upto 300 Pages",
)


def _tiers(*prices):
    return {tier: D(str(p)) for tier, p in zip(_PAGE_TIERS, prices)}


# --- Binding: size -> binding type -> tier (flat per order) -----------------
BINDING = {
    "A4": {
        NOT_REQUIRED: {"O": D("0")},
        "Spiral Binding": _tiers(20, 25, 30, 35, 40, 45),
        "Wiro Binding": _tiers(25, 30, 35, 40, 45, 50),
        "Glue Binding": _tiers(15, 20, 25, 30, 35, 40),
        "Hard Binding": {
            "Standard": D("50"),
            "With Golden Print (Black Cover)": D("150"),
            "With Silver Print (Red Cover)": D("150"),
        },
    },
    "A3": {
        "Spiral Binding": _tiers(40, 60, 80, 100, 120, 140),
        "Wiro Binding": _tiers(45, 65, 85, 105, 125, 145),
        "Glue Binding": _tiers(30, 35, 40, 50, 60, 70),
        "Hard Binding": {
            "Standard": D("70"),
            "With Golden Print": D("200"),
            "With Silver Print": D("200"),
        },
    },
}

# --- Books: size -> paper type -> color key (per page) ----------------------
BOOK_PRINTOUTS = {
    "A5": {"70 Gsm": {"bwSingle": D("0.65"), "bwBoth": D("0.80"), "colorSingle": D("2.10"), "colorBoth": D("3.40")}},
    "B5": {"70 Gsm": {"bwSingle": D("0.70"), "bwBoth": D("0.90"), "colorSingle": D("3.10"), "colorBoth": D("5.50")}},
    "A4": {"70 Gsm": {"bwSingle": D("0.90"), "bwBoth": D("1.10"), "colorSingle": D("3.50"), "colorBoth": D("6.00")}},
    "A3": {"70 Gsm": {"bwSingle": D("2.00"), "bwBoth": D("3.50"), "colorSingle": D("10.00"), "colorBoth": D("15.00")}},
}

# book binding is charged per copy
BOOK_BINDING = {
    "Glue Binding": _tiers(15, 20, 25, 30, 35, 40),
    "Hard Binding": _tiers(40, 45, 50, 55, 60, 65),
}

# --- Maps: size -> print type -> pricing type -------------------------------
STANDARD_SHEET = "Standard Sheet"
PER_METER = "Per Meter"

MAP_PRODUCTS = {
    "A2": {
        "B/W": {STANDARD_SHEET: D("45")},
        "Color": {STANDARD_SHEET: D("90")},
    },
    "A1": {
        "B/W": {STANDARD_SHEET: D("75"), PER_METER: D("100")},
        "Color": {STANDARD_SHEET: D("150"), PER_METER: D("200")},
    },
    "A0": {
        "B/W": {STANDARD_SHEET: D("150"), PER_METER: D("200")},
        "Color": {STANDARD_SHEET: D("350"), PER_METER: D("400")},
    },
    "A0+": {
        "B/W": {STANDARD_SHEET: D("200")},
        "Color": {STANDARD_SHEET: D("500")},
    },
}

MAP_PAPER_TYPE = "80 Gsm"
MAP_LAMINATION_TYPE = "50 Micron"

MAP_LAMINATION = {
    "A2": D("50"),
    "A1": D("120"),
    "A0": D("180"),
    "A0+": D("200"),
}

# --- Photos: finish -> size -------------------------------------------------
PHOTO_PRODUCTS = {
    "Glossy": {
        "4X6": D("10"), "5X7": D("20"), "8X10": D("45"), "A4": D("55"),
        "8X12": D("60"), "10X15": D("80"), "12X18": D("100"), "A3": D("120"),
        "A2": D("150"), "A1": D("200"), "A0": D("300"),
    },
    "Matt": {
        "4X6": D("15"), "5X7": D("25"), "8X10": D("50"), "A4": D("60"),
        "8X12": D("65"), "10X15": D("85"), "12X18": D("110"), "A3": D("130"),
    },
}

GLOSSY_LAMINATION = {
    "4X6": D("5"), "5X7": D("10"), "8X10": D("30"), "A4": D("40"),
    "8X12": D("50"), "10X15": D("70"), "12X18": D("90"), "A3": D("85"),
    "A2": D("100"), "A1": D("120"), "A0": D("150"),
}

# category -> unit price table (resolver entry points)
PRICE_TABLES = {
    "printouts": PRINTOUTS,
    "books": BOOK_PRINTOUTS,
    "maps": MAP_PRODUCTS,
    "photos": PHOTO_PRODUCTS,
}
