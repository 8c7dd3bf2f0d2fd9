"""Material price table used to value rows stored without a computed value.

Prices are per kilogram in Rand. Unknown materials fall back to R1/kg.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class MaterialRate:
    material_type: str
    name: str
    price_per_kg: Decimal


MATERIAL_RATES: dict[str, MaterialRate] = {
    rate.material_type: rate
    for rate in (
        MaterialRate("PET", "PET Plastic Bottles", Decimal("1.50")),
        MaterialRate("ALUMINUM_CANS", "Aluminum Cans", Decimal("18.55")),
        MaterialRate("GLASS", "Glass Bottles", Decimal("2.50")),
        MaterialRate("PAPER", "Paper & Cardboard", Decimal("1.20")),
        MaterialRate("ELECTRONICS", "Electronic Waste", Decimal("25.00")),
        MaterialRate("BATTERIES", "Batteries", Decimal("35.00")),
    )
}

FALLBACK_PRICE_PER_KG = Decimal("1.00")

_CENT = Decimal("0.01")


def normalize_material_type(material_type: str) -> str:
    """'aluminum cans' / 'Aluminum-Cans' -> 'ALUMINUM_CANS'."""
    return material_type.strip().upper().replace("-", "_").replace(" ", "_")


def price_per_kg(material_type: str) -> Decimal:
    rate = MATERIAL_RATES.get(normalize_material_type(material_type))
    return rate.price_per_kg if rate else FALLBACK_PRICE_PER_KG


def estimate_value(material_type: str, weight_kg: float) -> float:
    """Value of `weight_kg` of material, rounded half-up to the cent."""
    value = Decimal(str(weight_kg)) * price_per_kg(material_type)
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))
