"""Environmental impact — linear coefficients over total recycled weight.

The coefficients are product-level constants, not physical measurements.
Change them here only; nothing else multiplies weights by impact factors.
"""

from src.wm_wallet.domain.models import EnvironmentalImpact
from src.wm_wallet.domain.weights import validate_weight

CO2_KG_PER_KG = 0.5
WATER_LITERS_PER_KG = 0.1
LANDFILL_KG_PER_KG = 0.3
CO2_KG_PER_TREE = 22.0  # CO2 a tree absorbs per year


def impact_for(total_weight_kg: float) -> EnvironmentalImpact:
    weight = validate_weight(total_weight_kg)
    co2 = weight * CO2_KG_PER_KG
    return EnvironmentalImpact(
        co2_saved_kg=co2,
        water_saved_liters=weight * WATER_LITERS_PER_KG,
        landfill_saved_kg=weight * LANDFILL_KG_PER_KG,
        trees_equivalent=co2 / CO2_KG_PER_TREE,
    )
