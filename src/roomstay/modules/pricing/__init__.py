from roomstay.modules.pricing.calculator import (
    NightlyPrice,
    PricingEngine,
    StayQuote,
    calculate_stay_price,
)
from roomstay.modules.pricing.rates import RateManager

__all__ = ["NightlyPrice", "PricingEngine", "RateManager", "StayQuote", "calculate_stay_price"]
