# optmodel — Black-Scholes-Merton option model with calibration
# Public API

from .core import OptionType, OptionParameters, CALL, PUT, DAYS_PER_YEAR
from .errors import (
    OptionModelError, InvalidInput, InvalidParameters,
    OutOfRange, DeltaOutOfRange, PriceOutOfRange, NonConvergence,
)

# Stateless calculator
from . import calculator
from .calculator import (
    norm_sdist, phi, price_call, price_put, implied_vol_call, implied_vol_put,
)

# Stateful model
from .model import (
    ConvergencePolicy, OptionKind, CallKind, PutKind,
    OptionModel, CallModel, PutModel,
)

__all__ = [
    # Data model
    "OptionType", "OptionParameters", "CALL", "PUT", "DAYS_PER_YEAR",
    # Errors
    "OptionModelError", "InvalidInput", "InvalidParameters",
    "OutOfRange", "DeltaOutOfRange", "PriceOutOfRange", "NonConvergence",
    # Calculator
    "calculator", "norm_sdist", "phi", "price_call", "price_put",
    "implied_vol_call", "implied_vol_put",
    # Model
    "ConvergencePolicy", "OptionKind", "CallKind", "PutKind",
    "OptionModel", "CallModel", "PutModel",
]

__version__ = "0.1.0"
