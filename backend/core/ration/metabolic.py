"""
Metabolic weight and milk correction primitives (CVB 2025, Formule 2.1).
"""

import numpy as np

from .config import CVB_2025
from .utilities import require_positive, require_non_negative


def metabolic_weight(weight_kg, constants=CVB_2025):
    """Metabolic weight MW = LW^0.75, defined only for a positive live weight."""
    weight_kg = require_positive(weight_kg, "weight_kg")
    return float(np.power(weight_kg, constants.metabolic_exponent))


def fpcm(milk_kg, fat_percent, protein_percent, constants=CVB_2025):
    """
    Fat and protein corrected milk.

    FPCM = milk x (0.337 + 0.116 x fat% + 0.06 x protein%)

    Args:
        milk_kg (float): Milk yield in kg/day
        fat_percent (float): Milk fat percentage
        protein_percent (float): Milk protein percentage
        constants (CvbConstants): Coefficient set

    Returns:
        float: FPCM in kg/day
    """
    milk_kg = require_non_negative(milk_kg, "milk_kg")
    fat_percent = require_non_negative(fat_percent, "fat_percent")
    protein_percent = require_non_negative(protein_percent, "protein_percent")

    factor = (constants.fpcm_constant
              + constants.fpcm_fat_coef * fat_percent
              + constants.fpcm_protein_coef * protein_percent)
    return milk_kg * factor


def protein_yield(milk_kg, protein_percent):
    """Milk protein yield in g/day (milk x protein% x 10)."""
    milk_kg = require_non_negative(milk_kg, "milk_kg")
    protein_percent = require_non_negative(protein_percent, "protein_percent")
    return milk_kg * protein_percent * 10
