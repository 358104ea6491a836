"""
Voluntary intake capacity (VOC) model.

VOC is the product of a maturity term, a lactation term and a pregnancy
term (CVB 2007, Formule 5.1 - 5.5). Capacity is expressed in filling
units (VW) and converted to kg DS with a fixed factor. Saturation compares
the ration's total filling value with the capacity; an exceeded capacity
is reported, never clipped.
"""

import numpy as np

from app.models import VOCResult

from .config import CVB_2025
from .utilities import require_non_negative, require_range, safe_divide, round_half_up


def _validate_voc_inputs(parity, days_in_milk, days_pregnant, constants=CVB_2025):
    parity = require_range(parity, "parity", 1, float("inf"))
    days_in_milk = require_non_negative(days_in_milk, "days_in_milk")
    days_pregnant = require_range(days_pregnant, "days_pregnant", 0, constants.max_days_pregnant)
    return parity, days_in_milk, days_pregnant


def lactation_age(parity, days_in_milk):
    return (parity - 1) + days_in_milk / 365


def maturity_component(age_years, constants=CVB_2025):
    return constants.voc_alpha_0 + constants.voc_alpha_1 * (1 - np.exp(-constants.voc_rho_alpha * age_years))


def lactation_factor(days_in_milk, constants=CVB_2025):
    return 1 - constants.voc_beta * np.exp(-constants.voc_rho_beta * days_in_milk)


def pregnancy_factor(days_pregnant, constants=CVB_2025):
    days_pregnant = require_non_negative(days_pregnant, "days_pregnant")
    return 1 - constants.voc_delta_220 * (days_pregnant / 220) ** 2


def calculate_voc(parity, days_in_milk, days_pregnant, constants=CVB_2025):
    """
    Calculate intake capacity for one animal.

    Args:
        parity (int): Lactation number, >= 1
        days_in_milk (float): Days since calving, >= 0
        days_pregnant (float): Days pregnant, 0 - constants.max_days_pregnant
        constants (CvbConstants): Coefficient set

    Returns:
        dict: lactation_age, maturity, lactation_factor, pregnancy_factor,
              voc_vw and voc_kg_ds (all unrounded)
    """
    parity, days_in_milk, days_pregnant = _validate_voc_inputs(parity, days_in_milk, days_pregnant, constants)

    age = lactation_age(parity, days_in_milk)
    maturity = float(maturity_component(age, constants))
    lact = float(lactation_factor(days_in_milk, constants))
    preg = float(pregnancy_factor(days_pregnant, constants))
    voc_vw = maturity * lact * preg

    return {
        "lactation_age": age,
        "maturity": maturity,
        "lactation_factor": lact,
        "pregnancy_factor": preg,
        "voc_vw": voc_vw,
        "voc_kg_ds": voc_vw * constants.voc_to_kg_ds,
    }


def saturation_status(saturation_percent, constants=CVB_2025):
    """<95% ok, 95-100% warning, >100% exceeded."""
    if saturation_percent > constants.voc_exceeded_percent:
        return "exceeded"
    if saturation_percent >= constants.voc_warning_percent:
        return "warning"
    return "ok"


def _saturation_message(status, saturation_percent):
    pct = int(round_half_up(saturation_percent, 0))
    if status == "exceeded":
        return f"Intake capacity exceeded ({pct}%). The cow cannot take in this ration."
    if status == "warning":
        return f"Intake capacity almost reached ({pct}%). Little room for extra feed."
    return f"Intake capacity OK ({pct}%). The cow can take in this ration."


def evaluate_intake_capacity(state, total_vw, constants=CVB_2025):
    """
    Compare the ration's total filling value with the animal's capacity.

    Saturation is total VW / VOC (both in filling units) x 100.

    Args:
        state (LactationState): Parity, days in milk and days pregnant
        total_vw (float): Sum of kg DS x VW per kg DS over all feeds
        constants (CvbConstants): Coefficient set

    Returns:
        VOCResult: Capacity, saturation and status
    """
    voc = calculate_voc(state.parity, state.days_in_milk, state.days_pregnant, constants)
    total_vw = require_non_negative(total_vw, "total_vw")

    saturation = safe_divide(total_vw, voc["voc_vw"]) * 100
    status = saturation_status(saturation, constants)

    return VOCResult(
        total_vw=total_vw,
        saturation_percent=saturation,
        status=status,
        message=_saturation_message(status, saturation),
        **voc,
    )
