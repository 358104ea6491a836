"""
Balance and status evaluation.

Compares requirement with supply per parameter and classifies the result:
- Dry matter intake: supply above the intake ceiling is a warning
- VEM / DVE / Ca / P: percent-of-requirement bands
- OEB: absolute bands around zero

Statuses are computed on unrounded values; rounding is a display concern.
"""

from app.models import NutrientBalance, UreumStatus

from .config import (
    CVB_2025,
    BALANCE_PARAMETERS,
    BALANCE_ORDER,
    PROFILE_NARRATIVES,
    DEFAULT_NARRATIVE,
)
from .utilities import InputValidationError, require_non_negative, safe_divide, format_number


def coverage_percent(supply, requirement):
    return safe_divide(supply, requirement) * 100


def coverage_status(supply, requirement, constants=CVB_2025):
    """
    Percent-of-requirement band: below 90 deficient, 90-100 warning,
    100-110 ok, above 110 warning.

    Bands are compared as supply * 100 against requirement * threshold so
    that a supply of exactly 110% of the requirement stays "ok".
    """
    if requirement <= 0:
        return "deficient"
    scaled = supply * 100
    if scaled < requirement * constants.coverage_deficient:
        return "deficient"
    if scaled < requirement * constants.coverage_full:
        return "warning"
    if scaled > requirement * constants.coverage_excess:
        return "warning"
    return "ok"


def oeb_status(supply, constants=CVB_2025):
    if supply < constants.oeb_deficient:
        return "deficient"
    if supply < constants.oeb_minimum:
        return "warning"
    return "ok"


def dmi_status(supply, requirement):
    return "warning" if supply > requirement else "ok"


def classify_balance(key, supply, requirement, constants=CVB_2025):
    """Status of one balance parameter ('dmi', 'vem', 'dve', 'oeb', 'ca', 'p')."""
    if key not in BALANCE_PARAMETERS:
        raise InputValidationError("parameter", f"unknown balance parameter {key!r}")
    rule = BALANCE_PARAMETERS[key]["rule"]
    if rule == "oeb":
        return oeb_status(supply, constants)
    if rule == "ceiling":
        return dmi_status(supply, requirement)
    return coverage_status(supply, requirement, constants)


def build_balance(key, requirement, supply, constants=CVB_2025):
    meta = BALANCE_PARAMETERS[key]
    percent = coverage_percent(supply, requirement) if meta["rule"] == "coverage" else None
    return NutrientBalance(
        parameter=meta["display_name"],
        requirement=requirement,
        supply=supply,
        balance=supply - requirement,
        status=classify_balance(key, supply, requirement, constants),
        unit=meta["unit"],
        percent_of_requirement=percent,
    )


def calculate_nutrient_balances(profile, requirement, minerals, supply, constants=CVB_2025):
    """
    Balances for DMI, VEM, DVE, OEB, Ca and P.

    Args:
        profile (AnimalProfile): Supplies the dry matter intake ceiling
        requirement (RequirementResult): VEM / DVE requirement
        minerals (MineralRequirement): Ca / P requirement
        supply (NutrientSupply): Ration totals
        constants (CvbConstants): Coefficient set

    Returns:
        list[NutrientBalance]: In the order dmi, vem, dve, oeb, ca, p
    """
    pairs = {
        "dmi": (profile.max_bds_kg, supply.dry_matter_kg),
        "vem": (requirement.vem_total, supply.vem),
        "dve": (requirement.dve_total, supply.dve_grams),
        "oeb": (0.0, supply.oeb_grams),
        "ca": (minerals.ca_grams, supply.ca_grams),
        "p": (minerals.p_grams, supply.p_grams),
    }
    return [build_balance(key, *pairs[key], constants=constants) for key in BALANCE_ORDER]


def find_balance(balances, key):
    name = BALANCE_PARAMETERS[key]["display_name"]
    for b in balances:
        if b.parameter == name:
            return b
    return None


def is_target_met(balances, constants=CVB_2025):
    """VEM and DVE supply both at least 95% of requirement."""
    for key in ("vem", "dve"):
        b = find_balance(balances, key)
        if b is None or b.supply < b.requirement * constants.target_met_fraction:
            return False
    return True


def performance_prediction(profile_name, target_met):
    """Narrative for the profile, with a generic fallback for unknown names."""
    narrative = PROFILE_NARRATIVES.get(profile_name, DEFAULT_NARRATIVE)
    return narrative["met"] if target_met else narrative["not_met"]


def evaluate_ureum(ureum, constants=CVB_2025):
    """Milk urea status: below 15 low, above 30 high (mg/100 ml)."""
    ureum = require_non_negative(ureum, "ureum")
    if ureum < constants.ureum_minimum:
        status = "low"
        message = (f"Milk urea {format_number(ureum, 1)} is low: the rumen is short of degradable protein. "
                   "Check the OEB balance.")
    elif ureum > constants.ureum_maximum:
        status = "high"
        message = (f"Milk urea {format_number(ureum, 1)} is high: protein surplus. "
                   "Reduce OEB in the ration.")
    else:
        status = "ok"
        message = f"Milk urea {format_number(ureum, 1)} is within range."
    return UreumStatus(value=ureum, status=status, message=message)
