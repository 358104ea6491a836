"""
Gap analysis for a two-tier feeding system.

A roughage base mix is fed to the whole herd; each herd group gets a
concentrate top-up for the nutrients the base mix leaves open. This module
handles:
- The milk a base mix supports above maintenance
- The VEM / DVE gap per group and the limiting nutrient
- The concentrate that closes the gap, rounded to 0.1 kg DS
- Roughage displaced by that concentrate and the structure value left
  after substitution
- Straw needed to restore structure, and the concentrate cost

Values in the result models are unrounded except the concentrate amount,
which is a feeding instruction.
"""

from app.models import (
    BaseMilkSupport,
    BaseRationDensity,
    ConcentrateCost,
    ConcentrateDensity,
    GapAnalysisResult,
    GroupRequirements,
)

from .config import CVB_2025
from .utilities import (
    InputValidationError,
    require_non_negative,
    require_positive,
    round_half_up,
    safe_divide,
    safe_sum,
    format_number,
)
from .metabolic import metabolic_weight, fpcm, protein_yield
from .animal_requirements import vem_maintenance, vem_production, dve_maintenance, dve_production
from .structure import structure_status
from .substitution import roughage_displacement

DEFAULT_CONCENTRATE = ConcentrateDensity()

DEFAULT_COW_WEIGHT_KG = 650.0


# ===================================================================
# STRUCTURE SAFETY
# ===================================================================

def sw_safety_status(sw_per_kg_ds, constants=CVB_2025):
    """
    'danger' below the structure minimum (1.0), 'warning' below the safe
    level (1.2), otherwise 'safe'.
    """
    if structure_status(sw_per_kg_ds, constants) != "ok":
        return "danger"
    if sw_per_kg_ds < constants.sw_safe:
        return "warning"
    return "safe"


def sw_deficit(sw_per_kg_ds, constants=CVB_2025):
    return max(0.0, constants.sw_safe - sw_per_kg_ds)


def _acidosis_advice(status, sw_per_kg_ds, constants):
    if status == "danger":
        return (f"ACIDOSIS RISK: SW {format_number(sw_per_kg_ds)} per kg DS "
                f"(minimum {format_number(constants.sw_minimum)})",
                "Reduce concentrate, add straw or raise the grass share of the base mix")
    if status == "warning":
        return (f"Watch structure: SW {format_number(sw_per_kg_ds)} per kg DS "
                f"(recommended at least {format_number(constants.sw_safe)})",
                "Consider more structure-rich roughage in the base mix")
    return None, None


# ===================================================================
# BASE MIX AND GROUP INPUTS
# ===================================================================

def base_ration_density(contributions):
    """
    Dry-matter weighted density of a base mix.

    Args:
        contributions (list[FeedContribution]): Feeds of the base mix

    Returns:
        BaseRationDensity: Nutrients per kg DS, zero for an empty mix
    """
    total_ds = safe_sum([c.dry_matter_kg for c in contributions])
    return BaseRationDensity(
        vem_per_kg_ds=safe_divide(safe_sum([c.supply.vem for c in contributions]), total_ds),
        dve_per_kg_ds=safe_divide(safe_sum([c.supply.dve_grams for c in contributions]), total_ds),
        oeb_per_kg_ds=safe_divide(safe_sum([c.supply.oeb_grams for c in contributions]), total_ds),
        sw_per_kg_ds=safe_divide(safe_sum([c.sw_total for c in contributions]), total_ds),
        vw_per_kg_ds=safe_divide(safe_sum([c.vw_total for c in contributions]), total_ds),
    )


def group_requirements(weight_kg, milk=None, is_lactating=True, constants=CVB_2025):
    """
    Average maintenance + production requirement of a herd group.

    Dry groups, or groups without milk data, get maintenance only.
    """
    if not is_lactating or milk is None:
        return GroupRequirements(
            vem_per_cow=vem_maintenance(weight_kg, is_lactating, constants),
            dve_per_cow=dve_maintenance(weight_kg, constants),
        )
    fpcm_kg = fpcm(milk.milk_kg, milk.fat_percent, milk.protein_percent, constants)
    py = protein_yield(milk.milk_kg, milk.protein_percent)
    return GroupRequirements(
        vem_per_cow=vem_maintenance(weight_kg, True, constants) + vem_production(fpcm_kg, constants),
        dve_per_cow=dve_maintenance(weight_kg, constants) + dve_production(py, constants),
    )


def _gap_maintenance_vem(weight_kg, constants):
    return constants.gap_vem_maintenance * metabolic_weight(weight_kg, constants)


def calculate_base_milk_support(density, roughage_intake_kg_ds=None, weight_kg=DEFAULT_COW_WEIGHT_KG,
                                constants=CVB_2025):
    """
    Milk a base mix supports on its own.

    Parameters:
    -----------
    density : BaseRationDensity
        Nutrients per kg DS of the base mix
    roughage_intake_kg_ds : float, optional
        Base mix intake, defaults to 15 kg DS
    weight_kg : float
        Live weight of the cow
    constants : CvbConstants
        Coefficient set

    Returns:
    --------
    BaseMilkSupport
    """
    if roughage_intake_kg_ds is None:
        roughage_intake_kg_ds = constants.default_roughage_intake_kg_ds
    intake = require_non_negative(roughage_intake_kg_ds, "roughage_intake_kg_ds")

    total_vem = density.vem_per_kg_ds * intake
    total_dve = density.dve_per_kg_ds * intake
    total_sw = density.sw_per_kg_ds * intake
    maintenance_vem = _gap_maintenance_vem(weight_kg, constants)
    maintenance_dve = dve_maintenance(weight_kg, constants)
    production_vem = max(0.0, total_vem - maintenance_vem)
    sw_per_kg_ds = safe_divide(total_sw, intake)

    return BaseMilkSupport(
        total_vem=total_vem,
        total_dve=total_dve,
        total_sw=total_sw,
        maintenance_vem=maintenance_vem,
        maintenance_dve=maintenance_dve,
        production_vem=production_vem,
        production_dve=max(0.0, total_dve - maintenance_dve),
        milk_support_kg=production_vem / constants.gap_vem_per_kg_milk,
        sw_per_kg_ds=sw_per_kg_ds,
        is_sw_safe=sw_per_kg_ds >= constants.sw_minimum,
        sw_status=sw_safety_status(sw_per_kg_ds, constants),
    )


# ===================================================================
# GAP
# ===================================================================

def limiting_nutrient(gap_vem, gap_dve, concentrate=DEFAULT_CONCENTRATE):
    """Nutrient needing the most concentrate to close; VEM wins a tie."""
    if gap_vem <= 0 and gap_dve <= 0:
        return "none"
    if gap_vem / concentrate.vem >= gap_dve / concentrate.dve:
        return "VEM"
    return "DVE"


def _empty_gap_result(requirements, concentrate, constants):
    """Concentrate only: everything is gap and there is no structure."""
    concentrate_kg_ds = round_half_up(requirements.vem_per_cow / concentrate.vem, 1)
    warning = "No base ration: concentrate alone is not safe"
    return GapAnalysisResult(
        base_intake_kg_ds=0.0, base_vem=0.0, base_dve=0.0, base_oeb=0.0, base_sw=0.0,
        base_milk_support_kg=0.0, target_milk_kg=0.0,
        gap_milk_kg=0.0,
        gap_vem=requirements.vem_per_cow,
        gap_dve=requirements.dve_per_cow,
        gap_oeb=requirements.oeb_per_cow,
        concentrate_kg_ds=concentrate_kg_ds,
        concentrate_vem=concentrate_kg_ds * concentrate.vem,
        concentrate_dve=concentrate_kg_ds * concentrate.dve,
        concentrate_sw=0.0,
        roughage_displacement_kg_ds=0.0,
        adjusted_roughage_intake_kg_ds=0.0,
        adjusted_roughage_vem=0.0,
        adjusted_roughage_dve=0.0,
        adjusted_roughage_sw=0.0,
        final_intake_kg_ds=concentrate_kg_ds,
        final_vem=concentrate_kg_ds * concentrate.vem,
        final_dve=concentrate_kg_ds * concentrate.dve,
        final_sw=0.0,
        final_sw_per_kg_ds=0.0,
        is_sw_safe=False,
        sw_status="danger",
        sw_deficit=constants.sw_safe,
        is_deficit=True,
        limiting_nutrient="VEM",
        acidosis_risk=True,
        acidosis_warning=warning,
        adjustment_suggestion="Build a roughage base ration first",
    )


def calculate_gap(density, requirements, base_intake_kg_ds=None, concentrate=DEFAULT_CONCENTRATE,
                  target_milk_kg=0.0, weight_kg=DEFAULT_COW_WEIGHT_KG, substitution_rate=None,
                  constants=CVB_2025):
    """
    Concentrate top-up for one herd group, with substitution and SW check.

    Parameters:
    -----------
    density : BaseRationDensity or None
        Base mix density; None means there is no base mix
    requirements : GroupRequirements
        Average requirement per cow
    base_intake_kg_ds : float, optional
        Base mix intake before substitution, defaults to 15 kg DS
    concentrate : ConcentrateDensity
        Top-up concentrate
    target_milk_kg : float
        Group milk target; 0 derives it from the VEM requirement
    weight_kg : float
        Average live weight
    substitution_rate : float, optional
        Roughage displaced per kg concentrate DS, defaults to the mid rate
    constants : CvbConstants
        Coefficient set

    Returns:
    --------
    GapAnalysisResult
    """
    if density is None:
        return _empty_gap_result(requirements, concentrate, constants)

    if base_intake_kg_ds is None:
        base_intake_kg_ds = constants.default_roughage_intake_kg_ds
    base_intake = require_non_negative(base_intake_kg_ds, "base_intake_kg_ds")
    target_milk_kg = require_non_negative(target_milk_kg, "target_milk_kg")
    rate = constants.substitution_rate_mid if substitution_rate is None else substitution_rate

    # Base mix before substitution
    base_vem = density.vem_per_kg_ds * base_intake
    base_dve = density.dve_per_kg_ds * base_intake
    base_oeb = density.oeb_per_kg_ds * base_intake
    base_sw = density.sw_per_kg_ds * base_intake

    maintenance_vem = _gap_maintenance_vem(weight_kg, constants)
    base_milk = max(0.0, base_vem - maintenance_vem) / constants.gap_vem_per_kg_milk
    if target_milk_kg > 0:
        target_milk = target_milk_kg
    else:
        target_milk = (requirements.vem_per_cow - maintenance_vem) / constants.gap_vem_per_kg_milk

    gap_vem = max(0.0, requirements.vem_per_cow - base_vem)
    gap_dve = max(0.0, requirements.dve_per_cow - base_dve)
    gap_oeb = max(0.0, requirements.oeb_per_cow - base_oeb)

    # Concentrate for the limiting nutrient
    limiting = limiting_nutrient(gap_vem, gap_dve, concentrate)
    if limiting == "VEM":
        concentrate_kg_ds = gap_vem / concentrate.vem
    elif limiting == "DVE":
        concentrate_kg_ds = gap_dve / concentrate.dve
    else:
        concentrate_kg_ds = 0.0
    concentrate_kg_ds = round_half_up(concentrate_kg_ds, 1)

    # Substitution
    displacement = roughage_displacement(concentrate_kg_ds, rate)
    adjusted_intake = max(0.0, base_intake - displacement)
    adjusted_vem = density.vem_per_kg_ds * adjusted_intake
    adjusted_dve = density.dve_per_kg_ds * adjusted_intake
    adjusted_sw = density.sw_per_kg_ds * adjusted_intake

    # After substitution
    final_intake = adjusted_intake + concentrate_kg_ds
    final_sw = adjusted_sw + concentrate_kg_ds * concentrate.sw
    final_sw_per_kg_ds = safe_divide(final_sw, final_intake)
    status = sw_safety_status(final_sw_per_kg_ds, constants)
    warning, suggestion = _acidosis_advice(status, final_sw_per_kg_ds, constants)

    return GapAnalysisResult(
        base_intake_kg_ds=base_intake,
        base_vem=base_vem,
        base_dve=base_dve,
        base_oeb=base_oeb,
        base_sw=base_sw,
        base_milk_support_kg=base_milk,
        target_milk_kg=target_milk,
        gap_milk_kg=max(0.0, target_milk - base_milk),
        gap_vem=gap_vem,
        gap_dve=gap_dve,
        gap_oeb=gap_oeb,
        concentrate_kg_ds=concentrate_kg_ds,
        concentrate_vem=concentrate_kg_ds * concentrate.vem,
        concentrate_dve=concentrate_kg_ds * concentrate.dve,
        concentrate_sw=concentrate_kg_ds * concentrate.sw,
        roughage_displacement_kg_ds=displacement,
        adjusted_roughage_intake_kg_ds=adjusted_intake,
        adjusted_roughage_vem=adjusted_vem,
        adjusted_roughage_dve=adjusted_dve,
        adjusted_roughage_sw=adjusted_sw,
        final_intake_kg_ds=final_intake,
        final_vem=adjusted_vem + concentrate_kg_ds * concentrate.vem,
        final_dve=adjusted_dve + concentrate_kg_ds * concentrate.dve,
        final_sw=final_sw,
        final_sw_per_kg_ds=final_sw_per_kg_ds,
        is_sw_safe=final_sw_per_kg_ds >= constants.sw_minimum,
        sw_status=status,
        sw_deficit=sw_deficit(final_sw_per_kg_ds, constants),
        is_deficit=gap_vem > 0 or gap_dve > 0,
        limiting_nutrient=limiting,
        acidosis_risk=status == "danger",
        acidosis_warning=warning,
        adjustment_suggestion=suggestion,
    )


# ===================================================================
# FOLLOW-UP CALCULATIONS
# ===================================================================

def gap_to_milk_equivalent(gap_vem, constants=CVB_2025):
    """Milk (kg, 0.1 precision) a VEM gap stands for."""
    return round_half_up(gap_vem / constants.gap_vem_per_kg_milk, 1)


def calculate_straw_needed(deficit, total_intake_kg_ds, straw_sw_per_kg_ds=None, constants=CVB_2025):
    """
    Straw (kg DS, 0.1 precision) that brings SW per kg DS back to the safe
    level, given the deficit below that level.

    Straw adds intake as well as SW, so
    straw = deficit x intake / (straw SW - safe SW).
    """
    if straw_sw_per_kg_ds is None:
        straw_sw_per_kg_ds = constants.straw_sw_per_kg_ds
    total_intake_kg_ds = require_non_negative(total_intake_kg_ds, "total_intake_kg_ds")
    straw_sw_per_kg_ds = require_positive(straw_sw_per_kg_ds, "straw_sw_per_kg_ds")
    if deficit <= 0:
        return 0.0
    if straw_sw_per_kg_ds <= constants.sw_safe:
        raise InputValidationError("straw_sw_per_kg_ds", f"must exceed the safe level of {constants.sw_safe}")
    straw = deficit * total_intake_kg_ds / (straw_sw_per_kg_ds - constants.sw_safe)
    return round_half_up(straw, 1)


def calculate_concentrate_cost(concentrate_kg_ds, cow_count, price_per_ton_ds=DEFAULT_CONCENTRATE.price_per_ton_ds):
    """Daily, 30-day and 365-day concentrate cost of a group."""
    concentrate_kg_ds = require_non_negative(concentrate_kg_ds, "concentrate_kg_ds")
    cow_count = require_non_negative(cow_count, "cow_count")
    price_per_ton_ds = require_non_negative(price_per_ton_ds, "price_per_ton_ds")
    per_cow = concentrate_kg_ds * price_per_ton_ds / 1000
    total = per_cow * cow_count
    return ConcentrateCost(
        daily_cost_per_cow=per_cow,
        daily_cost_total=total,
        monthly_cost_total=total * 30,
        annual_cost_total=total * 365,
    )


def format_gap_analysis(gap):
    """
    Display lines for a gap analysis.

    Returns:
        dict: summary, recommendation, warning, substitution_note, sw_note
    """
    sw = format_number(gap.final_sw_per_kg_ds)
    if not gap.is_deficit:
        return {
            "summary": "Base ration meets the requirement",
            "recommendation": "No concentrate needed",
            "warning": None,
            "substitution_note": None,
            "sw_note": f"SW {sw} (safe)" if gap.sw_status == "safe" else f"SW {sw} (watch structure)",
        }

    summary = f"Shortfall: {format_number(gap.gap_vem, 0)} VEM, {format_number(gap.gap_dve, 0)} g DVE"
    if gap.gap_milk_kg > 0:
        summary += f" (about {format_number(gap.gap_milk_kg, 1)} kg milk)"

    substitution_note = None
    if gap.roughage_displacement_kg_ds > 0:
        substitution_note = (f"Substitution: {format_number(gap.roughage_displacement_kg_ds, 1)} kg DS "
                             "roughage displaced")

    if gap.sw_status == "danger":
        sw_note = f"SW {sw} below the minimum: acidosis risk"
    elif gap.sw_status == "warning":
        sw_note = f"SW {sw} below the safe level: watch structure"
    else:
        sw_note = f"SW {sw} safe"

    return {
        "summary": summary,
        "recommendation": f"Feed {format_number(gap.concentrate_kg_ds, 1)} kg DS concentrate per cow",
        "warning": gap.acidosis_warning if gap.acidosis_risk else None,
        "substitution_note": substitution_note,
        "sw_note": sw_note,
    }
