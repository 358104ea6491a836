"""
Animal requirements calculation module.

This module contains functions for calculating the daily energy (VEM) and
protein (DVE) requirement of dairy cattle according to CVB 2025:
- Independent requirement components (maintenance, production,
  pregnancy, growth, grazing)
- Two requirement strategies, selected explicitly by the caller:
  ProfileDefaultRequirement and DynamicRequirement
- Mineral (Ca / P) requirements
"""

import pandas as pd

from app.models import RequirementResult, MineralRequirement

from .config import CVB_2025
from .metabolic import metabolic_weight, fpcm, protein_yield
from .utilities import InputValidationError, require_non_negative, require_positive, require_range


# ===================================================================
# VEM COMPONENTS
# ===================================================================

def vem_maintenance(weight_kg, is_lactating, constants=CVB_2025):
    coefficient = constants.vem_maintenance_lactating if is_lactating else constants.vem_maintenance_dry
    return coefficient * metabolic_weight(weight_kg, constants)


def vem_production(fpcm_kg, constants=CVB_2025):
    return constants.vem_per_kg_fpcm * require_non_negative(fpcm_kg, "fpcm")


def vem_pregnancy(days_pregnant, constants=CVB_2025):
    """
    VEM surcharge for late gestation.

    Zero below the start day. Afterwards either the continuous curve
    ((d - 190) / 93)^2 x 2000 or the tiered 1000 / 2000 / 3000 steps,
    depending on constants.pregnancy_curve.
    """
    days_pregnant = require_range(days_pregnant, "days_pregnant", 0, constants.max_days_pregnant)
    if days_pregnant < constants.pregnancy_start_day:
        return 0.0

    if constants.pregnancy_curve == "tiered":
        for threshold, surcharge in constants.vem_pregnancy_tiers:
            if days_pregnant > threshold:
                return float(surcharge)
        return 0.0

    days_after_start = days_pregnant - constants.pregnancy_start_day
    return (days_after_start / constants.vem_pregnancy_scale_days) ** 2 * constants.vem_pregnancy_scale_vem


def vem_growth(parity, days_in_milk, constants=CVB_2025):
    """Growth surcharge for first and second lactation cows, early lactation only."""
    days_in_milk = require_non_negative(days_in_milk, "days_in_milk")
    if days_in_milk > constants.growth_max_days_in_milk:
        return 0.0
    if parity == 1:
        return constants.vem_growth_parity1
    if parity == 2:
        return constants.vem_growth_parity2
    return 0.0


def vem_grazing(is_grazing, maintenance=0.0, production=0.0, constants=CVB_2025):
    if not is_grazing:
        return 0.0
    if constants.grazing_rule == "percentage":
        return constants.vem_grazing_percent * (maintenance + production)
    return constants.grazing_surcharge_vem


# ===================================================================
# DVE COMPONENTS
# ===================================================================

def dve_maintenance(weight_kg, constants=CVB_2025):
    weight_kg = require_positive(weight_kg, "weight_kg")
    return constants.dve_maintenance_base + constants.dve_maintenance_per_kg * weight_kg


def dve_production(protein_yield_grams, constants=CVB_2025):
    py = require_non_negative(protein_yield_grams, "protein_yield_grams")
    return constants.dve_production_linear * py + constants.dve_production_quadratic * py ** 2


def dve_pregnancy(days_pregnant, constants=CVB_2025):
    days_pregnant = require_range(days_pregnant, "days_pregnant", 0, constants.max_days_pregnant)
    if days_pregnant < constants.pregnancy_start_day:
        return 0.0
    return constants.dve_pregnancy_surcharge


def dve_growth(parity, days_in_milk, constants=CVB_2025):
    days_in_milk = require_non_negative(days_in_milk, "days_in_milk")
    if days_in_milk > constants.growth_max_days_in_milk:
        return 0.0
    if parity == 1:
        return constants.dve_growth_parity1
    if parity == 2:
        return constants.dve_growth_parity2
    return 0.0


# ===================================================================
# MINERALS
# ===================================================================

def mineral_requirements(weight_kg, constants=CVB_2025):
    """Ca and P requirement in g/day, scaled linearly from the heifer reference weight."""
    weight_kg = require_positive(weight_kg, "weight_kg")
    scale = weight_kg / constants.mineral_reference_weight_kg
    return MineralRequirement(
        ca_grams=constants.ca_reference_grams * scale,
        p_grams=constants.p_reference_grams * scale,
    )


# ===================================================================
# REQUIREMENT STRATEGIES
# ===================================================================

class RequirementStrategy:
    """Base class: turns profile + lactation state (+ milk record) into a requirement."""

    name = "base"

    def calculate(self, profile, state, milk=None, constants=CVB_2025):
        raise NotImplementedError


class ProfileDefaultRequirement(RequirementStrategy):
    """Profile targets, plus the flat grazing surcharge when grazing."""

    name = "profile_default"

    def calculate(self, profile, state, milk=None, constants=CVB_2025):
        grazing = constants.grazing_surcharge_vem if state.is_grazing else 0.0
        vem_components = {
            "profile_target": float(profile.vem_target),
            "grazing": grazing,
        }
        dve_components = {"profile_target": float(profile.dve_target_grams)}
        return RequirementResult(
            strategy=self.name,
            vem_total=sum(vem_components.values()),
            dve_total=sum(dve_components.values()),
            vem_components=vem_components,
            dve_components=dve_components,
            constants_version=constants.version,
        )


class DynamicRequirement(RequirementStrategy):
    """
    Factorial requirement from body weight, milk record and lactation state.

    VEM = maintenance + production + pregnancy + growth + grazing
    DVE = maintenance + production + pregnancy + growth
    """

    name = "dynamic"

    def calculate(self, profile, state, milk=None, constants=CVB_2025):
        if state.is_lactating and milk is None:
            raise InputValidationError("milk", "a milk production record is required for a lactating animal")

        if milk is not None and state.is_lactating:
            fpcm_kg = fpcm(milk.milk_kg, milk.fat_percent, milk.protein_percent, constants)
            py = protein_yield(milk.milk_kg, milk.protein_percent)
        else:
            fpcm_kg = 0.0
            py = 0.0

        maintenance = vem_maintenance(profile.weight_kg, state.is_lactating, constants)
        production = vem_production(fpcm_kg, constants)
        vem_components = {
            "maintenance": maintenance,
            "production": production,
            "pregnancy": vem_pregnancy(state.days_pregnant, constants),
            "growth": vem_growth(state.parity, state.days_in_milk, constants),
            "grazing": vem_grazing(state.is_grazing, maintenance, production, constants),
        }
        dve_components = {
            "maintenance": dve_maintenance(profile.weight_kg, constants),
            "production": dve_production(py, constants),
            "pregnancy": dve_pregnancy(state.days_pregnant, constants),
            "growth": dve_growth(state.parity, state.days_in_milk, constants),
        }
        return RequirementResult(
            strategy=self.name,
            vem_total=sum(vem_components.values()),
            dve_total=sum(dve_components.values()),
            vem_components=vem_components,
            dve_components=dve_components,
            fpcm=fpcm_kg,
            protein_yield_grams=py,
            constants_version=constants.version,
        )


REQUIREMENT_STRATEGIES = {
    ProfileDefaultRequirement.name: ProfileDefaultRequirement,
    DynamicRequirement.name: DynamicRequirement,
}


def get_requirement_strategy(name):
    """Instantiate a requirement strategy by its registered name."""
    if name not in REQUIREMENT_STRATEGIES:
        raise InputValidationError("strategy", f"unknown requirement strategy {name!r}")
    return REQUIREMENT_STRATEGIES[name]()


def cvb_calculate_requirements(profile, state, strategy, milk=None, constants=CVB_2025):
    """
    Calculate the VEM / DVE requirement with an explicitly selected strategy.

    Parameters:
    -----------
    profile : AnimalProfile
        Reference animal class (weight and default targets)
    state : LactationState
        Parity, days in milk, days pregnant, lactating / grazing flags
    strategy : RequirementStrategy
        ProfileDefaultRequirement() or DynamicRequirement()
    milk : MilkProductionRecord, optional
        Required by the dynamic strategy for lactating animals
    constants : CvbConstants
        Coefficient set

    Returns:
    --------
    RequirementResult : Totals and unrounded per-component breakdown
    """
    if not isinstance(strategy, RequirementStrategy):
        raise InputValidationError("strategy", f"expected a RequirementStrategy, got {type(strategy).__name__}")
    require_positive(profile.weight_kg, "weight_kg")
    return strategy.calculate(profile, state, milk, constants)


def cvb_create_requirements_dataframe(requirement, minerals=None):
    """
    Create a DataFrame with the requirement breakdown.

    Parameters:
    -----------
    requirement : RequirementResult
        Output of cvb_calculate_requirements
    minerals : MineralRequirement, optional
        Output of mineral_requirements

    Returns:
    --------
    DataFrame : Columns Parameter, Component, Value, Unit
    """
    rows = []
    for component, value in requirement.vem_components.items():
        rows.append({"Parameter": "VEM", "Component": component, "Value": value, "Unit": "VEM"})
    rows.append({"Parameter": "VEM", "Component": "total", "Value": requirement.vem_total, "Unit": "VEM"})

    for component, value in requirement.dve_components.items():
        rows.append({"Parameter": "DVE", "Component": component, "Value": value, "Unit": "g/d"})
    rows.append({"Parameter": "DVE", "Component": "total", "Value": requirement.dve_total, "Unit": "g/d"})

    if minerals is not None:
        rows.append({"Parameter": "Ca", "Component": "total", "Value": minerals.ca_grams, "Unit": "g/d"})
        rows.append({"Parameter": "P", "Component": "total", "Value": minerals.p_grams, "Unit": "g/d"})

    return pd.DataFrame(rows, columns=["Parameter", "Component", "Value", "Unit"])
