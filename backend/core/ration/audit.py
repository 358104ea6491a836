"""
Audit trail builder.

Every number of a ration calculation is wrapped in a CalculationStep with
its formula, named inputs, substituted calculation text, rounded result,
unit and source citation. Steps are grouped per requirement component,
per feed, per total and per balance, and can be flattened into a
plain-text report.

Step results are rounded for display only. Every step is built from the
unrounded values of the CalculationResult, so totals never accumulate
rounding error from the steps they summarise.
"""

from dataclasses import dataclass

from app.models import AuditableCalculationResult, BalanceAudit, CalculationStep, FeedAudit

from .config import CVB_2025, BALANCE_PARAMETERS, BALANCE_ORDER, unconfirmed_discrepancies
from .metabolic import metabolic_weight
from .utilities import round_half_up, format_number as fmt

SOURCES = {
    "fpcm": "CVB 2025, Formula 2.1",
    "metabolic_weight": "CVB 2025, Formula 3.1",
    "vem_maintenance": "CVB 2025, Table 3.1",
    "vem_production": "CVB 2025, Table 3.2",
    "vem_growth": "CVB 2025, Table 3.3",
    "vem_pregnancy": "CVB 2025, Table 3.4",
    "vem_grazing": "CVB 2025, Section 3.4",
    "dve_maintenance": "CVB 2025, Table 4.1",
    "dve_production": "CVB 2025, Table 4.2",
    "dve_growth": "CVB 2025, Table 4.3",
    "dve_pregnancy": "CVB 2025, Table 4.4",
    "sum": "CVB 2025, Sum",
    "profile": "Animal profile",
    "voc_age": "CVB 2007, Formula 5.1",
    "voc_maturity": "CVB 2007, Formula 5.2",
    "voc_lactation": "CVB 2007, Formula 5.3",
    "voc_pregnancy": "CVB 2007, Formula 5.4",
    "voc_total": "CVB 2007, Formula 5.5",
    "voc_kg_ds": "CVB 2007, Conversion",
    "feed_table": "CVB Feed Table 2025",
    "sw": "CVB 2022, Structure value",
    "vw": "CVB 2007, Filling value",
    "grazing_supply": "CVB 2025, Grazing surcharge",
    "balance": "Calculation",
}


@dataclass
class AuditedValue:
    value: float                  # unrounded, used by dependent steps
    step: CalculationStep


def create_step(name, formula, inputs, calculation, result, unit, source, decimals=2):
    return CalculationStep(
        name=name,
        formula=formula,
        inputs=inputs,
        calculation=calculation,
        result=round_half_up(result, decimals),
        unit=unit,
        source=source,
    )


def _c(value):
    """Coefficient as shown in formulas."""
    return fmt(value, 6)


def _audited(value, *args, **kwargs):
    return AuditedValue(value, create_step(*args, result=value, **kwargs))


def _sum_step(name, parts, unit, source=SOURCES["sum"], decimals=2):
    """Sum of audited parts; the total uses the unrounded part values."""
    total = sum(p.value for p in parts.values())
    labels = " + ".join(parts)
    shown = " + ".join(fmt(p.value, decimals) for p in parts.values()) or "0"
    return _audited(
        total, name, f"{name} = {labels}" if labels else f"{name} = 0",
        {label: round_half_up(p.value, decimals) for label, p in parts.items()},
        f"{shown} = {fmt(total, decimals)}", unit=unit, source=source, decimals=decimals,
    )


# ===================================================================
# REQUIREMENT STEPS
# ===================================================================

def audit_fpcm(milk, fpcm_value, constants=CVB_2025):
    return _audited(
        fpcm_value,
        "FPCM (fat and protein corrected milk)",
        f"FPCM = ({_c(constants.fpcm_constant)} + {_c(constants.fpcm_fat_coef)} × fat% + "
        f"{_c(constants.fpcm_protein_coef)} × protein%) × milk",
        {"Milk (kg/day)": milk.milk_kg, "Fat %": milk.fat_percent, "Protein %": milk.protein_percent},
        f"({_c(constants.fpcm_constant)} + {_c(constants.fpcm_fat_coef)} × {fmt(milk.fat_percent)} + "
        f"{_c(constants.fpcm_protein_coef)} × {fmt(milk.protein_percent)}) × {fmt(milk.milk_kg)} = {fmt(fpcm_value)}",
        unit="kg FPCM/day", source=SOURCES["fpcm"],
    )


def audit_metabolic_weight(weight_kg, constants=CVB_2025):
    mw = metabolic_weight(weight_kg, constants)
    return _audited(
        mw, "Metabolic weight (MW)", f"MW = LW^{_c(constants.metabolic_exponent)}",
        {"Live weight (kg)": weight_kg},
        f"{fmt(weight_kg)}^{_c(constants.metabolic_exponent)} = {fmt(mw)}",
        unit="kg MW", source=SOURCES["metabolic_weight"],
    )


def audit_vem_maintenance(value, mw, is_lactating, constants=CVB_2025):
    coefficient = constants.vem_maintenance_lactating if is_lactating else constants.vem_maintenance_dry
    state = "lactating" if is_lactating else "dry"
    return _audited(
        value, "VEM maintenance", f"VEM_maintenance = {_c(coefficient)} × MW ({state})",
        {"MW (kg)": round_half_up(mw.value), "Coefficient": coefficient},
        f"{_c(coefficient)} × {fmt(mw.value)} = {fmt(value)}",
        unit="VEM", source=SOURCES["vem_maintenance"],
    )


def audit_vem_production(value, fpcm_value, constants=CVB_2025):
    return _audited(
        value, "VEM production", f"VEM_production = {_c(constants.vem_per_kg_fpcm)} × FPCM",
        {"FPCM (kg/day)": round_half_up(fpcm_value)},
        f"{_c(constants.vem_per_kg_fpcm)} × {fmt(fpcm_value)} = {fmt(value)}",
        unit="VEM", source=SOURCES["vem_production"],
    )


def audit_vem_pregnancy(value, days_pregnant, constants=CVB_2025):
    start = constants.pregnancy_start_day
    if constants.pregnancy_curve == "tiered":
        tiers = " / ".join(f"{fmt(v)} > day {d}" for d, v in constants.vem_pregnancy_tiers)
        formula = f"VEM_pregnancy = {tiers}"
    else:
        formula = (f"VEM_pregnancy = ((days - {start}) / {_c(constants.vem_pregnancy_scale_days)})² × "
                   f"{_c(constants.vem_pregnancy_scale_vem)} (from day {start})")
    if days_pregnant < start:
        calculation = f"Not pregnant or < {start} days = 0"
    elif constants.pregnancy_curve == "tiered":
        calculation = f"Day {fmt(days_pregnant)}: +{fmt(value)} VEM"
    else:
        calculation = (f"(({fmt(days_pregnant)} - {start}) / {_c(constants.vem_pregnancy_scale_days)})² × "
                       f"{_c(constants.vem_pregnancy_scale_vem)} = {fmt(value)}")
    return _audited(
        value, "VEM pregnancy", formula, {"Days pregnant": days_pregnant}, calculation,
        unit="VEM", source=SOURCES["vem_pregnancy"],
    )


def _growth_text(value, parity, days_in_milk, constants, unit):
    if value == 0:
        return f"No growth surcharge (mature cow or > {constants.growth_max_days_in_milk} DIM)"
    lactation = "first lactation" if parity == 1 else "second lactation"
    return f"{lactation}, DIM ≤ {constants.growth_max_days_in_milk}: +{fmt(value)} {unit}"


def audit_vem_growth(value, parity, days_in_milk, constants=CVB_2025):
    return _audited(
        value, "VEM growth",
        f"VEM_growth = {_c(constants.vem_growth_parity1)} (parity 1) or {_c(constants.vem_growth_parity2)} "
        f"(parity 2) if DIM ≤ {constants.growth_max_days_in_milk}",
        {"Parity": parity, "Days in milk": days_in_milk},
        _growth_text(value, parity, days_in_milk, constants, "VEM"),
        unit="VEM", source=SOURCES["vem_growth"],
    )


def audit_vem_grazing(value, is_grazing, maintenance, production, constants=CVB_2025, rule=None):
    if (rule or constants.grazing_rule) == "percentage":
        pct = fmt(constants.vem_grazing_percent * 100)
        formula = f"VEM_grazing = {pct}% × (VEM_maintenance + VEM_production)"
        inputs = {"VEM maintenance": round_half_up(maintenance), "VEM production": round_half_up(production),
                  "Grazing": "yes" if is_grazing else "no"}
        calculation = (f"{pct}% × ({fmt(maintenance)} + {fmt(production)}) = {fmt(value)}"
                       if is_grazing else "No grazing = 0")
    else:
        formula = (f"VEM_grazing = {_c(constants.vem_grazing_activity)} + "
                   f"{_c(constants.vem_grazing_extra)} when grazing")
        inputs = {"Grazing": "yes" if is_grazing else "no"}
        calculation = (f"{_c(constants.vem_grazing_activity)} + {_c(constants.vem_grazing_extra)} = {fmt(value)}"
                       if is_grazing else "No grazing = 0")
    return _audited(value, "VEM grazing", formula, inputs, calculation,
                    unit="VEM", source=SOURCES["vem_grazing"])


def audit_dve_maintenance(value, weight_kg, constants=CVB_2025):
    return _audited(
        value, "DVE maintenance",
        f"DVE_maintenance = {_c(constants.dve_maintenance_base)} + {_c(constants.dve_maintenance_per_kg)} × LW",
        {"Live weight (kg)": weight_kg},
        f"{_c(constants.dve_maintenance_base)} + {_c(constants.dve_maintenance_per_kg)} × {fmt(weight_kg)} = {fmt(value)}",
        unit="g", source=SOURCES["dve_maintenance"],
    )


def audit_dve_production(value, protein_yield_grams, milk, constants=CVB_2025):
    inputs = {"Protein yield (g/day)": round_half_up(protein_yield_grams)}
    if milk is not None:
        inputs = {"Milk (kg/day)": milk.milk_kg, "Protein %": milk.protein_percent, **inputs}
    lin, quad = _c(constants.dve_production_linear), _c(constants.dve_production_quadratic)
    return _audited(
        value, "DVE production",
        f"DVE_production = {lin} × PY + {quad} × PY², PY = milk × protein% × 10",
        inputs,
        f"{lin} × {fmt(protein_yield_grams)} + {quad} × {fmt(protein_yield_grams)}² = {fmt(value)}",
        unit="g", source=SOURCES["dve_production"],
    )


def audit_dve_pregnancy(value, days_pregnant, constants=CVB_2025):
    start = constants.pregnancy_start_day
    calculation = (f"≥ {start} days: +{fmt(value)} g" if days_pregnant >= start
                   else f"Not pregnant or < {start} days = 0")
    return _audited(
        value, "DVE pregnancy",
        f"DVE_pregnancy = {_c(constants.dve_pregnancy_surcharge)} g from day {start}",
        {"Days pregnant": days_pregnant}, calculation,
        unit="g", source=SOURCES["dve_pregnancy"],
    )


def audit_dve_growth(value, parity, days_in_milk, constants=CVB_2025):
    return _audited(
        value, "DVE growth",
        f"DVE_growth = {_c(constants.dve_growth_parity1)} g (parity 1) or {_c(constants.dve_growth_parity2)} g "
        f"(parity 2) if DIM ≤ {constants.growth_max_days_in_milk}",
        {"Parity": parity, "Days in milk": days_in_milk},
        _growth_text(value, parity, days_in_milk, constants, "g"),
        unit="g", source=SOURCES["dve_growth"],
    )


def audit_requirements(requirement, profile, state, milk=None, constants=CVB_2025):
    """
    Steps for the VEM and DVE requirement.

    Returns:
        dict: {"vem": {component: step, ..., "total": step},
               "dve": {...}, "basis": {"metabolic_weight"/"fpcm": step}}
    """
    vem_c, dve_c = requirement.vem_components, requirement.dve_components
    basis = {}

    if requirement.strategy == "profile_default":
        vem_parts = {
            "profile_target": _audited(
                vem_c["profile_target"], "VEM profile target", "VEM = profile target",
                {"Profile": profile.name}, f"{fmt(vem_c['profile_target'])} VEM",
                unit="VEM", source=SOURCES["profile"]),
            "grazing": audit_vem_grazing(vem_c["grazing"], state.is_grazing, 0.0, 0.0, constants, rule="flat"),
        }
        dve_parts = {
            "profile_target": _audited(
                dve_c["profile_target"], "DVE profile target", "DVE = profile target",
                {"Profile": profile.name}, f"{fmt(dve_c['profile_target'])} g",
                unit="g", source=SOURCES["profile"]),
        }
    else:
        mw = audit_metabolic_weight(profile.weight_kg, constants)
        basis["metabolic_weight"] = mw.step
        fpcm_value = requirement.fpcm or 0.0
        if milk is not None and state.is_lactating:
            basis["fpcm"] = audit_fpcm(milk, fpcm_value, constants).step
        vem_parts = {
            "maintenance": audit_vem_maintenance(vem_c["maintenance"], mw, state.is_lactating, constants),
            "production": audit_vem_production(vem_c["production"], fpcm_value, constants),
            "pregnancy": audit_vem_pregnancy(vem_c["pregnancy"], state.days_pregnant, constants),
            "growth": audit_vem_growth(vem_c["growth"], state.parity, state.days_in_milk, constants),
            "grazing": audit_vem_grazing(vem_c["grazing"], state.is_grazing,
                                         vem_c["maintenance"], vem_c["production"], constants),
        }
        dve_parts = {
            "maintenance": audit_dve_maintenance(dve_c["maintenance"], profile.weight_kg, constants),
            "production": audit_dve_production(dve_c["production"], requirement.protein_yield_grams or 0.0,
                                               milk if state.is_lactating else None, constants),
            "pregnancy": audit_dve_pregnancy(dve_c["pregnancy"], state.days_pregnant, constants),
            "growth": audit_dve_growth(dve_c["growth"], state.parity, state.days_in_milk, constants),
        }

    vem = {k: p.step for k, p in vem_parts.items()}
    vem["total"] = _sum_step("VEM requirement", vem_parts, "VEM").step
    dve = {k: p.step for k, p in dve_parts.items()}
    dve["total"] = _sum_step("DVE requirement", dve_parts, "g").step
    return {"vem": vem, "dve": dve, "basis": basis}


def audit_voc(voc_result, state, constants=CVB_2025):
    v = voc_result
    return {
        "lactation_age": create_step(
            "Lactation age (a)", "a = (parity - 1) + (DIM / 365)",
            {"Parity": state.parity, "Days in milk": state.days_in_milk},
            f"({state.parity} - 1) + ({fmt(state.days_in_milk)} / 365) = {fmt(v.lactation_age)}",
            v.lactation_age, "years", SOURCES["voc_age"]),
        "maturity": create_step(
            "Maturity component", "α₀ + α₁ × (1 - e^(-ρα × a))",
            {"α₀": constants.voc_alpha_0, "α₁": constants.voc_alpha_1,
             "ρα": constants.voc_rho_alpha, "a": round_half_up(v.lactation_age)},
            f"{_c(constants.voc_alpha_0)} + {_c(constants.voc_alpha_1)} × (1 - e^(-{_c(constants.voc_rho_alpha)} × "
            f"{fmt(v.lactation_age)})) = {fmt(v.maturity)}",
            v.maturity, "VW", SOURCES["voc_maturity"]),
        "lactation_factor": create_step(
            "Lactation component", "1 - β × e^(-ρβ × DIM)",
            {"β": constants.voc_beta, "ρβ": constants.voc_rho_beta, "DIM": state.days_in_milk},
            f"1 - {_c(constants.voc_beta)} × e^(-{_c(constants.voc_rho_beta)} × {fmt(state.days_in_milk)}) = "
            f"{fmt(v.lactation_factor, 4)}",
            v.lactation_factor, "factor", SOURCES["voc_lactation"], decimals=4),
        "pregnancy_factor": create_step(
            "Pregnancy component", "1 - δ₂₂₀ × (days pregnant / 220)²",
            {"δ₂₂₀": constants.voc_delta_220, "Days pregnant": state.days_pregnant},
            f"1 - {_c(constants.voc_delta_220)} × ({fmt(state.days_pregnant)} / 220)² = {fmt(v.pregnancy_factor, 4)}",
            v.pregnancy_factor, "factor", SOURCES["voc_pregnancy"], decimals=4),
        "voc_vw": create_step(
            "VOC total", "VOC = maturity × lactation × pregnancy",
            {"Maturity": round_half_up(v.maturity), "Lactation": round_half_up(v.lactation_factor, 4),
             "Pregnancy": round_half_up(v.pregnancy_factor, 4)},
            f"{fmt(v.maturity)} × {fmt(v.lactation_factor, 4)} × {fmt(v.pregnancy_factor, 4)} = {fmt(v.voc_vw)}",
            v.voc_vw, "VW", SOURCES["voc_total"]),
        "voc_kg_ds": create_step(
            "VOC in kg DS", f"VOC_kgDS = VOC × {_c(constants.voc_to_kg_ds)}",
            {"VOC (VW)": round_half_up(v.voc_vw)},
            f"{fmt(v.voc_vw)} × {_c(constants.voc_to_kg_ds)} = {fmt(v.voc_kg_ds, 1)}",
            v.voc_kg_ds, "kg DS", SOURCES["voc_kg_ds"], decimals=1),
    }


# ===================================================================
# SUPPLY STEPS
# ===================================================================

_FEED_NUTRIENTS = [
    # key, supply field, density field, feed label, unit
    ("vem", "vem", "vem_per_kg_ds", "VEM", "VEM"),
    ("dve", "dve_grams", "dve_per_kg_ds", "DVE", "g"),
    ("oeb", "oeb_grams", "oeb_per_kg_ds", "OEB", "g"),
    ("ca", "ca_grams", "ca_per_kg_ds", "Ca", "g"),
    ("p", "p_grams", "p_per_kg_ds", "P", "g"),
]


def audit_feed(contribution):
    """Steps for one feed. Nutrients are always kg DS × density per kg DS."""
    c = contribution
    dm = fmt(c.dry_matter_kg)
    steps = {}
    for key, field, density_field, label, unit in _FEED_NUTRIENTS:
        value = getattr(c.supply, field)
        density = getattr(c, density_field)
        steps[key] = create_step(
            f"{label} from {c.display_name}", f"{label} = kg DS × {label}/kg DS",
            {"kg DS": round_half_up(c.dry_matter_kg), f"{label}/kg DS": round_half_up(density, 4)},
            f"{dm} × {fmt(density, 4)} = {fmt(value)}", value, unit, SOURCES["feed_table"])

    for key, total, density, label, source in (("sw", c.sw_total, c.sw_per_kg_ds, "SW", SOURCES["sw"]),
                                               ("vw", c.vw_total, c.vw_per_kg_ds, "VW", SOURCES["vw"])):
        steps[key] = create_step(
            f"{label} from {c.display_name}", f"{label} = kg DS × {label}/kg DS",
            {"kg DS": round_half_up(c.dry_matter_kg), f"{label}/kg DS": round_half_up(density, 4)},
            f"{dm} × {fmt(density, 4)} = {fmt(total)}", total, label, source)

    return FeedAudit(
        feed_name=c.feed_name,
        display_name=c.display_name,
        basis=c.basis,
        amount_kg_ds=round_half_up(c.dry_matter_kg),
        amount_kg_product=round_half_up(c.amount_kg_product, 1),
        ds_percent=c.ds_percent,
        contributions=steps,
    )


def audit_supply_totals(contributions, total_supply, structure, is_grazing, constants=CVB_2025):
    """Steps for the ration totals, each the sum of the unrounded feed values."""
    labels = []
    for n, c in enumerate(contributions, start=1):
        labels.append(c.display_name if c.display_name not in labels else f"{c.display_name} #{n}")

    def parts(getter):
        return {label: AuditedValue(getter(c), None) for label, c in zip(labels, contributions)}

    steps = {
        "dry_matter_kg": _sum_step("Total dry matter", parts(lambda c: c.dry_matter_kg), "kg DS").step,
        "vem_feeds": _sum_step("VEM from feeds", parts(lambda c: c.supply.vem), "VEM").step,
        "dve": _sum_step("Total DVE", parts(lambda c: c.supply.dve_grams), "g").step,
        "oeb": _sum_step("Total OEB", parts(lambda c: c.supply.oeb_grams), "g").step,
        "ca": _sum_step("Total Ca", parts(lambda c: c.supply.ca_grams), "g").step,
        "p": _sum_step("Total P", parts(lambda c: c.supply.p_grams), "g").step,
        "sw": _sum_step("Total SW", parts(lambda c: c.sw_total), "SW").step,
        "vw": _sum_step("Total VW", parts(lambda c: c.vw_total), "VW").step,
    }

    grazing = constants.grazing_surcharge_vem if is_grazing else 0.0
    steps["grazing_surcharge"] = create_step(
        "Grazing surcharge (supply)", "Added once to the ration total when grazing",
        {"Grazing": "yes" if is_grazing else "no"},
        f"+{fmt(grazing)} VEM" if is_grazing else "No grazing = 0",
        grazing, "VEM", SOURCES["grazing_supply"])

    vem_from_feeds = total_supply.vem - grazing
    steps["vem"] = create_step(
        "Total VEM", "VEM = VEM from feeds + grazing surcharge",
        {"VEM from feeds": round_half_up(vem_from_feeds), "Grazing surcharge": grazing},
        f"{fmt(vem_from_feeds)} + {fmt(grazing)} = {fmt(total_supply.vem)}",
        total_supply.vem, "VEM", SOURCES["sum"])

    steps["sw_per_kg_ds"] = create_step(
        "SW per kg DS", "SW/kg DS = total SW / total DS (0 if no DS)",
        {"Total SW": round_half_up(structure.total_sw), "Total DS": round_half_up(structure.total_ds_kg)},
        f"{fmt(structure.total_sw)} / {fmt(structure.total_ds_kg)} = {fmt(structure.sw_per_kg_ds)}",
        structure.sw_per_kg_ds, "SW/kg DS", SOURCES["sw"])
    return steps


def audit_balance(balance):
    key = next(k for k in BALANCE_ORDER if BALANCE_PARAMETERS[k]["display_name"] == balance.parameter)
    decimals = BALANCE_PARAMETERS[key]["decimals"]
    step = create_step(
        f"{balance.parameter} balance", "Balance = supply - requirement",
        {"Supply": round_half_up(balance.supply, decimals), "Requirement": round_half_up(balance.requirement, decimals)},
        f"{fmt(balance.supply, decimals)} - {fmt(balance.requirement, decimals)} = {fmt(balance.balance, decimals)}",
        balance.balance, balance.unit, SOURCES["balance"], decimals=decimals)
    return BalanceAudit(balance=balance, calculation=step)


# ===================================================================
# ASSEMBLY
# ===================================================================

def _summary(result):
    vem = next(b for b in result.balances if b.parameter == BALANCE_PARAMETERS["vem"]["display_name"])
    dve = next(b for b in result.balances if b.parameter == BALANCE_PARAMETERS["dve"]["display_name"])
    return {
        "total_vem_required": round_half_up(vem.requirement, 0),
        "total_vem_supplied": round_half_up(vem.supply, 0),
        "vem_balance": round_half_up(vem.balance, 0),
        "vem_coverage": round_half_up(vem.percent_of_requirement, 1),
        "total_dve_required": round_half_up(dve.requirement, 0),
        "total_dve_supplied": round_half_up(dve.supply, 0),
        "dve_balance": round_half_up(dve.balance, 0),
        "dve_coverage": round_half_up(dve.percent_of_requirement, 1),
        "voc_capacity_kg_ds": round_half_up(result.voc_result.voc_kg_ds, 1),
        "voc_saturation": round_half_up(result.voc_result.saturation_percent, 1),
        "voc_status": result.voc_result.status,
        "sw_per_kg_ds": round_half_up(result.structure_value.sw_per_kg_ds),
        "sw_status": result.structure_value.status,
        "is_target_met": result.is_target_met,
        "performance_prediction": result.performance_prediction,
    }


def cvb_build_audit_trail(result, profile, state, feed_inputs, milk=None, constants=CVB_2025, generated_at=None):
    """
    Wrap a CalculationResult into an auditable step tree.

    Parameters:
    -----------
    result : CalculationResult
        Output of cvb_calculate_ration for the same inputs
    profile, state, feed_inputs, milk :
        The inputs the result was computed from
    constants : CvbConstants
        Coefficient set the result was computed with
    generated_at : str, optional
        Timestamp to print in the report; omitted when None so that the
        report is reproducible

    Returns:
    --------
    AuditableCalculationResult
    """
    inputs = {
        "profile": profile.name,
        "weight_kg": profile.weight_kg,
        "parity": state.parity,
        "days_in_milk": state.days_in_milk,
        "days_pregnant": state.days_pregnant,
        "is_lactating": state.is_lactating,
        "is_grazing": state.is_grazing,
        "feed_count": len(feed_inputs),
        "milk": None,
    }
    if milk is not None:
        inputs["milk"] = {
            "milk_kg": milk.milk_kg,
            "fat_percent": milk.fat_percent,
            "protein_percent": milk.protein_percent,
            "ureum": milk.ureum,
            "fpcm": round_half_up(result.requirement.fpcm, 1) if result.requirement.fpcm is not None else None,
        }

    requirements = audit_requirements(result.requirement, profile, state, milk, constants)
    requirements["voc"] = audit_voc(result.voc_result, state, constants)

    return AuditableCalculationResult(
        generated_at=generated_at,
        constants_version=result.constants_version,
        strategy=result.requirement.strategy,
        inputs=inputs,
        requirements=requirements,
        supply_feeds=[audit_feed(c) for c in result.feed_contributions],
        supply_totals=audit_supply_totals(result.feed_contributions, result.total_supply,
                                          result.structure_value, state.is_grazing, constants),
        balances=[audit_balance(b) for b in result.balances],
        summary=_summary(result),
        warnings=list(result.warnings),
        open_discrepancies=unconfirmed_discrepancies(),
    )


# ===================================================================
# PLAIN-TEXT REPORT
# ===================================================================

def _step_lines(index, step, with_formula=True):
    lines = [f"{index}. {step.name}"]
    if with_formula:
        lines.append(f"   Formula: {step.formula}")
    lines.append(f"   Calculation: {step.calculation}")
    lines.append(f"   Source: {step.source}")
    lines.append("")
    return lines


def _requirement_section(title, steps, unit):
    lines = [f"--- {title} (step by step) ---"]
    index = 1
    for key, step in steps.items():
        if key == "total":
            continue
        # Zero surcharges are omitted, base components always shown
        if step.result == 0 and key in ("pregnancy", "growth", "grazing"):
            continue
        lines.extend(_step_lines(index, step))
        index += 1
    lines.append(f"TOTAL {title}: {fmt(steps['total'].result)} {unit}")
    lines.append("")
    return lines


def generate_audit_report(audit):
    """
    Flatten an AuditableCalculationResult into a plain-text report.

    Sections: inputs, VEM derivation, DVE derivation, VOC derivation,
    per-feed contributions, totals, balances, summary.
    """
    rule = "=" * 80
    lines = [rule, "RATION CALCULATION - AUDIT REPORT", rule]
    lines.append(f"Standard: {audit.constants_version}")
    lines.append(f"Requirement strategy: {audit.strategy}")
    if audit.generated_at:
        lines.append(f"Generated: {audit.generated_at}")
    lines.append("")

    i = audit.inputs
    lines.append("--- INPUTS ---")
    lines.append(f"Animal profile: {i['profile']}")
    lines.append(f"Weight: {fmt(i['weight_kg'])} kg")
    lines.append(f"Parity: {i['parity']}")
    lines.append(f"Days in milk: {fmt(i['days_in_milk'])}")
    lines.append(f"Days pregnant: {fmt(i['days_pregnant'])}")
    lines.append(f"Lactating: {'yes' if i['is_lactating'] else 'no'}")
    lines.append(f"Grazing: {'yes' if i['is_grazing'] else 'no'}")
    if i.get("milk"):
        m = i["milk"]
        lines.append("")
        lines.append("Milk production:")
        lines.append(f"  Milk: {fmt(m['milk_kg'])} kg/day")
        lines.append(f"  Fat: {fmt(m['fat_percent'])}%")
        lines.append(f"  Protein: {fmt(m['protein_percent'])}%")
        if m.get("fpcm") is not None:
            lines.append(f"  FPCM: {fmt(m['fpcm'], 1)} kg/day")
        if m.get("ureum") is not None:
            lines.append(f"  Urea: {fmt(m['ureum'], 1)} mg/100 ml")
    lines.append("")

    basis = audit.requirements.get("basis", {})
    if basis:
        lines.append("--- BASIS ---")
        for step in basis.values():
            lines.append(f"{step.name}: {step.calculation}")
        lines.append("")

    lines.extend(_requirement_section("VEM REQUIREMENT", audit.requirements["vem"], "VEM"))
    lines.extend(_requirement_section("DVE REQUIREMENT", audit.requirements["dve"], "g"))

    lines.append("--- VOC CALCULATION ---")
    for step in audit.requirements["voc"].values():
        lines.append(f"{step.name}: {step.calculation}")
    lines.append("")

    lines.append("--- FEED CONTRIBUTIONS ---")
    if not audit.supply_feeds:
        lines.append("No feeds entered")
        lines.append("")
    for feed in audit.supply_feeds:
        lines.append(f"{feed.display_name}:")
        lines.append(f"  Amount: {fmt(feed.amount_kg_ds)} kg DS "
                     f"({fmt(feed.amount_kg_product, 1)} kg product, {fmt(feed.ds_percent, 1)}% DS, {feed.basis})")
        for key, step in feed.contributions.items():
            lines.append(f"  {key.upper()}: {step.calculation}")
        lines.append("")

    t = audit.supply_totals
    lines.append("--- TOTAL SUPPLY ---")
    lines.append(f"Dry matter: {fmt(t['dry_matter_kg'].result)} kg DS")
    lines.append(f"VEM: {fmt(t['vem'].result)} VEM ({t['vem'].calculation})")
    lines.append(f"DVE: {fmt(t['dve'].result)} g")
    lines.append(f"OEB: {fmt(t['oeb'].result)} g")
    lines.append(f"Ca: {fmt(t['ca'].result)} g")
    lines.append(f"P: {fmt(t['p'].result)} g")
    lines.append(f"SW per kg DS: {fmt(t['sw_per_kg_ds'].result)}")
    lines.append(f"VW: {fmt(t['vw'].result)}")
    lines.append("")

    lines.append("--- BALANCES ---")
    for b in audit.balances:
        pct = b.balance.percent_of_requirement
        pct_text = f" ({fmt(pct, 1)}%)" if pct is not None else ""
        lines.append(f"{b.balance.parameter}: {b.calculation.calculation} {b.balance.unit}{pct_text} "
                     f"[{b.balance.status}]")
    lines.append("")

    s = audit.summary
    lines.append("--- SUMMARY ---")
    lines.append(f"VEM: {fmt(s['total_vem_supplied'])} / {fmt(s['total_vem_required'])} = "
                 f"{fmt(s['vem_coverage'], 1)}% coverage")
    lines.append(f"DVE: {fmt(s['total_dve_supplied'])} / {fmt(s['total_dve_required'])} = "
                 f"{fmt(s['dve_coverage'], 1)}% coverage")
    lines.append(f"VOC: {fmt(s['voc_saturation'], 1)}% used of {fmt(s['voc_capacity_kg_ds'], 1)} kg DS capacity "
                 f"[{s['voc_status']}]")
    lines.append(f"Structure value: {fmt(s['sw_per_kg_ds'])} SW/kg DS [{s['sw_status']}]")
    lines.append(s["performance_prediction"])
    for w in audit.warnings:
        lines.append(f"WARNING {w['code']}: {w['summary']}")
    if audit.open_discrepancies:
        lines.append(f"Coefficients awaiting expert confirmation: {', '.join(audit.open_discrepancies)}")
    lines.append("")
    lines.append(rule)

    return "\n".join(lines)
