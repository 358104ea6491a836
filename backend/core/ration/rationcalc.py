import time

from pydantic import ValidationError

from middleware.logging_config import (
    get_logger,
    log_calculation_start,
    log_calculation_step,
    log_calculation_complete,
    log_error,
)
from middleware.error_handlers import categorize_calculation_error, log_error_details

from app.models import CalculationResult

# ===================================================================
# IMPORT ALL MODULES
# ===================================================================

from .config import CVB_2025, unconfirmed_discrepancies

from .utilities import InputValidationError, _msg, format_number

from .animal_requirements import (
    cvb_calculate_requirements,
    mineral_requirements,
)

from .feed_processing import (
    calculate_feed_contributions,
    sum_contributions,
)

from .intake_capacity import evaluate_intake_capacity
from .structure import evaluate_structure
from .substitution import evaluate_substitution

from .balance import (
    calculate_nutrient_balances,
    is_target_met,
    performance_prediction,
    evaluate_ureum,
    find_balance,
)

from .audit import cvb_build_audit_trail, generate_audit_report

logger = get_logger(__name__)


def collect_infeasibility_warnings(voc_result, structure, substitution, constants=CVB_2025):
    """
    Physical infeasibility as data: one message per problem found.

    Codes: VOC_EXCEEDED, VOC_NEAR_LIMIT, STRUCTURE_MARGINAL,
    STRUCTURE_DEFICIENT, ROUGHAGE_OVERFEEDING, SUBSTITUTION_RATE_UNUSUAL.
    """
    warnings = []

    if voc_result.status == "exceeded":
        warnings.append(_msg(
            "error", "VOC_EXCEEDED", "intake_capacity",
            f"Ration exceeds intake capacity ({format_number(voc_result.saturation_percent, 0)}%)",
            detail=f"Total filling value {format_number(voc_result.total_vw)} VW against a capacity of "
                   f"{format_number(voc_result.voc_vw)} VW",
            hint="Replace part of the roughage with feeds of a lower filling value",
        ))
    elif voc_result.status == "warning":
        warnings.append(_msg(
            "warning", "VOC_NEAR_LIMIT", "intake_capacity",
            f"Ration is close to intake capacity ({format_number(voc_result.saturation_percent, 0)}%)",
            hint="Little room for extra feed",
        ))

    if structure.total_ds_kg > 0:
        if structure.status == "deficient":
            warnings.append(_msg(
                "error", "STRUCTURE_DEFICIENT", "structure",
                f"Structure value {format_number(structure.sw_per_kg_ds)} per kg DS: risk of rumen acidosis",
                detail=f"Minimum is {format_number(structure.requirement)} SW per kg DS",
                hint="Increase the roughage share or add structure-rich feed",
            ))
        elif structure.status == "warning":
            warnings.append(_msg(
                "warning", "STRUCTURE_MARGINAL", "structure",
                f"Structure value {format_number(structure.sw_per_kg_ds)} per kg DS is marginal",
                hint="Increase the roughage share",
            ))

    if substitution.is_overfeeding:
        warnings.append(_msg(
            "warning", "ROUGHAGE_OVERFEEDING", "substitution",
            "More roughage offered than the cow can take in next to the concentrate",
            detail=substitution.message,
            hint="Reduce roughage or concentrate",
        ))

    rate = substitution.substitution_rate
    if not constants.substitution_rate_low <= rate <= constants.substitution_rate_high:
        warnings.append(_msg(
            "info", "SUBSTITUTION_RATE_UNUSUAL", "substitution",
            f"Substitution rate {format_number(rate)} is outside the usual "
            f"{format_number(constants.substitution_rate_low)} - {format_number(constants.substitution_rate_high)} range",
            hint=f"The default rate is {format_number(constants.substitution_rate_mid)}",
        ))

    return warnings


def cvb_calculate_ration(profile, state, feed_inputs, strategy, milk=None, constants=None,
                         substitution_rate=None, calculation_id="unknown"):
    """
    Calculate requirement, supply, balances and feasibility for one ration.

    Parameters:
    -----------
    profile : AnimalProfile
        Reference animal class
    state : LactationState
        Parity, days in milk, days pregnant, lactating / grazing flags
    feed_inputs : list[FeedInput]
        Feeds and amounts per animal per day
    strategy : RequirementStrategy
        ProfileDefaultRequirement() or DynamicRequirement()
    milk : MilkProductionRecord, optional
        Milk recording data
    constants : CvbConstants, optional
        Coefficient set, defaults to CVB 2025
    substitution_rate : float, optional
        Roughage displaced per kg concentrate DS, defaults to the mid rate
    calculation_id : str
        Identifier used in log messages

    Returns:
    --------
    CalculationResult
    """
    constants = constants or CVB_2025
    rate = constants.substitution_rate_mid if substitution_rate is None else substitution_rate
    start = time.perf_counter()

    try:
        log_calculation_start(logger, profile.name, profile.weight_kg, len(feed_inputs),
                              getattr(strategy, "name", type(strategy).__name__))
        log_calculation_step(logger, "constants", f"{constants.version} | unconfirmed: {unconfirmed_discrepancies()}")

        # ===================================================================
        # 1. REQUIREMENTS
        # ===================================================================
        requirement = cvb_calculate_requirements(profile, state, strategy, milk, constants)
        minerals = mineral_requirements(profile.weight_kg, constants)
        log_calculation_step(logger, "requirement",
                             f"VEM {requirement.vem_total:.1f} | DVE {requirement.dve_total:.1f} g")

        # ===================================================================
        # 2. SUPPLY
        # ===================================================================
        contributions = calculate_feed_contributions(feed_inputs)
        total_supply = sum_contributions(contributions, state.is_grazing, constants)
        log_calculation_step(logger, "supply",
                             f"DS {total_supply.dry_matter_kg:.2f} kg | VEM {total_supply.vem:.1f} | "
                             f"DVE {total_supply.dve_grams:.1f} g")

        # ===================================================================
        # 3. BALANCES AND FEASIBILITY
        # ===================================================================
        balances = calculate_nutrient_balances(profile, requirement, minerals, total_supply, constants)
        target_met = is_target_met(balances, constants)

        structure = evaluate_structure(contributions, constants)
        voc_result = evaluate_intake_capacity(state, sum(c.vw_total for c in contributions), constants)
        substitution = evaluate_substitution(contributions, profile.max_bds_kg, rate)
        warnings = collect_infeasibility_warnings(voc_result, structure, substitution, constants)

        ureum = None
        if milk is not None and milk.ureum is not None:
            ureum = evaluate_ureum(milk.ureum, constants)

    except (InputValidationError, ValidationError) as e:
        error_info = categorize_calculation_error(e, calculation_id)
        log_error_details(error_info, calculation_id, str(e), logger)
        raise
    except ArithmeticError as e:
        log_error(logger, e, f"CALC_{calculation_id}")
        error_info = categorize_calculation_error(e, calculation_id)
        log_error_details(error_info, calculation_id, str(e), logger)
        raise

    result = CalculationResult(
        requirement=requirement,
        total_supply=total_supply,
        feed_contributions=contributions,
        balances=balances,
        performance_prediction=performance_prediction(profile.name, target_met),
        is_target_met=target_met,
        structure_value=structure,
        voc_result=voc_result,
        substitution_result=substitution,
        ureum_status=ureum,
        warnings=warnings,
        constants_version=constants.version,
    )

    vem_pct = find_balance(balances, "vem").percent_of_requirement or 0.0
    dve_pct = find_balance(balances, "dve").percent_of_requirement or 0.0
    log_calculation_complete(logger, time.perf_counter() - start, vem_pct, dve_pct, len(warnings))
    return result


def cvb_calculate_auditable_ration(profile, state, feed_inputs, strategy, milk=None, constants=None,
                                   substitution_rate=None, generated_at=None, calculation_id="unknown"):
    """Same as cvb_calculate_ration, wrapped in a step-by-step audit trail."""
    constants = constants or CVB_2025
    result = cvb_calculate_ration(profile, state, feed_inputs, strategy, milk, constants,
                                  substitution_rate, calculation_id)
    return cvb_build_audit_trail(result, profile, state, feed_inputs, milk, constants, generated_at)


def cvb_generate_audit_report(profile, state, feed_inputs, strategy, milk=None, constants=None,
                              substitution_rate=None, generated_at=None, calculation_id="unknown"):
    """Plain-text audit report for one ration."""
    audit = cvb_calculate_auditable_ration(profile, state, feed_inputs, strategy, milk, constants,
                                           substitution_rate, generated_at, calculation_id)
    return generate_audit_report(audit)
