"""
Substitution (displacement) of roughage by concentrate.

For every kg DS of concentrate a cow voluntarily eats 0.4 - 0.5 kg DS less
roughage. The model reports the displacement, the roughage intake that
remains possible, and whether the ration offers more roughage than that.
"""

from app.models import SubstitutionResult

from .config import CVB_2025, SUBSTITUTION_CATEGORIES
from .utilities import InputValidationError, require_non_negative, require_range, safe_sum, format_number


def _validate_rate(rate):
    return require_range(rate, "substitution_rate", 0, 1)


def roughage_displacement(concentrate_kg_ds, rate=CVB_2025.substitution_rate_mid):
    """Roughage displaced (kg DS) = concentrate kg DS x rate."""
    rate = _validate_rate(rate)
    concentrate_kg_ds = require_non_negative(concentrate_kg_ds, "concentrate_kg_ds")
    return concentrate_kg_ds * rate


def adjusted_roughage_intake(max_roughage_intake, concentrate_kg_ds, rate=CVB_2025.substitution_rate_mid):
    max_roughage_intake = require_non_negative(max_roughage_intake, "max_roughage_intake")
    return max(0.0, max_roughage_intake - roughage_displacement(concentrate_kg_ds, rate))


def recommend_concentrate(max_roughage_intake, target_roughage_intake, rate=CVB_2025.substitution_rate_mid):
    """
    Concentrate (kg DS) needed to bring roughage intake down to a target.

    (max - target) / rate when target < max, else 0.
    """
    rate = _validate_rate(rate)
    max_roughage_intake = require_non_negative(max_roughage_intake, "max_roughage_intake")
    target_roughage_intake = require_non_negative(target_roughage_intake, "target_roughage_intake")
    if target_roughage_intake >= max_roughage_intake:
        return 0.0
    if rate == 0:
        raise InputValidationError("substitution_rate", "must be > 0 to recommend a concentrate level")
    return (max_roughage_intake - target_roughage_intake) / rate


def evaluate_substitution(contributions, max_roughage_intake, rate=CVB_2025.substitution_rate_mid):
    """
    Substitution effect for a complete ration.

    Only concentrate and roughage take part; byproducts and minerals are
    left out of both sums.

    Args:
        contributions (list[FeedContribution]): Per-feed contributions
        max_roughage_intake (float): Roughage intake without concentrate, kg DS
        rate (float): Displacement rate, 0 - 1

    Returns:
        SubstitutionResult
    """
    rate = _validate_rate(rate)
    sums = {"concentrate": [], "roughage": []}
    for c in contributions:
        group = SUBSTITUTION_CATEGORIES.get(c.category)
        if group is not None:
            sums[group].append(c.dry_matter_kg)

    concentrate_kg_ds = safe_sum(sums["concentrate"])
    roughage_kg_ds = safe_sum(sums["roughage"])
    displacement = roughage_displacement(concentrate_kg_ds, rate)
    adjusted = adjusted_roughage_intake(max_roughage_intake, concentrate_kg_ds, rate)
    is_overfeeding = roughage_kg_ds > adjusted

    if concentrate_kg_ds == 0:
        message = "No concentrate in the ration. No roughage displacement."
    elif is_overfeeding:
        message = (f"Too much roughage. Concentrate displaces {format_number(displacement, 1)} kg roughage; "
                   f"at most {format_number(adjusted, 1)} kg roughage can be taken in.")
    else:
        message = (f"Displacement OK. Concentrate displaces {format_number(displacement, 1)} kg roughage; "
                   f"{format_number(adjusted - roughage_kg_ds, 1)} kg roughage room left.")

    return SubstitutionResult(
        concentrate_kg_ds=concentrate_kg_ds,
        roughage_kg_ds=roughage_kg_ds,
        max_roughage_intake=max_roughage_intake,
        displacement=displacement,
        adjusted_roughage_intake=adjusted,
        substitution_rate=rate,
        is_overfeeding=is_overfeeding,
        message=message,
    )
