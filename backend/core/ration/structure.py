"""
Structure value evaluation (CVB 2022 structuurwaarde).
"""

from app.models import StructureValueResult

from .config import CVB_2025
from .utilities import safe_divide, safe_sum


def structure_status(sw_per_kg_ds, constants=CVB_2025):
    if sw_per_kg_ds >= constants.sw_minimum:
        return "ok"
    if sw_per_kg_ds >= constants.sw_warning:
        return "warning"
    return "deficient"


STRUCTURE_MESSAGES = {
    "ok": "Sufficient structure for healthy rumen function",
    "warning": "Marginal structure - increase the roughage share",
    "deficient": "Insufficient structure - risk of rumen acidosis",
}


def evaluate_structure(contributions, constants=CVB_2025):
    """
    Weighted structure value of a ration.

    total SW = sum(kg DS x SW per kg DS); SW per kg DS = total SW / total DS,
    0 for an empty ration.

    Args:
        contributions (list[FeedContribution]): Per-feed contributions
        constants (CvbConstants): Coefficient set

    Returns:
        StructureValueResult
    """
    total_sw = safe_sum([c.sw_total for c in contributions])
    total_ds = safe_sum([c.dry_matter_kg for c in contributions])
    sw_per_kg_ds = safe_divide(total_sw, total_ds)
    status = structure_status(sw_per_kg_ds, constants)

    return StructureValueResult(
        total_sw=total_sw,
        total_ds_kg=total_ds,
        sw_per_kg_ds=sw_per_kg_ds,
        requirement=constants.sw_minimum,
        status=status,
        message=STRUCTURE_MESSAGES[status],
    )
