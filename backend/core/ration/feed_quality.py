"""
Quality assessment of lab-analysed roughage.

Scores grass silage, maize silage and hay from VEM and OEB per kg DS and
collects advisory warnings. Feed types are recognised from the product
name; anything else scores 'unknown'.
"""

from app.models import FeedQualityAssessment

from .config import FEED_QUALITY_RULES
from .utilities import format_number


def detect_feed_type(product_name):
    name = product_name.lower()
    for feed_type, rule in FEED_QUALITY_RULES.items():
        if any(token in name for token in rule["match"]):
            return feed_type
    return None


def _score_by_vem(vem, bands):
    for minimum, score in bands:
        if vem >= minimum:
            return score
    return "poor"


def _assess_grass_silage(vem, oeb, rule):
    warnings, recommendations = [], []
    score = _score_by_vem(vem, rule["vem_bands"])
    if score == "average":
        warnings.append(f"Low energy ({format_number(vem, 0)} VEM). Raises the concentrate requirement.")
    elif score == "poor":
        warnings.append(f"Very low energy ({format_number(vem, 0)} VEM). Expect -1.5 to -2.5 kg milk per cow.")
        recommendations.append("Consider supplementing energy-rich roughage or increase concentrate.")

    if oeb < rule["oeb_low"]:
        warnings.append(f"Low OEB ({format_number(oeb, 0)}). Protein balance suboptimal.")
        recommendations.append("Add protein-rich concentrate (e.g. rapeseed meal).")
    elif oeb > rule["oeb_high"]:
        warnings.append(f"High OEB ({format_number(oeb, 0)}). Possible nitrogen loss.")
    return score, warnings, recommendations


def _assess_maize_silage(vem, oeb, rule):
    warnings, recommendations = [], []
    score = None
    for min_vem, oeb_above, band in rule["vem_oeb_bands"]:
        if vem >= min_vem and oeb > oeb_above:
            score = band
            break
    if score is None:
        score = _score_by_vem(vem, rule["vem_bands"])
    if score == "poor":
        warnings.append(f"Low energy ({format_number(vem, 0)} VEM) for maize. Expect -1.0 to -2.0 kg milk.")

    if oeb < rule["oeb_critical"]:
        warnings.append(f"Critically low OEB ({format_number(oeb, 0)}). Increase protein-rich concentrate.")
        recommendations.append("Add at least 2 kg protein-rich concentrate per cow per day.")
    elif oeb < rule["oeb_low"]:
        warnings.append(f"Low OEB ({format_number(oeb, 0)}). Protein balance suboptimal.")
        recommendations.append("Consider protein-rich concentrate (rapeseed meal, soybean meal).")
    return score, warnings, recommendations


def _assess_hay(vem, oeb, rule):
    score = _score_by_vem(vem, rule["vem_bands"])
    warnings = [f"Low energy ({format_number(vem, 0)} VEM) for hay."] if score == "poor" else []
    return score, warnings, []


ASSESSORS = {
    "grass_silage": _assess_grass_silage,
    "maize_silage": _assess_maize_silage,
    "hay": _assess_hay,
}


def assess_feed_quality(product_name, vem, dve, oeb):
    """
    Assess a lab-analysed roughage.

    Args:
        product_name (str): Product name, used to recognise the feed type
        vem (float): VEM per kg DS
        dve (float): DVE per kg DS (not used in the current bands)
        oeb (float): OEB per kg DS

    Returns:
        FeedQualityAssessment
    """
    feed_type = detect_feed_type(product_name)
    if feed_type is None:
        return FeedQualityAssessment(feed_type=None, score="unknown")

    rule = FEED_QUALITY_RULES[feed_type]
    score, warnings, recommendations = ASSESSORS[feed_type](vem, oeb, rule)
    return FeedQualityAssessment(
        feed_type=feed_type,
        score=score,
        warnings=warnings,
        recommendations=recommendations,
        impact_estimate=rule["impact"].get(score),
    )


def assess_lab_report(parsed):
    """Quality assessment straight from ParsedFeedData."""
    return assess_feed_quality(parsed.product_name, parsed.vem, parsed.dve, parsed.oeb)
