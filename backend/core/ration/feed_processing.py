"""
Feed processing and nutrient supply module.

This module handles the conversion of fed amounts into nutrient supply,
including:
- Resolving optional feed fields (category, filling value, DS%) at the
  input boundary
- Per-feed dry matter and nutrient contributions
- Ration totals, with the grazing surcharge added once
- Conversion of lab report data into feeds
- Tabular export of contributions

All CVB nutrient densities are per kg dry matter. For feeds entered
"per kg product" the nutrient multiplier is therefore the dry matter,
never the product weight.
"""

import re

import pandas as pd

from app.models import Feed, FeedContribution, NutrientSupply

from .config import CVB_2025, DEFAULT_FEED_CATEGORY, FEED_CATEGORIES, FILLING_VALUE_DEFAULTS
from .utilities import InputValidationError, require_non_negative, require_range, safe_divide, safe_sum

NUTRIENT_FIELDS = {
    "vem": "vem_per_unit",
    "dve_grams": "dve_per_unit",
    "oeb_grams": "oeb_per_unit",
    "ca_grams": "ca_per_unit",
    "p_grams": "p_per_unit",
}


def resolve_feed(feed):
    """Fill in category (default roughage) and filling value (category lookup)."""
    category = feed.category or DEFAULT_FEED_CATEGORY
    update = {"category": category}
    if feed.vw_per_kg_ds is None:
        update["vw_per_kg_ds"] = FILLING_VALUE_DEFAULTS[category]
    return feed.model_copy(update=update)


def resolve_ds_percent(feed_input):
    ds_percent = feed_input.ds_percent
    if ds_percent is None:
        ds_percent = feed_input.feed.default_ds_percent
    return require_range(ds_percent, "ds_percent", 0, 100)


def dry_matter_and_multiplier(basis, amount_kg, ds_percent):
    """
    Dry matter and nutrient multiplier for one fed amount.

    Returns:
        tuple: (dry_matter_kg, nutrient_multiplier, amount_kg_product)
    """
    amount_kg = require_non_negative(amount_kg, "amount_kg")
    ds_percent = require_range(ds_percent, "ds_percent", 0, 100)

    if basis == "per kg DS":
        amount_kg_product = safe_divide(amount_kg * 100, ds_percent)
        return amount_kg, amount_kg, amount_kg_product
    if basis == "per kg product":
        dry_matter_kg = amount_kg * ds_percent / 100
        return dry_matter_kg, dry_matter_kg, amount_kg
    raise InputValidationError("basis", f"unknown feed basis {basis!r}")


def calculate_feed_contribution(feed_input):
    """
    Nutrient contribution of a single feed.

    Args:
        feed_input (FeedInput): Feed and amount fed

    Returns:
        FeedContribution: Dry matter, nutrient supply, SW and VW totals
    """
    feed = resolve_feed(feed_input.feed)
    ds_percent = resolve_ds_percent(feed_input)
    dry_matter_kg, multiplier, amount_kg_product = dry_matter_and_multiplier(
        feed.basis, feed_input.amount_kg, ds_percent
    )

    supply = {"dry_matter_kg": dry_matter_kg}
    for target, source in NUTRIENT_FIELDS.items():
        supply[target] = multiplier * getattr(feed, source)

    return FeedContribution(
        feed_name=feed.name,
        display_name=feed.label,
        category=feed.category,
        basis=feed.basis,
        amount_kg=feed_input.amount_kg,
        ds_percent=ds_percent,
        dry_matter_kg=dry_matter_kg,
        amount_kg_product=amount_kg_product,
        nutrient_multiplier=multiplier,
        supply=NutrientSupply(**supply),
        # SW and VW are always per kg DS
        sw_total=dry_matter_kg * feed.sw_per_kg_ds,
        vw_total=dry_matter_kg * feed.vw_per_kg_ds,
        vem_per_kg_ds=feed.vem_per_unit,
        dve_per_kg_ds=feed.dve_per_unit,
        oeb_per_kg_ds=feed.oeb_per_unit,
        ca_per_kg_ds=feed.ca_per_unit,
        p_per_kg_ds=feed.p_per_unit,
        sw_per_kg_ds=feed.sw_per_kg_ds,
        vw_per_kg_ds=feed.vw_per_kg_ds,
    )


def calculate_feed_contributions(feed_inputs):
    return [calculate_feed_contribution(fi) for fi in feed_inputs]


def sum_contributions(contributions, is_grazing=False, constants=CVB_2025):
    """Sum contributions; the grazing surcharge is added once, after summation."""
    totals = {}
    for field in NutrientSupply.model_fields:
        totals[field] = safe_sum([getattr(c.supply, field) for c in contributions])
    if is_grazing:
        totals["vem"] += constants.grazing_surcharge_vem
    return NutrientSupply(**totals)


def calculate_total_supply(feed_inputs, is_grazing=False, constants=CVB_2025):
    """
    Total nutrient supply of a ration.

    Args:
        feed_inputs (list[FeedInput]): Feeds and amounts
        is_grazing (bool): Add the grazing VEM surcharge
        constants (CvbConstants): Coefficient set

    Returns:
        NutrientSupply: Ration totals
    """
    return sum_contributions(calculate_feed_contributions(feed_inputs), is_grazing, constants)


def _slug(text):
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def feed_from_lab_report(parsed, category="roughage", vw_per_kg_ds=None):
    """
    Convert lab report output into a Feed.

    Lab values are per kg DS, so the resulting feed is entered per kg DS
    and carries the analysed DS% as its default.

    Args:
        parsed (ParsedFeedData): Output of the lab report extraction service
        category (str): Feed category, lab reports are typically roughage
        vw_per_kg_ds (float, optional): Analysed filling value

    Returns:
        Feed: Feed record usable in a ration
    """
    if category not in FEED_CATEGORIES:
        raise InputValidationError("category", f"unknown feed category {category!r}")
    name = parsed.product_name.strip()
    display_name = f"{name} ({parsed.product_type})" if parsed.product_type else name
    return Feed(
        name=_slug(f"{name} {parsed.product_type}") or "lab_feed",
        display_name=display_name,
        vem_per_unit=parsed.vem,
        dve_per_unit=parsed.dve,
        oeb_per_unit=parsed.oeb,
        sw_per_kg_ds=parsed.sw,
        vw_per_kg_ds=vw_per_kg_ds,
        default_ds_percent=parsed.ds_percent,
        basis="per kg DS",
        category=category,
    )


def cvb_create_supply_dataframe(contributions):
    """
    Create a DataFrame with one row per feed plus a total row.

    Parameters:
    -----------
    contributions : list[FeedContribution]

    Returns:
    --------
    DataFrame : Feed, Category, Basis, kg DS, VEM, DVE (g), OEB (g), Ca (g), P (g), SW, VW
    """
    columns = ["Feed", "Category", "Basis", "kg DS", "VEM", "DVE (g)", "OEB (g)", "Ca (g)", "P (g)", "SW", "VW"]
    rows = []
    for c in contributions:
        rows.append([
            c.display_name, c.category, c.basis, c.dry_matter_kg,
            c.supply.vem, c.supply.dve_grams, c.supply.oeb_grams,
            c.supply.ca_grams, c.supply.p_grams, c.sw_total, c.vw_total,
        ])
    df = pd.DataFrame(rows, columns=columns)

    total_row = {"Feed": "Total", "Category": "", "Basis": ""}
    if df.empty:
        total_row.update({col: 0.0 for col in columns[3:]})
        return pd.DataFrame([total_row], columns=columns)
    total_row.update(df[columns[3:]].sum().to_dict())
    return pd.concat([df, pd.DataFrame([total_row], columns=columns)], ignore_index=True)
