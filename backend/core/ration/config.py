"""
Configuration constants for the CVB ration calculation.

This module contains all coefficients and lookup tables used throughout
the ration engine, including:
- The versioned CVB coefficient set injected into every calculation
- Coefficients that appear with divergent values in the source tables
- Balance parameters and status thresholds
- Default filling values per feed category
- Profile narratives and feed quality bands
"""

from dataclasses import dataclass, field


# ===================================================================
# VERSIONED COEFFICIENT SETS
# ===================================================================

PREGNANCY_CURVES = ("quadratic", "tiered")
GRAZING_RULES = ("flat", "percentage")


@dataclass(frozen=True)
class CvbConstants:
    version: str = "CVB-2025"

    # Metabolic weight and FPCM (CVB 2025, Formule 2.1)
    metabolic_exponent: float = 0.75
    fpcm_constant: float = 0.337
    fpcm_fat_coef: float = 0.116
    fpcm_protein_coef: float = 0.06

    # VEM maintenance and production (CVB 2025, Tabel 3.1 / 3.2)
    vem_maintenance_lactating: float = 53.0     # VEM per kg MW
    vem_maintenance_dry: float = 42.4           # VEM per kg MW
    vem_per_kg_fpcm: float = 390.0

    # VEM grazing (CVB 2025, Sectie 3.4)
    grazing_rule: str = "flat"
    vem_grazing_activity: float = 500.0
    vem_grazing_extra: float = 675.0
    vem_grazing_percent: float = 0.30           # of maintenance + production

    # VEM / DVE growth for young cows (CVB 2025, Tabel 3.3 / 4.3)
    vem_growth_parity1: float = 625.0
    vem_growth_parity2: float = 325.0
    dve_growth_parity1: float = 64.0
    dve_growth_parity2: float = 37.0
    growth_max_days_in_milk: int = 100

    # Pregnancy (CVB 2025, Tabel 3.4 / 4.4)
    pregnancy_curve: str = "quadratic"
    pregnancy_start_day: int = 190
    max_days_pregnant: int = 283
    vem_pregnancy_scale_days: float = 93.0
    vem_pregnancy_scale_vem: float = 2000.0
    # (day threshold, surcharge), evaluated top-down with strict '>'
    vem_pregnancy_tiers: tuple = ((250, 3000.0), (220, 2000.0), (190, 1000.0))
    dve_pregnancy_surcharge: float = 255.0

    # DVE maintenance and production (CVB 2025, Tabel 4.1 / 4.2)
    dve_maintenance_base: float = 54.0
    dve_maintenance_per_kg: float = 0.1
    dve_production_linear: float = 1.396
    dve_production_quadratic: float = 0.000195

    # VOC (CVB 2007, Formule 5.1 - 5.5)
    voc_alpha_0: float = 8.743
    voc_alpha_1: float = 3.563
    voc_rho_alpha: float = 1.140
    voc_beta: float = 0.3156
    voc_rho_beta: float = 0.05889
    voc_delta_220: float = 0.05529
    voc_to_kg_ds: float = 2.0
    voc_warning_percent: float = 95.0
    voc_exceeded_percent: float = 100.0

    # Structure value (CVB 2022)
    sw_minimum: float = 1.00
    sw_warning: float = 0.85

    # Coverage bands for VEM / DVE / Ca / P, percent of requirement
    coverage_deficient: float = 90.0
    coverage_full: float = 100.0
    coverage_excess: float = 110.0
    target_met_fraction: float = 0.95

    # OEB (g/day)
    oeb_minimum: float = 0.0
    oeb_deficient: float = -50.0

    # Substitution (kg roughage DS displaced per kg concentrate DS)
    substitution_rate_low: float = 0.40
    substitution_rate_mid: float = 0.45
    substitution_rate_high: float = 0.50

    # Gap analysis (base mix + concentrate top-up per herd group)
    gap_vem_maintenance: float = 42.4           # VEM per kg MW
    gap_vem_per_kg_milk: float = 442.0
    default_roughage_intake_kg_ds: float = 15.0
    sw_safe: float = 1.20
    straw_sw_per_kg_ds: float = 2.0

    # Minerals, scaled from the 12-month heifer reference
    mineral_reference_weight_kg: float = 329.0
    ca_reference_grams: float = 24.0
    p_reference_grams: float = 18.0

    # Milk urea (mg/100 ml)
    ureum_minimum: float = 15.0
    ureum_maximum: float = 30.0

    def __post_init__(self):
        if self.pregnancy_curve not in PREGNANCY_CURVES:
            raise ValueError(f"Invalid pregnancy curve: {self.pregnancy_curve}")
        if self.grazing_rule not in GRAZING_RULES:
            raise ValueError(f"Invalid grazing rule: {self.grazing_rule}")

    @property
    def grazing_surcharge_vem(self):
        """Flat grazing surcharge (activity + extra grazing needs)."""
        return self.vem_grazing_activity + self.vem_grazing_extra


CVB_2025 = CvbConstants()

CONSTANT_SETS = {
    CVB_2025.version: CVB_2025,
}

DEFAULT_CONSTANTS_VERSION = CVB_2025.version


# ===================================================================
# DISCREPANCY REGISTER
# ===================================================================

# Coefficients found with divergent values in the CVB tables as used in
# practice. `chosen` is what CVB_2025 applies; nothing here is confirmed
# until a nutrition expert has signed off on it.
CONSTANT_DISCREPANCIES = {
    "vem_maintenance_dry": {
        "display_name": "VEM maintenance, dry cow",
        "unit": "VEM/kg MW",
        "chosen": 42.4,
        "alternatives": [52.2],
        "confirmed": False,
        "note": "52.2 appears in the step-by-step audit calculator only",
    },
    "dve_pregnancy_surcharge": {
        "display_name": "DVE pregnancy surcharge",
        "unit": "g/day",
        "chosen": 255.0,
        "alternatives": [150.0, 280.0],
        "confirmed": False,
        "note": "150 g is listed as a per-day late-gestation value in the constant table",
    },
    "pregnancy_curve": {
        "display_name": "VEM pregnancy surcharge curve",
        "unit": "VEM",
        "chosen": "quadratic",
        "alternatives": ["tiered"],
        "confirmed": False,
        "note": "quadratic: ((d - 190) / 93)^2 x 2000; tiered: 1000 / 2000 / 3000 above day 190 / 220 / 250",
    },
    "grazing_rule": {
        "display_name": "VEM grazing surcharge",
        "unit": "VEM",
        "chosen": "flat",
        "alternatives": ["percentage"],
        "confirmed": False,
        "note": "flat: 500 + 675 = 1175 VEM; percentage: 30% of maintenance + production",
    },
    "vem_growth": {
        "display_name": "VEM growth surcharge parity 1 / 2",
        "unit": "VEM",
        "chosen": [625.0, 325.0],
        "alternatives": [[630.0, 330.0]],
        "confirmed": False,
        "note": "630 / 330 is applied without the days-in-milk limit in the MPR path",
    },
    "gap_vem_maintenance": {
        "display_name": "VEM maintenance in the gap analysis",
        "unit": "VEM/kg MW",
        "chosen": 42.4,
        "alternatives": [53.0],
        "confirmed": False,
        "note": "the gap analysis applies the dry-cow coefficient to milking groups",
    },
    "gap_vem_per_kg_milk": {
        "display_name": "VEM per kg milk in the gap analysis",
        "unit": "VEM/kg",
        "chosen": 442.0,
        "alternatives": [390.0],
        "confirmed": False,
        "note": "390 VEM per kg FPCM is used by the dynamic requirement",
    },
    "ureum_limits": {
        "display_name": "Milk urea limits",
        "unit": "mg/100 ml",
        "chosen": [15.0, 30.0],
        "alternatives": [[18.0, 25.0]],
        "confirmed": False,
        "note": "18 - 25 is used by the MPR validation screen",
    },
}


def get_constants(version=None):
    """
    Look up a registered coefficient set.

    Args:
        version (str, optional): Version string, e.g. "CVB-2025". None
            returns the default set.

    Returns:
        CvbConstants: The frozen coefficient set
    """
    key = version or DEFAULT_CONSTANTS_VERSION
    if key not in CONSTANT_SETS:
        raise ValueError(f"Unknown constants version: {key}")
    return CONSTANT_SETS[key]


def unconfirmed_discrepancies():
    """Keys of the discrepancy register still awaiting expert confirmation."""
    return sorted(k for k, v in CONSTANT_DISCREPANCIES.items() if not v["confirmed"])


# ===================================================================
# BALANCE PARAMETERS
# ===================================================================

# rule: "ceiling" = supply above requirement is a warning,
#       "coverage" = percent-of-requirement bands,
#       "oeb" = absolute OEB bands
BALANCE_PARAMETERS = {
    "dmi": {
        "display_name": "Dry Matter Intake",
        "short_name": "DMI",
        "unit": "kg DS",
        "rule": "ceiling",
        "decimals": 2,
    },
    "vem": {
        "display_name": "Energy (VEM)",
        "short_name": "VEM",
        "unit": "VEM",
        "rule": "coverage",
        "decimals": 0,
    },
    "dve": {
        "display_name": "Protein (DVE)",
        "short_name": "DVE",
        "unit": "g",
        "rule": "coverage",
        "decimals": 0,
    },
    "oeb": {
        "display_name": "OEB",
        "short_name": "OEB",
        "unit": "g",
        "rule": "oeb",
        "decimals": 0,
    },
    "ca": {
        "display_name": "Calcium (Ca)",
        "short_name": "Ca",
        "unit": "g",
        "rule": "coverage",
        "decimals": 1,
    },
    "p": {
        "display_name": "Phosphorus (P)",
        "short_name": "P",
        "unit": "g",
        "rule": "coverage",
        "decimals": 1,
    },
}

BALANCE_ORDER = ["dmi", "vem", "dve", "oeb", "ca", "p"]


# ===================================================================
# FEED DEFAULTS
# ===================================================================

FEED_CATEGORIES = ("roughage", "concentrate", "byproduct", "mineral")
DEFAULT_FEED_CATEGORY = "roughage"

# VW per kg DS when a feed carries no analysed filling value
FILLING_VALUE_DEFAULTS = {
    "roughage": 1.00,
    "concentrate": 0.45,
    "byproduct": 0.55,
    "mineral": 0.30,
}

# Categories that take part in the substitution model
SUBSTITUTION_CATEGORIES = {
    "concentrate": "concentrate",
    "roughage": "roughage",
}


# ===================================================================
# NARRATIVES
# ===================================================================

PROFILE_NARRATIVES = {
    "Vaars 12 maanden": {
        "met": "This ration supports the target growth of 860 g/day",
        "not_met": "This ration may not reach the target growth of 860 g/day. Check the nutrient deficits.",
    },
    "Droge koe 9e maand": {
        "met": "This ration prepares the cow adequately for calving",
        "not_met": "This ration may not prepare the cow adequately for calving. Check the nutrient deficits.",
    },
    "Hoogproductieve koe (41kg melk)": {
        "met": "This ration supports the target production of 41 kg milk/day (FCM 44.9 kg)",
        "not_met": "This ration may not reach the 41 kg/day milk production. Check the nutrient deficits.",
    },
}

DEFAULT_NARRATIVE = {
    "met": "This ration supports the target production of 30 kg milk/day",
    "not_met": "This ration may not reach the 30 kg/day milk production. Check the nutrient deficits.",
}


# ===================================================================
# FEED QUALITY BANDS (lab-analysed roughage)
# ===================================================================

FEED_QUALITY_RULES = {
    "grass_silage": {
        "match": ("gras", "grass"),
        "vem_bands": [(940, "excellent"), (900, "good"), (860, "average")],
        "oeb_low": -20,
        "oeb_high": 50,
        "impact": {"poor": "-1.5 to -2.5 kg milk", "average": "-0.5 to -1.0 kg milk"},
    },
    "maize_silage": {
        "match": ("maïs", "mais", "maize"),
        # (min VEM, OEB strictly above) pairs, then plain VEM band
        "vem_oeb_bands": [(1000, -30, "excellent"), (970, -40, "good")],
        "vem_bands": [(940, "average")],
        "oeb_critical": -50,
        "oeb_low": -30,
        "impact": {"poor": "-1.0 to -2.0 kg milk", "average": "-0.5 to -1.0 kg milk"},
    },
    "hay": {
        "match": ("hooi", "hay"),
        "vem_bands": [(800, "good"), (750, "average")],
        "impact": {},
    },
}
