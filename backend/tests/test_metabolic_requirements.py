"""
Tests for metabolic weight, FPCM and the VEM / DVE requirement strategies
"""
import math

import pytest

from app.models import LactationState, MilkProductionRecord
from core.ration.config import (
    CVB_2025,
    CONSTANT_DISCREPANCIES,
    CvbConstants,
    get_constants,
    unconfirmed_discrepancies,
)
from core.ration.metabolic import metabolic_weight, fpcm, protein_yield
from core.ration.utilities import InputValidationError, round_half_up, format_number
from core.ration.animal_requirements import (
    DynamicRequirement,
    ProfileDefaultRequirement,
    cvb_calculate_requirements,
    cvb_create_requirements_dataframe,
    dve_growth,
    dve_pregnancy,
    dve_production,
    get_requirement_strategy,
    mineral_requirements,
    vem_growth,
    vem_maintenance,
    vem_pregnancy,
)


class TestMetabolicPrimitives:
    """Metabolic weight, FPCM and protein yield"""

    def test_metabolic_weight(self):
        """MW = LW^0.75."""
        assert metabolic_weight(650) == pytest.approx(650 ** 0.75)
        assert metabolic_weight(1) == pytest.approx(1.0)

    @pytest.mark.parametrize("lighter,heavier", [
        (0.5, 1), (1, 2), (50, 51), (329, 330), (649.9, 650), (650, 650.1), (700, 800), (1200, 5000),
    ])
    def test_metabolic_weight_strictly_increasing(self, lighter, heavier):
        """A heavier animal always has a larger metabolic weight."""
        assert metabolic_weight(lighter) < metabolic_weight(heavier)

    @pytest.mark.parametrize("weight", [0, -650, None, True, float("nan"), float("inf"), "heavy"])
    def test_metabolic_weight_rejects_invalid_weight(self, weight):
        """Only a finite positive weight is accepted."""
        with pytest.raises(InputValidationError) as exc:
            metabolic_weight(weight)
        assert exc.value.field == "weight_kg"

    def test_fpcm(self):
        """FPCM for 30 kg at 4.4% fat and 3.5% protein."""
        # 30 x (0.337 + 0.116 x 4.4 + 0.06 x 3.5) = 30 x 1.0574
        assert fpcm(30, 4.4, 3.5) == pytest.approx(31.722)

    def test_fpcm_zero_milk(self):
        """No milk gives no FPCM."""
        assert fpcm(0, 4.4, 3.5) == 0.0

    @pytest.mark.parametrize("args", [(-1, 4.4, 3.5), (30, -0.1, 3.5), (30, 4.4, -3.5)])
    def test_fpcm_rejects_negative_inputs(self, args):
        """Negative milk, fat or protein is rejected."""
        with pytest.raises(InputValidationError):
            fpcm(*args)

    def test_protein_yield(self):
        """Protein yield in grams per day."""
        assert protein_yield(30, 3.5) == pytest.approx(1050.0)


class TestRequirementComponents:
    """Individual VEM / DVE components"""

    def test_maintenance_650_kg_lactating(self):
        """Lactating maintenance for the 650 kg reference cow."""
        # 53 x 650^0.75
        assert vem_maintenance(650, True) == pytest.approx(53.0 * 650 ** 0.75)
        assert vem_maintenance(650, True) == pytest.approx(6822.7, abs=1)

    def test_maintenance_dry_uses_dry_coefficient(self):
        """Dry cows use 42.4 VEM per kg MW."""
        assert vem_maintenance(650, False) == pytest.approx(42.4 * 650 ** 0.75)

    def test_pregnancy_below_start_day(self):
        """No pregnancy surcharge before day 190."""
        assert vem_pregnancy(0) == 0.0
        assert vem_pregnancy(189) == 0.0
        assert dve_pregnancy(189) == 0.0

    def test_pregnancy_quadratic_curve(self):
        """The continuous curve reaches 2000 VEM at day 283."""
        assert vem_pregnancy(190) == 0.0
        assert vem_pregnancy(250) == pytest.approx((60 / 93) ** 2 * 2000)
        assert vem_pregnancy(283) == pytest.approx(2000.0)

    def test_pregnancy_tiered_curve(self):
        """Tiers step up strictly after day 190, 220 and 250."""
        tiered = CvbConstants(pregnancy_curve="tiered")
        assert vem_pregnancy(190, tiered) == 0.0
        assert vem_pregnancy(200, tiered) == 1000.0
        assert vem_pregnancy(250, tiered) == 2000.0
        assert vem_pregnancy(251, tiered) == 3000.0

    def test_dve_pregnancy_surcharge(self):
        """Flat DVE surcharge from day 190."""
        assert dve_pregnancy(190) == 255.0
        assert dve_pregnancy(280) == 255.0

    @pytest.mark.parametrize("days", [284, 300, -1])
    def test_pregnancy_beyond_gestation_rejected(self, days):
        """Days pregnant are bounded by the longest gestation, 283 days."""
        for component in (vem_pregnancy, dve_pregnancy):
            with pytest.raises(InputValidationError) as exc:
                component(days)
            assert exc.value.field == "days_pregnant"

    def test_gestation_bound_from_constants(self):
        """A coefficient set with a longer gestation accepts later days."""
        long_gestation = CvbConstants(max_days_pregnant=300)
        assert dve_pregnancy(290, long_gestation) == 255.0
        assert vem_pregnancy(290, long_gestation) == pytest.approx((100 / 93) ** 2 * 2000)

    def test_growth_only_first_and_second_lactation(self):
        """Growth surcharge for parity 1 and 2 only."""
        assert vem_growth(1, 50) == 625.0
        assert vem_growth(2, 50) == 325.0
        assert vem_growth(3, 50) == 0.0
        assert dve_growth(1, 50) == 64.0
        assert dve_growth(2, 50) == 37.0

    def test_growth_limited_to_early_lactation(self):
        """Growth surcharge stops after 100 days in milk."""
        assert vem_growth(1, 100) == 625.0
        assert vem_growth(1, 101) == 0.0
        assert dve_growth(2, 101) == 0.0

    def test_dve_production_quadratic(self):
        """DVE production is quadratic in protein yield."""
        assert dve_production(1050) == pytest.approx(1.396 * 1050 + 0.000195 * 1050 ** 2)


class TestRequirementStrategies:
    """Profile default and dynamic requirement"""

    def test_profile_default(self, dairy_profile, mid_lactation):
        """Profile targets are used as the requirement."""
        req = cvb_calculate_requirements(dairy_profile, mid_lactation, ProfileDefaultRequirement())
        assert req.strategy == "profile_default"
        assert req.vem_total == 21000
        assert req.dve_total == 1800
        assert req.fpcm is None

    def test_profile_default_grazing_is_flat(self, dairy_profile):
        """Grazing adds the flat surcharge to a profile target."""
        state = LactationState(parity=3, days_in_milk=150, is_grazing=True)
        percentage = CvbConstants(grazing_rule="percentage")
        req = cvb_calculate_requirements(dairy_profile, state, ProfileDefaultRequirement(), constants=percentage)
        assert req.vem_components["grazing"] == 1175.0
        assert req.vem_total == 22175.0

    def test_dynamic_lactating(self, dairy_profile, mid_lactation, milk_record):
        """Dynamic requirement from weight and milk record."""
        req = cvb_calculate_requirements(dairy_profile, mid_lactation, DynamicRequirement(), milk_record)
        maintenance = 53.0 * 650 ** 0.75
        production = 390.0 * 31.722
        assert req.strategy == "dynamic"
        assert req.fpcm == pytest.approx(31.722)
        assert req.protein_yield_grams == pytest.approx(1050.0)
        assert req.vem_components["maintenance"] == pytest.approx(maintenance)
        assert req.vem_components["production"] == pytest.approx(production)
        assert req.vem_total == pytest.approx(maintenance + production)
        assert req.dve_components["maintenance"] == pytest.approx(119.0)
        assert req.dve_total == pytest.approx(119.0 + 1.396 * 1050 + 0.000195 * 1050 ** 2)

    def test_dynamic_totals_are_sum_of_components(self, dairy_profile, milk_record):
        """Totals are the sum of the components."""
        state = LactationState(parity=1, days_in_milk=30, days_pregnant=0, is_grazing=True)
        req = cvb_calculate_requirements(dairy_profile, state, DynamicRequirement(), milk_record)
        assert req.vem_total == pytest.approx(sum(req.vem_components.values()))
        assert req.dve_total == pytest.approx(sum(req.dve_components.values()))
        assert req.vem_components["growth"] == 625.0
        assert req.vem_components["grazing"] == 1175.0

    def test_dynamic_percentage_grazing(self, dairy_profile, mid_lactation, milk_record):
        """The percentage grazing rule scales with maintenance and production."""
        state = mid_lactation.model_copy(update={"is_grazing": True})
        constants = CvbConstants(grazing_rule="percentage")
        req = cvb_calculate_requirements(dairy_profile, state, DynamicRequirement(), milk_record, constants)
        expected = 0.30 * (req.vem_components["maintenance"] + req.vem_components["production"])
        assert req.vem_components["grazing"] == pytest.approx(expected)

    def test_dynamic_dry_cow_needs_no_milk_record(self, dairy_profile):
        """Dry cows need no milk record."""
        state = LactationState(parity=3, days_in_milk=0, days_pregnant=250, is_lactating=False)
        req = cvb_calculate_requirements(dairy_profile, state, DynamicRequirement())
        assert req.vem_components["production"] == 0.0
        assert req.dve_components["production"] == 0.0
        assert req.vem_components["maintenance"] == pytest.approx(42.4 * 650 ** 0.75)
        assert req.vem_components["pregnancy"] == pytest.approx((60 / 93) ** 2 * 2000)
        assert req.dve_components["pregnancy"] == 255.0

    def test_dynamic_dry_cow_ignores_milk_record(self, dairy_profile, milk_record):
        """A milk record for a dry cow adds no production."""
        state = LactationState(parity=3, days_pregnant=250, is_lactating=False)
        req = cvb_calculate_requirements(dairy_profile, state, DynamicRequirement(), milk_record)
        assert req.fpcm == 0.0
        assert req.vem_components["production"] == 0.0

    def test_dynamic_lactating_without_milk_record(self, dairy_profile, mid_lactation):
        """A lactating cow without milk record is rejected."""
        with pytest.raises(InputValidationError) as exc:
            cvb_calculate_requirements(dairy_profile, mid_lactation, DynamicRequirement())
        assert exc.value.field == "milk"

    def test_strategy_must_be_explicit(self, dairy_profile, mid_lactation):
        """No strategy is an error, not a silent default."""
        with pytest.raises(InputValidationError) as exc:
            cvb_calculate_requirements(dairy_profile, mid_lactation, "dynamic")
        assert exc.value.field == "strategy"

    def test_strategy_registry(self):
        """Strategies are looked up by name."""
        assert isinstance(get_requirement_strategy("dynamic"), DynamicRequirement)
        assert isinstance(get_requirement_strategy("profile_default"), ProfileDefaultRequirement)
        with pytest.raises(InputValidationError):
            get_requirement_strategy("fixed")


class TestMineralsAndExport:
    """Ca / P requirement and the requirement table"""

    def test_minerals_reference_weight(self):
        """Ca and P at the 329 kg reference weight."""
        minerals = mineral_requirements(329)
        assert minerals.ca_grams == pytest.approx(24.0)
        assert minerals.p_grams == pytest.approx(18.0)

    def test_minerals_scale_linearly(self):
        """Ca and P scale linearly with weight."""
        minerals = mineral_requirements(658)
        assert minerals.ca_grams == pytest.approx(48.0)
        assert minerals.p_grams == pytest.approx(36.0)

    def test_requirements_dataframe(self, dairy_profile, mid_lactation, milk_record):
        """Component rows plus totals per nutrient."""
        req = cvb_calculate_requirements(dairy_profile, mid_lactation, DynamicRequirement(), milk_record)
        df = cvb_create_requirements_dataframe(req, mineral_requirements(650))
        assert list(df.columns) == ["Parameter", "Component", "Value", "Unit"]
        # 5 VEM components + total, 4 DVE components + total, Ca, P
        assert len(df) == 13
        vem_total = df[(df["Parameter"] == "VEM") & (df["Component"] == "total")]["Value"].iloc[0]
        assert vem_total == pytest.approx(req.vem_total)


class TestConstantsRegistry:
    """Versioned coefficient sets and the discrepancy register"""

    def test_default_version(self):
        """The default coefficient set is CVB 2025."""
        assert get_constants() is CVB_2025
        assert get_constants("CVB-2025").version == "CVB-2025"

    def test_unknown_version(self):
        """An unknown version is rejected."""
        with pytest.raises(ValueError):
            get_constants("CVB-1999")

    def test_invalid_options(self):
        """Unknown curve or grazing rule names are rejected."""
        with pytest.raises(ValueError):
            CvbConstants(pregnancy_curve="linear")
        with pytest.raises(ValueError):
            CvbConstants(grazing_rule="hourly")

    def test_grazing_surcharge(self):
        """Flat grazing surcharge is 500 + 675 VEM."""
        assert CVB_2025.grazing_surcharge_vem == 1175.0

    def test_discrepancies_unconfirmed(self):
        """Every register entry awaits confirmation and matches the set."""
        assert unconfirmed_discrepancies() == sorted(CONSTANT_DISCREPANCIES)
        assert CONSTANT_DISCREPANCIES["vem_maintenance_dry"]["chosen"] == CVB_2025.vem_maintenance_dry
        assert CONSTANT_DISCREPANCIES["dve_pregnancy_surcharge"]["chosen"] == CVB_2025.dve_pregnancy_surcharge


class TestRounding:
    """Display rounding helpers"""

    def test_round_half_up(self):
        """Halves round away from zero."""
        assert round_half_up(2.675) == 2.68
        assert round_half_up(0.5, 0) == 1.0
        assert round_half_up(-0.004) == 0.0

    def test_round_half_up_non_finite(self):
        """None, NaN and infinity round to None."""
        assert round_half_up(None) is None
        assert round_half_up(float("nan")) is None
        assert round_half_up(math.inf) is None

    def test_format_number(self):
        """Whole numbers print without decimals."""
        assert format_number(6822.7, 0) == "6823"
        assert format_number(2.50) == "2.5"
        assert format_number(3.0) == "3"
        assert format_number(None) == "n/a"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
