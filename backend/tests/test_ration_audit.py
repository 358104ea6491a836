"""
Tests for the complete ration calculation, audit trail and report,
error categorization and logging setup
"""
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from app.models import AnimalProfile, Feed, FeedInput, LactationState
from core.ration.animal_requirements import DynamicRequirement, ProfileDefaultRequirement
from core.ration import rationcalc
from core.ration.audit import AuditedValue, _sum_step
from core.ration.config import CvbConstants, unconfirmed_discrepancies
from core.ration.rationcalc import (
    cvb_calculate_auditable_ration,
    cvb_calculate_ration,
    cvb_generate_audit_report,
)
from core.ration.utilities import InputValidationError, round_half_up
from middleware.error_handlers import categorize_calculation_error, create_user_friendly_error_response
from middleware.logging_config import get_logger, log_error, setup_logging


def codes(result):
    return [w["code"] for w in result.warnings]


class TestCalculateRation:
    """End-to-end ration calculation"""

    def test_dynamic_ration(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """Full ration with the dynamic requirement."""
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                      milk_record)
        assert result.constants_version == "CVB-2025"
        assert result.requirement.vem_total == pytest.approx(53.0 * 650 ** 0.75 + 390.0 * 31.722)
        assert result.total_supply.dry_matter_kg == pytest.approx(25.0)
        assert len(result.feed_contributions) == 3
        assert len(result.balances) == 6
        assert result.ureum_status.status == "ok"
        assert result.structure_value.sw_per_kg_ds == pytest.approx(44.8 / 25)
        assert result.substitution_result.is_overfeeding is False

    def test_saturation_uses_filling_units(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """Saturation compares filling units with capacity."""
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                      milk_record)
        voc = result.voc_result
        assert voc.total_vw == pytest.approx(12 * 1.05 + 7 * 1.0 + 6 * 0.45)
        assert voc.saturation_percent == pytest.approx(voc.total_vw / voc.voc_vw * 100)
        assert codes(result) == ["VOC_EXCEEDED"]
        assert result.warnings[0]["level"] == "error"

    def test_profile_default_with_grazing(self, dairy_profile, standard_ration):
        """Grazing raises both requirement and supply."""
        state = LactationState(parity=3, days_in_milk=150, is_grazing=True)
        result = cvb_calculate_ration(dairy_profile, state, standard_ration, ProfileDefaultRequirement())
        assert result.requirement.vem_total == pytest.approx(21000 + 1175)
        assert result.total_supply.vem == pytest.approx(12 * 900 + 7 * 980 + 6 * 1000 + 1175)
        assert result.ureum_status is None

    def test_structure_deficient_warning(self, dairy_profile, mid_lactation, grass_silage, concentrate):
        """Too little structure is an error-level warning."""
        feeds = [FeedInput(feed=grass_silage, amount_kg=2), FeedInput(feed=concentrate, amount_kg=10)]
        result = cvb_calculate_ration(dairy_profile, mid_lactation, feeds, ProfileDefaultRequirement())
        assert codes(result) == ["STRUCTURE_DEFICIENT"]

    def test_overfeeding_is_reported(self, dairy_profile, mid_lactation, grass_silage):
        """Overfeeding is reported, never clipped."""
        feeds = [FeedInput(feed=grass_silage, amount_kg=30)]
        result = cvb_calculate_ration(dairy_profile, mid_lactation, feeds, ProfileDefaultRequirement())
        assert "VOC_EXCEEDED" in codes(result)
        assert "ROUGHAGE_OVERFEEDING" in codes(result)
        assert result.voc_result.saturation_percent > 100

    def test_empty_ration(self, dairy_profile, mid_lactation):
        """An empty ration raises no warnings."""
        result = cvb_calculate_ration(dairy_profile, mid_lactation, [], ProfileDefaultRequirement())
        assert result.warnings == []
        assert result.is_target_met is False
        assert result.structure_value.sw_per_kg_ds == 0.0

    def test_custom_substitution_rate(self, dairy_profile, mid_lactation, standard_ration):
        """A caller rate replaces the default 0.45."""
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, ProfileDefaultRequirement(),
                                      substitution_rate=0.5)
        assert result.substitution_result.displacement == pytest.approx(3.0)
        assert "SUBSTITUTION_RATE_UNUSUAL" not in codes(result)

    @pytest.mark.parametrize("rate,flagged", [(0.40, False), (0.45, False), (0.50, False), (0.3, True), (0.6, True)])
    def test_unusual_substitution_rate(self, dairy_profile, mid_lactation, standard_ration, rate, flagged):
        """Rates outside 0.40 - 0.50 are computed but flagged."""
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, ProfileDefaultRequirement(),
                                      substitution_rate=rate)
        assert ("SUBSTITUTION_RATE_UNUSUAL" in codes(result)) is flagged
        assert result.substitution_result.substitution_rate == rate
        if flagged:
            warning = next(w for w in result.warnings if w["code"] == "SUBSTITUTION_RATE_UNUSUAL")
            assert warning["level"] == "info"
            assert "0.4 - 0.5" in warning["summary"]

    def test_gestation_bound_follows_constants(self, dairy_profile, standard_ration):
        """Days pregnant beyond the coefficient set's gestation are rejected."""
        state = LactationState(parity=3, days_in_milk=250, days_pregnant=290)
        with pytest.raises(InputValidationError) as exc:
            cvb_calculate_ration(dairy_profile, state, standard_ration, ProfileDefaultRequirement())
        assert exc.value.field == "days_pregnant"

        long_gestation = CvbConstants(max_days_pregnant=300)
        result = cvb_calculate_ration(dairy_profile, state, standard_ration, ProfileDefaultRequirement(),
                                      constants=long_gestation)
        assert result.voc_result.pregnancy_factor < 1

    def test_missing_milk_record_is_logged_and_raised(self, dairy_profile, mid_lactation, standard_ration, caplog):
        """Validation errors are logged with the calculation id."""
        with caplog.at_level(logging.WARNING):
            with pytest.raises(InputValidationError) as exc:
                cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                     calculation_id="T-001")
        assert exc.value.field == "milk"
        assert "CALC_T-001" in caplog.text

    def test_arithmetic_error_is_logged_and_raised(self, dairy_profile, mid_lactation, standard_ration,
                                                   caplog, monkeypatch):
        """Arithmetic errors are logged and re-raised."""
        def broken_structure(contributions, constants):
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr(rationcalc, "evaluate_structure", broken_structure)
        with caplog.at_level(logging.ERROR):
            with pytest.raises(ZeroDivisionError):
                cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, ProfileDefaultRequirement(),
                                     calculation_id="T-002")
        assert "Context: CALC_T-002" in caplog.text
        assert "Category: CALCULATION" in caplog.text

    def test_completion_logged(self, dairy_profile, mid_lactation, standard_ration, caplog):
        """A finished calculation is logged."""
        with caplog.at_level(logging.INFO):
            cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, ProfileDefaultRequirement())
        assert "Calculation Complete" in caplog.text


class TestAuditTrail:
    """Step-by-step audit trail"""

    def test_requirement_steps(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """One step per requirement component plus the total."""
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                               milk_record)
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                      milk_record)
        vem = audit.requirements["vem"]
        assert set(vem) == {"maintenance", "production", "pregnancy", "growth", "grazing", "total"}
        assert vem["total"].result == round_half_up(result.requirement.vem_total)
        assert vem["maintenance"].source == "CVB 2025, Table 3.1"
        assert set(audit.requirements["basis"]) == {"metabolic_weight", "fpcm"}
        assert audit.requirements["voc"]["voc_kg_ds"].unit == "kg DS"
        assert audit.strategy == "dynamic"
        assert audit.inputs["milk"]["fpcm"] == 31.7

    def test_profile_default_steps(self, dairy_profile, mid_lactation, standard_ration):
        """Profile targets audit as a single step."""
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, standard_ration,
                                               ProfileDefaultRequirement())
        assert set(audit.requirements["vem"]) == {"profile_target", "grazing", "total"}
        assert audit.requirements["dve"]["total"].result == 1800
        assert audit.requirements["basis"] == {}

    def test_feed_steps(self, dairy_profile, mid_lactation, standard_ration):
        """Per-feed steps for every nutrient."""
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, standard_ration,
                                               ProfileDefaultRequirement())
        assert len(audit.supply_feeds) == 3
        maize = audit.supply_feeds[1]
        assert set(maize.contributions) == {"vem", "dve", "oeb", "ca", "p", "sw", "vw"}
        assert maize.amount_kg_ds == 7.0
        assert maize.amount_kg_product == 20.0
        assert maize.contributions["vem"].result == 6860.0

    def test_zero_amount_feed_shows_table_density(self, dairy_profile, mid_lactation, grass_silage, concentrate):
        """A feed listed at 0 kg still shows its feed table values, not 0."""
        feeds = [FeedInput(feed=grass_silage, amount_kg=0), FeedInput(feed=concentrate, amount_kg=6)]
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, feeds, ProfileDefaultRequirement())
        grass = audit.supply_feeds[0].contributions
        assert grass["vem"].inputs["VEM/kg DS"] == 900
        assert grass["vem"].result == 0.0
        assert grass["vem"].calculation == "0 × 900 = 0"
        assert grass["oeb"].inputs["OEB/kg DS"] == 40
        assert grass["sw"].inputs["SW/kg DS"] == 2.8
        assert grass["vw"].inputs["VW/kg DS"] == 1.05

    def test_totals_from_unrounded_values(self, dairy_profile, mid_lactation):
        """Each part shows as 3.34; the total is 10.005 rounded once, never 10.02."""
        feed = Feed(name="brok", vem_per_unit=1000, dve_per_unit=100, category="concentrate")
        feeds = [FeedInput(feed=feed, amount_kg=3.335) for _ in range(3)]
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, feeds, ProfileDefaultRequirement())
        step = audit.supply_totals["dry_matter_kg"]
        assert list(step.inputs) == ["brok", "brok #2", "brok #3"]
        assert all(v == 3.34 for v in step.inputs.values())
        assert step.result == round_half_up(3.335 + 3.335 + 3.335)
        assert step.result != round_half_up(sum(step.inputs.values()))

    def test_requirement_total_from_unrounded_components(self, dairy_profile, mid_lactation, milk_record,
                                                         standard_ration):
        """The requirement total is the rounded sum of unrounded components."""
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                               milk_record)
        result = cvb_calculate_ration(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                      milk_record)
        for key, components in (("vem", result.requirement.vem_components),
                                ("dve", result.requirement.dve_components)):
            assert audit.requirements[key]["total"].result == round_half_up(sum(components.values()))

    def test_sum_step_rounds_once(self):
        """Three parts of 1.005 show as 1.01 each but do not add up to 3.03."""
        parts = {label: AuditedValue(1.005, None) for label in ("a", "b", "c")}
        step = _sum_step("Total", parts, "g").step
        assert list(step.inputs.values()) == [1.01, 1.01, 1.01]
        assert step.result == round_half_up(1.005 + 1.005 + 1.005)
        assert step.result != 3.03

    def test_grazing_surcharge_step(self, dairy_profile, standard_ration):
        """The supply surcharge appears once in the totals."""
        state = LactationState(parity=3, days_in_milk=150, is_grazing=True)
        audit = cvb_calculate_auditable_ration(dairy_profile, state, standard_ration, ProfileDefaultRequirement())
        assert audit.supply_totals["grazing_surcharge"].result == 1175.0
        assert audit.supply_totals["vem"].result == pytest.approx(
            audit.supply_totals["vem_feeds"].result + 1175.0
        )

    def test_balances_and_discrepancies(self, dairy_profile, mid_lactation, standard_ration):
        """Balances and open discrepancies are carried."""
        audit = cvb_calculate_auditable_ration(dairy_profile, mid_lactation, standard_ration,
                                               ProfileDefaultRequirement())
        assert len(audit.balances) == 6
        assert all(b.calculation.formula == "Balance = supply - requirement" for b in audit.balances)
        assert audit.open_discrepancies == unconfirmed_discrepancies()
        assert audit.summary["total_vem_required"] == 21000


class TestAuditReport:
    """Plain-text audit report"""

    def test_report_is_reproducible(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """Same inputs give the same report."""
        args = (dairy_profile, mid_lactation, standard_ration, DynamicRequirement(), milk_record)
        first = cvb_generate_audit_report(*args)
        second = cvb_generate_audit_report(*args)
        assert first == second
        assert "Generated:" not in first

    def test_report_timestamp_from_caller(self, dairy_profile, mid_lactation, standard_ration):
        """The timestamp is printed only when given."""
        report = cvb_generate_audit_report(dairy_profile, mid_lactation, standard_ration,
                                           ProfileDefaultRequirement(), generated_at="2025-03-01T10:00:00")
        assert "Generated: 2025-03-01T10:00:00" in report

    def test_section_order(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """Sections appear in a fixed order."""
        report = cvb_generate_audit_report(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                           milk_record)
        headings = [
            "RATION CALCULATION - AUDIT REPORT", "--- INPUTS ---", "--- BASIS ---",
            "--- VEM REQUIREMENT (step by step) ---", "--- DVE REQUIREMENT (step by step) ---",
            "--- VOC CALCULATION ---", "--- FEED CONTRIBUTIONS ---", "--- TOTAL SUPPLY ---",
            "--- BALANCES ---", "--- SUMMARY ---",
        ]
        positions = [report.index(h) for h in headings]
        assert positions == sorted(positions)

    def test_report_content(self, dairy_profile, mid_lactation, milk_record, standard_ration):
        """The report shows inputs, totals and warnings."""
        report = cvb_generate_audit_report(dairy_profile, mid_lactation, standard_ration, DynamicRequirement(),
                                           milk_record)
        assert "VEM maintenance" in report
        # Zero surcharges are left out of the derivation
        assert "VEM pregnancy" not in report
        assert "FPCM: 31.7 kg/day" in report
        assert "WARNING VOC_EXCEEDED" in report
        assert "Coefficients awaiting expert confirmation" in report

    def test_report_empty_ration(self, dairy_profile, mid_lactation):
        """An empty ration still gives a full report."""
        report = cvb_generate_audit_report(dairy_profile, mid_lactation, [], ProfileDefaultRequirement())
        assert "No feeds entered" in report


class TestErrorHandling:
    """Error categorization for presentation layers"""

    def test_input_validation_error(self):
        """Input errors are categorised by field."""
        info = categorize_calculation_error(InputValidationError("weight_kg", "must be > 0, got 0"), "C1")
        assert info["category"] == "INPUT_VALIDATION"
        assert info["field"] == "weight_kg"
        assert info["severity"] == "LOW"

    def test_pydantic_validation_error(self):
        """Model validation errors are input errors."""
        with pytest.raises(ValidationError) as exc:
            AnimalProfile(name="Koe", weight_kg=-1, vem_target=1, dve_target_grams=1, max_bds_kg=1)
        info = categorize_calculation_error(exc.value, "C2")
        assert info["category"] == "INPUT_VALIDATION"
        assert "weight_kg" in info["field"]

    def test_arithmetic_error(self):
        """Arithmetic errors are calculation errors."""
        info = categorize_calculation_error(ZeroDivisionError("division by zero"))
        assert info["category"] == "CALCULATION"

    def test_unknown_error(self):
        """Other errors fall back to a generic category."""
        info = categorize_calculation_error(RuntimeError("boom"), "C3")
        assert info["category"] == "UNKNOWN"
        assert "C3" in info["suggested_action"]

    def test_user_friendly_response(self):
        """Responses carry a message and a suggestion."""
        info = categorize_calculation_error(InputValidationError("milk", "required"), "C4")
        response = create_user_friendly_error_response(info, "C4")
        assert response["status"] == "ERROR"
        assert response["error"]["support_reference"] == "REF-C4-VALIDATION_ERROR"
        assert response["error"]["field"] == "milk"


class TestLogging:
    """Rotating file logging setup"""

    def test_setup_creates_log_files(self, tmp_path):
        """Setup creates the log files."""
        handlers = setup_logging(tmp_path)
        try:
            assert set(handlers) == {"app", "calculation", "error", "console"}
            assert (tmp_path / "calculation.log").exists()
        finally:
            for handler in handlers.values():
                handler.close()

    def test_calculation_loggers_use_calculation_log(self):
        """Calculation loggers write to the calculation log."""
        logger = get_logger("tests.ration_audit")
        files = [Path(h.baseFilename).name for h in logger.handlers if hasattr(h, "baseFilename")]
        assert "calculation.log" in files
        assert "error.log" in files

    def test_log_error_includes_context(self, caplog):
        """Logged errors include their context."""
        logger = get_logger("tests.ration_errors")
        with caplog.at_level(logging.ERROR):
            try:
                raise ValueError("bad value")
            except ValueError as e:
                log_error(logger, e, "unit test")
        assert "Error: bad value | Context: unit test" in caplog.text

    def test_other_loggers_use_app_log(self):
        """Other loggers write to the app log."""
        logger = get_logger("tests.other")
        files = [Path(h.baseFilename).name for h in logger.handlers if hasattr(h, "baseFilename")]
        assert "app.log" in files


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
