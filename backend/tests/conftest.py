"""
Shared fixtures for the ration engine tests
"""
import os
import tempfile

# Log files go to a scratch directory, set before the engine modules are imported
os.environ.setdefault("RATION_LOG_DIR", tempfile.mkdtemp(prefix="ration-logs-"))

import pytest

from app.models import AnimalProfile, Feed, FeedInput, LactationState, MilkProductionRecord


@pytest.fixture
def dairy_profile():
    return AnimalProfile(
        name="Melkkoe 650 kg",
        weight_kg=650,
        vem_target=21000,
        dve_target_grams=1800,
        max_bds_kg=23,
    )


@pytest.fixture
def mid_lactation():
    return LactationState(parity=3, days_in_milk=150, days_pregnant=0, is_lactating=True)


@pytest.fixture
def milk_record():
    return MilkProductionRecord(milk_kg=30, fat_percent=4.4, protein_percent=3.5, ureum=22)


@pytest.fixture
def grass_silage():
    return Feed(
        name="graskuil",
        display_name="Graskuil",
        vem_per_unit=900,
        dve_per_unit=60,
        oeb_per_unit=40,
        ca_per_unit=5,
        p_per_unit=4,
        sw_per_kg_ds=2.8,
        vw_per_kg_ds=1.05,
        default_ds_percent=45,
        basis="per kg DS",
        category="roughage",
    )


@pytest.fixture
def maize_silage():
    return Feed(
        name="maiskuil",
        display_name="Maïskuil",
        vem_per_unit=980,
        dve_per_unit=50,
        oeb_per_unit=-35,
        ca_per_unit=2,
        p_per_unit=2,
        sw_per_kg_ds=1.6,
        default_ds_percent=35,
        basis="per kg product",
    )


@pytest.fixture
def concentrate():
    return Feed(
        name="standaardbrok",
        display_name="Standaardbrok",
        vem_per_unit=1000,
        dve_per_unit=100,
        oeb_per_unit=10,
        ca_per_unit=8,
        p_per_unit=5,
        sw_per_kg_ds=0.0,
        default_ds_percent=88,
        basis="per kg DS",
        category="concentrate",
    )


@pytest.fixture
def standard_ration(grass_silage, maize_silage, concentrate):
    # 12 + 7 + 6 = 25 kg DS
    return [
        FeedInput(feed=grass_silage, amount_kg=12),
        FeedInput(feed=maize_silage, amount_kg=20),
        FeedInput(feed=concentrate, amount_kg=6),
    ]
