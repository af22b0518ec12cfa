import math

import pytest

from biostate.engine.kinetics import (
    DEFAULT_PROFILE,
    KineticsTable,
    PharmacokineticProfile,
    apply_absorption_dampening,
    calculate_concentration,
    concentration_curve,
    determine_phase,
    lambert_w0,
    sample_curve,
)


CAFFEINE = PharmacokineticProfile(peak_minutes=45, half_life_minutes=300, bioavailability_percent=100)


# ============================================================
# FIRST ORDER
# ============================================================

def test_caffeine_three_hours_after_dose():
    concentration = calculate_concentration(180, CAFFEINE, 100)

    # Elimination runs from Tmax, not from ingestion
    assert concentration == pytest.approx(100 * 0.5 ** ((180 - 45) / 300))
    assert round(concentration, 1) == 73.2
    assert determine_phase(180, 45, concentration) == "eliminating"


def test_bundled_caffeine_profile(kinetics):
    assert kinetics.profile_for("caffeine") == CAFFEINE


def test_linear_absorption_to_bioavailability():
    profile = PharmacokineticProfile(peak_minutes=60, half_life_minutes=240, bioavailability_percent=80)
    assert calculate_concentration(30, profile) == pytest.approx(40)
    assert calculate_concentration(60, profile) == pytest.approx(80)


def test_before_ingestion_is_zero():
    assert calculate_concentration(-5, CAFFEINE) == 0.0


def test_non_negative_and_strictly_decreasing_after_peak():
    previous = None
    for minutes in range(0, 10_000, 15):
        value = calculate_concentration(minutes, CAFFEINE, 100)
        assert value >= 0
        if minutes > CAFFEINE.peak_minutes:
            assert value < previous
        previous = value


def test_tends_to_zero():
    assert calculate_concentration(20_000, CAFFEINE) < 1e-10


def test_missing_parameters_use_defaults():
    profile = PharmacokineticProfile(peak_minutes=0, half_life_minutes=0)
    assert calculate_concentration(30, profile) == pytest.approx(50)
    assert calculate_concentration(60 + 240, profile) == pytest.approx(50)


# ============================================================
# PHASES
# ============================================================

@pytest.mark.parametrize("minutes,concentration,phase", [
    (10, 20.0, "absorbing"),
    (45, 100.0, "peak"),
    (75, 90.0, "peak"),
    (76, 89.0, "eliminating"),
    (600, 0.9, "cleared"),
])
def test_phase_boundaries(minutes, concentration, phase):
    assert determine_phase(minutes, 45, concentration) == phase


# ============================================================
# SATURABLE ABSORPTION
# ============================================================

@pytest.mark.parametrize("x", [0.01, 0.5, 1.0, 5.0, 50.0, 1e6])
def test_lambert_w0_inverts_w_exp_w(x):
    w = lambert_w0(x)
    assert w * math.exp(w) == pytest.approx(x, rel=1e-9)


def test_lambert_w0_special_values():
    assert lambert_w0(0) == 0
    assert lambert_w0(math.e) == 1
    assert lambert_w0(-1 / math.e) == -1
    assert math.isnan(lambert_w0(-1))


def test_dampening_above_three_times_rda():
    assert apply_absorption_dampening(30, 11) == 30
    assert apply_absorption_dampening(50, 11) == pytest.approx(33 + 11 * math.log(1 + 17 / 11))
    assert apply_absorption_dampening(50, None) == 50


def test_dampening_scales_concentration():
    zinc = PharmacokineticProfile(peak_minutes=120, half_life_minutes=600, bioavailability_percent=60, rda_amount=11)
    low = calculate_concentration(120, zinc, 20)
    high = calculate_concentration(120, zinc, 100)
    assert low == pytest.approx(60)
    assert high < low


def test_michaelis_menten_ramps_to_peak(kinetics):
    iron = kinetics.profile_for("iron")
    assert iron.kinetics_type == "michaelis_menten"

    values = [calculate_concentration(m, iron, 65) for m in (15, 60, 119)]
    assert all(0 <= v <= iron.bioavailability_percent for v in values)
    assert calculate_concentration(iron.peak_minutes, iron, 65) == pytest.approx(iron.bioavailability_percent)
    assert calculate_concentration(iron.peak_minutes + 360, iron, 65) == pytest.approx(iron.bioavailability_percent / 2)


def test_michaelis_menten_without_parameters_is_first_order():
    profile = PharmacokineticProfile(kinetics_type="michaelis_menten")
    assert calculate_concentration(30, profile, 100) == pytest.approx(50)


# ============================================================
# TABLE
# ============================================================

def test_profile_lookup_falls_back_to_category_then_default():
    table = KineticsTable(
        profiles={"caffeine": CAFFEINE},
        category_defaults={"mineral": PharmacokineticProfile(peak_minutes=120)},
    )
    assert table.profile_for("caffeine") is CAFFEINE
    assert table.profile_for("boron", "mineral").peak_minutes == 120
    assert table.profile_for("mystery") == DEFAULT_PROFILE


def test_bundled_cofactors_and_safety_warnings(kinetics):
    assert kinetics.cofactors_for("zinc") == ["copper"]
    assert kinetics.cofactors_for("vitamin_d3") == ["vitamin_k2", "magnesium", "calcium"]
    assert kinetics.safety_warning_for("iron").startswith("Caution: Only supplement if Ferritin")
    assert kinetics.safety_warning_for(None) is None


def test_concentration_curve_samples_hourly():
    curve = concentration_curve(CAFFEINE, interval_minutes=60, duration_minutes=24 * 60)
    assert len(curve) == 25
    assert curve[0] == 0.0


def test_sample_curve_interpolates_between_samples():
    curve = concentration_curve(CAFFEINE, 100, interval_minutes=15, duration_minutes=240)

    assert sample_curve(curve, 15, 45) == 100.0
    assert sample_curve(curve, 15, 180) == pytest.approx(calculate_concentration(180, CAFFEINE, 100))
    # Absorption is linear, so interpolation is exact before the peak
    assert sample_curve(curve, 15, 22.5) == pytest.approx(50)
    assert sample_curve(curve, 15, -1) == 0.0
    assert sample_curve(curve, 15, 10_000) == curve[-1]
