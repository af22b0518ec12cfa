"""
Pharmacokinetic Model

Estimates plasma concentration of a single dose over time, as a percentage of
its bioavailability-scaled peak.

Two absorption models are supported:
- first_order: linear ramp to peak, then exponential elimination
  C(t) = Cmax * e^(-k * (t - Tmax)), k = ln(2) / t½
- michaelis_menten: capacity-limited absorption for saturable transporters
  (Vitamin C, Magnesium, Iron), solved in closed form with Lambert W:
  A(t) = Km * W((A0/Km) * e^((A0 - Vmax*t)/Km))

Per-compound parameters are lookup data kept in data/kinetics.json and loaded
once per process.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional
import json
import logging
import math

from biostate.config import get_settings

logger = logging.getLogger(__name__)


DEFAULT_PEAK_MINUTES = 60.0
DEFAULT_HALF_LIFE_MINUTES = 240.0
DEFAULT_BIOAVAILABILITY_PERCENT = 100.0

# Below this a compound is considered cleared
DETECTION_FLOOR_PERCENT = 1.0
# Minutes after Tmax still reported as "peak"
PEAK_WINDOW_MINUTES = 30.0

BUNDLED_TABLE = Path(__file__).resolve().parent.parent / "data" / "kinetics.json"


@dataclass(frozen=True)
class PharmacokineticProfile:
    """Static PK parameters for one compound."""
    peak_minutes: float = DEFAULT_PEAK_MINUTES
    half_life_minutes: float = DEFAULT_HALF_LIFE_MINUTES
    bioavailability_percent: float = DEFAULT_BIOAVAILABILITY_PERCENT
    kinetics_type: str = "first_order"  # "first_order" or "michaelis_menten"
    vmax: Optional[float] = None  # mg/min
    km: Optional[float] = None  # mg
    rda_amount: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PharmacokineticProfile":
        return cls(
            peak_minutes=data.get("peak_minutes", DEFAULT_PEAK_MINUTES),
            half_life_minutes=data.get("half_life_minutes", DEFAULT_HALF_LIFE_MINUTES),
            bioavailability_percent=data.get("bioavailability_percent", DEFAULT_BIOAVAILABILITY_PERCENT),
            kinetics_type=data.get("kinetics_type", "first_order"),
            vmax=data.get("vmax"),
            km=data.get("km"),
            rda_amount=data.get("rda_amount"),
        )


DEFAULT_PROFILE = PharmacokineticProfile()


class KineticsTable:
    """PK profiles keyed by supplement ID, with category fallbacks, plus the
    co-factor and safety-warning lookups used by the optimizer."""

    def __init__(
        self,
        profiles: Dict[str, PharmacokineticProfile],
        category_defaults: Optional[Dict[str, PharmacokineticProfile]] = None,
        cofactors: Optional[Dict[str, List[str]]] = None,
        safety_warnings: Optional[Dict[str, str]] = None
    ):
        self.profiles = profiles
        self.category_defaults = category_defaults or {}
        self.cofactors = cofactors or {}
        self.safety_warnings = safety_warnings or {}

    @classmethod
    def from_dict(cls, data: dict) -> "KineticsTable":
        return cls(
            profiles={k: PharmacokineticProfile.from_dict(v) for k, v in data.get("profiles", {}).items()},
            category_defaults={
                k: PharmacokineticProfile.from_dict(v) for k, v in data.get("category_defaults", {}).items()
            },
            cofactors={k: list(v) for k, v in data.get("cofactors", {}).items()},
            safety_warnings=dict(data.get("safety_warnings", {})),
        )

    @classmethod
    def from_file(cls, path: Path) -> "KineticsTable":
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def profile_for(self, supplement_id: str, category: Optional[str] = None) -> PharmacokineticProfile:
        if supplement_id in self.profiles:
            return self.profiles[supplement_id]
        if category and category in self.category_defaults:
            return self.category_defaults[category]
        return DEFAULT_PROFILE

    def cofactors_for(self, supplement_id: str) -> List[str]:
        return self.cofactors.get(supplement_id, [])

    def safety_warning_for(self, safety_category: Optional[str], name: str = "") -> Optional[str]:
        if not safety_category:
            return None
        if safety_category in self.safety_warnings:
            return self.safety_warnings[safety_category]
        if safety_category == "hard_limit":
            return f"Caution: {name} has a hard safety limit."
        return None


@lru_cache
def load_kinetics_table(path: str = "") -> KineticsTable:
    table_path = Path(path) if path else BUNDLED_TABLE
    table = KineticsTable.from_file(table_path)
    logger.info(f"Loaded {len(table.profiles)} pharmacokinetic profiles from {table_path.name}")
    return table


def get_kinetics_table() -> KineticsTable:
    return load_kinetics_table(get_settings().kinetics_table_path)


# ============================================================================
# Concentration math
# ============================================================================

def lambert_w0(x: float) -> float:
    """
    Principal branch of the Lambert W function, W(x) * e^W(x) = x.

    Uses Halley's method; converges in a handful of iterations for the
    arguments produced by Michaelis-Menten absorption.
    """
    if math.isnan(x):
        return math.nan
    if x == 0:
        return 0.0
    if x == math.e:
        return 1.0
    if x < -1 / math.e:
        return math.nan
    if x == -1 / math.e:
        return -1.0

    if x < 1:
        w = x
    elif x < 10:
        w = math.log(x)
    else:
        lnx = math.log(x)
        lnlnx = math.log(lnx)
        w = lnx - lnlnx + lnlnx / lnx

    for _ in range(50):
        ew = math.exp(w)
        f = w * ew - x
        if abs(f) < 1e-12 * abs(x):
            break
        fp = ew * (w + 1)
        fpp = ew * (w + 2)
        denom = 2 * fp * fp - f * fpp
        if denom == 0:
            w -= f / fp
        else:
            w -= 2 * f * fp / denom

    return w


def michaelis_menten_remaining(dose: float, vmax: float, km: float, minutes: float) -> float:
    """Amount still unabsorbed after `minutes`, Km * W((A0/Km) * e^((A0 - Vmax*t)/Km))."""
    if dose <= 0:
        return 0.0
    if minutes <= 0:
        return dose

    try:
        x = (dose / km) * math.exp((dose - vmax * minutes) / km)
    except OverflowError:
        return dose
    if math.isinf(x):
        return dose
    if x < 0:
        return 0.0

    result = km * lambert_w0(x)
    return min(max(result, 0.0), dose)


def michaelis_menten_absorbed(dose: float, vmax: float, km: float, minutes: float) -> float:
    return dose - michaelis_menten_remaining(dose, vmax, km, minutes)


def apply_absorption_dampening(dose: float, rda: Optional[float]) -> float:
    """
    Logarithmic dampening for doses above 3x RDA:
    effective = 3*RDA + RDA*ln(1 + excess/RDA)
    """
    if not rda or rda <= 0:
        return dose
    threshold = 3 * rda
    if dose <= threshold:
        return dose
    excess = dose - threshold
    return threshold + rda * math.log(1 + excess / rda)


def _first_order(minutes: float, profile: PharmacokineticProfile, cmax: float) -> float:
    peak = profile.peak_minutes if profile.peak_minutes > 0 else DEFAULT_PEAK_MINUTES
    half_life = profile.half_life_minutes if profile.half_life_minutes > 0 else DEFAULT_HALF_LIFE_MINUTES

    if minutes < peak:
        return (minutes / peak) * cmax

    k = math.log(2) / half_life
    return cmax * math.exp(-k * (minutes - peak))


def _michaelis_menten(minutes: float, dose: float, profile: PharmacokineticProfile, cmax: float) -> float:
    peak = profile.peak_minutes if profile.peak_minutes > 0 else DEFAULT_PEAK_MINUTES

    if minutes >= peak:
        # Elimination stays first-order from the achieved peak
        return _first_order(minutes, profile, cmax)

    at_peak = michaelis_menten_absorbed(dose, profile.vmax, profile.km, peak)
    if at_peak <= 0:
        return 0.0
    return (michaelis_menten_absorbed(dose, profile.vmax, profile.km, minutes) / at_peak) * cmax


def calculate_concentration(
    minutes_since_ingestion: float,
    profile: PharmacokineticProfile,
    dose: Optional[float] = None
) -> float:
    """
    Concentration as a percentage, peaking at the profile's bioavailability.

    The value is not floored at the detection threshold so the curve stays
    strictly decreasing after Tmax; callers classify it with determine_phase.
    """
    if minutes_since_ingestion < 0:
        return 0.0

    cmax = profile.bioavailability_percent
    has_mm_params = bool(profile.vmax and profile.km and profile.vmax > 0 and profile.km > 0)

    if profile.kinetics_type == "michaelis_menten" and has_mm_params and dose:
        return _michaelis_menten(minutes_since_ingestion, dose, profile, cmax)

    concentration = _first_order(minutes_since_ingestion, profile, cmax)
    if profile.rda_amount and dose:
        concentration *= apply_absorption_dampening(dose, profile.rda_amount) / dose
    return concentration


def determine_phase(minutes_since_ingestion: float, peak_minutes: float, concentration_percent: float) -> str:
    if concentration_percent < DETECTION_FLOOR_PERCENT:
        return "cleared"
    if minutes_since_ingestion < peak_minutes:
        return "absorbing"
    if minutes_since_ingestion <= peak_minutes + PEAK_WINDOW_MINUTES:
        return "peak"
    return "eliminating"


def concentration_curve(
    profile: PharmacokineticProfile,
    dose: Optional[float] = None,
    interval_minutes: int = 60,
    duration_minutes: int = 24 * 60
) -> List[float]:
    """Concentration sampled every `interval_minutes` from ingestion."""
    return [
        calculate_concentration(m, profile, dose)
        for m in range(0, duration_minutes + 1, interval_minutes)
    ]


def sample_curve(curve: List[float], interval_minutes: int, minutes: float) -> float:
    """Value of a sampled curve at `minutes` after ingestion, linearly interpolated."""
    if minutes < 0 or not curve:
        return 0.0
    position = minutes / interval_minutes
    index = int(position)
    if index >= len(curve) - 1:
        return curve[-1]
    return curve[index] + (curve[index + 1] - curve[index]) * (position - index)
