"""Prime Check connector: onboarding answers -> scoring Observations.

The Prime Check is the onboarding questionnaire, one section per domain:

    {
      "completed_at": "2026-01-10T09:00:00Z",
      "heart": {"cardio_self_rating": "average",
                "blood_pressure": {"systolic": 128, "diastolic": 82,
                                   "measured_date": "2025-12"},
                "resting_heart_rate": {"bpm": 62, "source": "wearable"}},
      "frame": {"pushup_capability": "16-30", "pain_limitation": "none",
                "waist_cm": 84},
      "metabolism": {"labs": {"hba1c_percent": 5.3, "test_date": "2025-11-02"},
                     "diagnoses": ["none"], "family_history": ["diabetes"]},
      "recovery": {"sleep_duration": "7-8h", "sleep_regularity": true,
                   "insomnia_frequency": "<1"},
      "mind": {"focus_stability": "mostly_stable", "brain_fog": "rarely"}
    }

Identity (height cm, weight kg, age, sex) is supplied separately. Quick-check
answers become ``self_report_proxy`` observations, measurements become
``measured_self_report`` (``device`` for wearable resting heart rate) and lab
values become ``lab``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from primecard.domains.health.domain_logic.driver_scorers import (
    calculate_bmi,
    calculate_waist_to_height,
    derive_metabolic_risk_category,
)
from primecard.domains.health.domain_logic.scorecard_models import (
    Observation,
    UserContext,
    ensure_utc,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

ENTRY_METHOD = "onboarding_prime_check"

# Representative bpm for each resting heart rate answer bucket.
RHR_RANGE_MIDPOINTS: dict[str, int] = {
    "<55": 52,
    "55-64": 60,
    "65-74": 70,
    "75-84": 80,
    "85+": 90,
}
DEFAULT_RHR_BPM = 70

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _num(val: Any) -> float | None:
    """Positive number from a form value, else None."""
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(val)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def to_timestamp(raw: Any, fallback: datetime) -> datetime:
    """Interpret a form date.

    ``YYYY-MM`` maps to the 15th at 12:00 UTC, ``YYYY-MM-DD`` to 12:00 UTC and
    full ISO timestamps are parsed as-is. Anything else uses ``fallback``.
    """
    if not raw or not isinstance(raw, str):
        return fallback
    text = raw.strip()
    try:
        if "T" in text:
            return parse_timestamp(text)
        if _MONTH_RE.match(text):
            year, month = (int(p) for p in text.split("-"))
            return datetime(year, month, 15, 12, tzinfo=timezone.utc)
        if _DAY_RE.match(text):
            year, month, day = (int(p) for p in text.split("-"))
            return datetime(year, month, day, 12, tzinfo=timezone.utc)
    except ValueError:
        logger.warning("Unparseable Prime Check date %r; using completion time", raw)
        return fallback
    return fallback


def _obs(
    driver_key: str,
    value: Any,
    measured_at: datetime,
    source_type: str,
    *,
    unit: str | None = None,
    entry_method: str = ENTRY_METHOD,
    **metadata: Any,
) -> Observation:
    meta = {"entry_method": entry_method}
    meta.update({k: v for k, v in metadata.items() if v is not None})
    return Observation(
        driver_key=driver_key,
        value=value,
        measured_at=measured_at,
        source_type=source_type,
        unit=unit,
        metadata=meta,
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def convert_heart(heart: dict[str, Any], completed_at: datetime) -> list[Observation]:
    observations: list[Observation] = []

    if heart.get("cardio_self_rating"):
        observations.append(
            _obs("cardio_fitness", heart["cardio_self_rating"], completed_at, "self_report_proxy")
        )

    bp = heart.get("blood_pressure") or {}
    systolic = _num(bp.get("systolic"))
    if systolic is not None:
        observations.append(
            _obs(
                "bp",
                systolic,
                to_timestamp(bp.get("measured_date"), completed_at),
                "measured_self_report",
                unit="mmHg",
                diastolic=_num(bp.get("diastolic")),
            )
        )

    rhr = heart.get("resting_heart_rate") or {}
    if rhr:
        bpm = _num(rhr.get("bpm"))
        range_used = bpm is None and bool(rhr.get("range"))
        if bpm is None:
            bpm = RHR_RANGE_MIDPOINTS.get(rhr.get("range"), DEFAULT_RHR_BPM)
        source_type = "device" if rhr.get("source") == "wearable" else "measured_self_report"
        observations.append(
            _obs(
                "rhr",
                bpm,
                to_timestamp(rhr.get("measured_date"), completed_at),
                source_type,
                unit="bpm",
                source_declared=rhr.get("source"),
                range_used=range_used,
            )
        )

    return observations


def convert_frame(
    frame: dict[str, Any], identity: dict[str, Any], completed_at: datetime
) -> list[Observation]:
    observations: list[Observation] = []

    if frame.get("pushup_capability"):
        observations.append(
            _obs("pushups", frame["pushup_capability"], completed_at, "self_report_proxy")
        )
    if frame.get("pain_limitation"):
        observations.append(
            _obs("pain_limitation", frame["pain_limitation"], completed_at, "self_report_proxy")
        )

    height = _num(identity.get("height"))
    waist = _num(frame.get("waist_cm"))
    if waist is not None and height is not None:
        observations.append(
            _obs(
                "waist_to_height",
                calculate_waist_to_height(waist, height),
                completed_at,
                "measured_self_report",
                waist_cm=waist,
                height_cm=height,
                measured_correctly=frame.get("waist_measured_correctly"),
            )
        )

    return observations


def convert_identity(identity: dict[str, Any], completed_at: datetime) -> list[Observation]:
    """BMI from identity height and weight; feeds frame only as a fallback."""
    height = _num(identity.get("height"))
    weight = _num(identity.get("weight"))
    if height is None or weight is None:
        return []
    return [
        _obs(
            "bmi",
            calculate_bmi(weight, height),
            completed_at,
            "measured_self_report",
            entry_method="onboarding_identity",
            height_cm=height,
            weight_kg=weight,
        )
    ]


_LAB_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("hba1c_percent", "hba1c", "%"),
    ("apob_mg_dl", "apob", "mg/dL"),
    ("hscrp_mg_l", "hscrp", "mg/L"),
)


def convert_metabolism(metabolism: dict[str, Any], completed_at: datetime) -> list[Observation]:
    observations: list[Observation] = []

    labs = metabolism.get("labs") or {}
    if labs:
        lab_date = to_timestamp(labs.get("test_date"), completed_at)
        for field_name, driver_key, unit in _LAB_FIELDS:
            value = _num(labs.get(field_name))
            if value is not None:
                observations.append(_obs(driver_key, value, lab_date, "lab", unit=unit))

    diagnoses = metabolism.get("diagnoses")
    family_history = metabolism.get("family_history")
    if diagnoses or family_history:
        observations.append(
            _obs(
                "metabolic_risk",
                derive_metabolic_risk_category(diagnoses or [], family_history or []),
                completed_at,
                "self_report_proxy",
                diagnoses=diagnoses,
                family_history=family_history,
                medications=metabolism.get("medications"),
            )
        )

    return observations


def convert_recovery(recovery: dict[str, Any], completed_at: datetime) -> list[Observation]:
    observations: list[Observation] = []

    if recovery.get("sleep_duration"):
        observations.append(
            _obs("sleep_duration", recovery["sleep_duration"], completed_at, "self_report_proxy")
        )
    regularity = recovery.get("sleep_regularity")
    if regularity is not None:
        value = ("true" if regularity else "false") if isinstance(regularity, bool) else str(regularity)
        observations.append(_obs("sleep_regularity", value, completed_at, "self_report_proxy"))
    if recovery.get("insomnia_frequency"):
        observations.append(
            _obs("insomnia", recovery["insomnia_frequency"], completed_at, "self_report_proxy")
        )

    return observations


def convert_mind(mind: dict[str, Any], completed_at: datetime) -> list[Observation]:
    observations: list[Observation] = []

    if mind.get("focus_stability"):
        observations.append(
            _obs("focus_stability", mind["focus_stability"], completed_at, "self_report_proxy")
        )
    if mind.get("brain_fog"):
        observations.append(_obs("brain_fog", mind["brain_fog"], completed_at, "self_report_proxy"))

    return observations


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def convert_prime_check_to_observations(
    prime_check: dict[str, Any],
    identity: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> list[Observation]:
    """Convert a Prime Check answer document into Observations.

    Answers without a date of their own are stamped with ``completed_at``,
    or ``now`` when the check has no completion time.
    """
    identity = identity or {}
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    completed_at = to_timestamp(prime_check.get("completed_at"), now)

    observations: list[Observation] = []
    if prime_check.get("heart"):
        observations.extend(convert_heart(prime_check["heart"], completed_at))
    if prime_check.get("frame"):
        observations.extend(convert_frame(prime_check["frame"], identity, completed_at))
        observations.extend(convert_identity(identity, completed_at))
    if prime_check.get("metabolism"):
        observations.extend(convert_metabolism(prime_check["metabolism"], completed_at))
    if prime_check.get("recovery"):
        observations.extend(convert_recovery(prime_check["recovery"], completed_at))
    if prime_check.get("mind"):
        observations.extend(convert_mind(prime_check["mind"], completed_at))

    logger.debug("Converted Prime Check into %d observations", len(observations))
    return observations


def user_context_from_identity(identity: dict[str, Any] | None) -> UserContext:
    identity = identity or {}
    age = identity.get("age")
    sex = identity.get("sex")
    return UserContext(
        age=int(age) if isinstance(age, (int, float)) and not isinstance(age, bool) else None,
        sex=str(sex) if sex else None,
    )
