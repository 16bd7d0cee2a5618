"""Tests for composite aggregation, explanations, derived atoms and risk flags."""

from __future__ import annotations

import pytest

from primecard.domains.health.domain_logic.aggregator import (
    build_evidence_summary,
    build_how_calculated,
    calculate_prime_confidence,
    calculate_prime_score,
    derive_domain_atoms,
    extract_risk_flags,
    source_label,
)
from primecard.domains.health.domain_logic.domain_score import select_domain_results
from primecard.domains.health.domain_logic.scorecard_engine import score_observations
from primecard.domains.health.domain_logic.scorecard_models import (
    PRIME_DOMAINS,
    PRIOR_EXPLANATION,
)

EQUAL_WEIGHTS = {d: 0.2 for d in PRIME_DOMAINS}


def _resolved(registry, observations, now):
    _, resolved = score_observations(observations, registry, None, now)
    return resolved


class TestPrimeScore:
    def test_weighted_sum(self):
        scores = {"heart": 80, "frame": 60, "metabolism": 55, "recovery": 70, "mind": 50}
        assert calculate_prime_score(scores, EQUAL_WEIGHTS) == 63.0

    def test_rounds_half_up(self):
        scores = {"heart": 76.7, "frame": 50, "metabolism": 55, "recovery": 50, "mind": 50}
        # 0.2 * 281.7 = 56.34
        assert calculate_prime_score(scores, EQUAL_WEIGHTS) == 56.3

    def test_monotonic_in_each_domain(self):
        base = {"heart": 50, "frame": 50, "metabolism": 50, "recovery": 50, "mind": 50}
        baseline = calculate_prime_score(base, EQUAL_WEIGHTS)
        for domain in base:
            improved = dict(base, **{domain: 90})
            assert calculate_prime_score(improved, EQUAL_WEIGHTS) > baseline

    def test_bounds(self):
        assert calculate_prime_score({d: 100 for d in EQUAL_WEIGHTS}, EQUAL_WEIGHTS) == 100
        assert calculate_prime_score({d: 0 for d in EQUAL_WEIGHTS}, EQUAL_WEIGHTS) == 0


class TestPrimeConfidence:
    def test_weighted_mean(self):
        confidences = {"heart": 47, "frame": 20, "metabolism": 40, "recovery": 20, "mind": 35}
        assert calculate_prime_confidence(confidences, EQUAL_WEIGHTS) == 32

    def test_all_priors(self):
        assert calculate_prime_confidence({d: 20 for d in EQUAL_WEIGHTS}, EQUAL_WEIGHTS) == 20

    def test_zero_weights(self):
        assert calculate_prime_confidence({"heart": 90}, {"heart": 0.0}) == 50


class TestHowCalculated:
    def test_driver_lines(self, default_registry, make_obs, now):
        results, _ = score_observations(
            [make_obs("bp", 125, "measured_self_report"), make_obs("cardio_fitness", "average")],
            default_registry,
            None,
            now,
        )
        lines = build_how_calculated("heart", results, default_registry, using_prior=False)
        assert lines == [
            "Blood pressure: Your reading (score: 85)",
            "Cardio self-rating: Quick check (score: 60)",
        ]

    def test_prior_line(self, default_registry):
        assert build_how_calculated("mind", [], default_registry, using_prior=True) == [
            PRIOR_EXPLANATION
        ]

    def test_source_label_override(self, default_registry):
        assert source_label("bp", "device", default_registry) == "Connected cuff"
        assert source_label("bp", "lab", default_registry) == "Lab result"
        assert source_label("unknown", "test", default_registry) == "Objective test"


class TestEvidenceSummary:
    def test_used_missing_and_suppressed(self, default_registry, make_obs, now):
        results, _ = score_observations(
            [make_obs("body_fat", 18, "image_estimate"), make_obs("bmi", 27, "measured_self_report")],
            default_registry,
            None,
            now,
        )
        kept, suppressed = select_domain_results("frame", results, default_registry)
        summary = build_evidence_summary("frame", kept, suppressed, default_registry)

        assert summary.drivers_used == [
            {
                "driver_key": "body_fat",
                "display_name": "Body fat",
                "source_type": "image_estimate",
                "measured_at": "2026-01-15T12:00:00Z",
                "has_value": True,
            }
        ]
        assert summary.suppressed_drivers == ["bmi"]
        missing = [m["driver_key"] for m in summary.missing_drivers]
        assert missing == ["waist_to_height", "pushups", "pain_limitation", "structural_integrity"]
        assert summary.fastest_upgrade_action == "Measure your waist at the navel"


class TestHeartAtoms:
    def test_bp_crisis_from_systolic(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("bp", 185, "measured_self_report")], now)
        atoms = derive_domain_atoms("heart", resolved, default_registry)
        assert atoms["bp_category"] == "crisis"
        assert atoms["bp_crisis_flag"] is True
        assert extract_risk_flags("heart", resolved, default_registry) == {"bp_crisis_flag": True}

    def test_bp_crisis_from_diastolic(self, default_registry, make_obs, now):
        obs = make_obs("bp", 130, "measured_self_report", metadata={"diastolic": 125})
        resolved = _resolved(default_registry, [obs], now)
        atoms = derive_domain_atoms("heart", resolved, default_registry)
        assert atoms["bp_category"] == "elevated"
        assert atoms["bp_crisis_flag"] is True
        assert extract_risk_flags("heart", resolved, default_registry)["bp_crisis_flag"] is True

    def test_no_bp_no_flag(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("cardio_fitness", "average")], now)
        assert extract_risk_flags("heart", resolved, default_registry) == {}

    def test_rhr_bucket_and_self_rating(self, default_registry, make_obs, now):
        resolved = _resolved(
            default_registry,
            [make_obs("rhr", 62, "device"), make_obs("cardio_fitness", "above_avg")],
            now,
        )
        atoms = derive_domain_atoms("heart", resolved, default_registry)
        assert atoms["rhr_bucket"] == "55-64"
        assert atoms["cardio_self_rating_bucket"] == "above_avg"
        assert "heart_missing_top_action" not in atoms

    def test_missing_top_action_without_bp(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("cardio_fitness", "average")], now)
        atoms = derive_domain_atoms("heart", resolved, default_registry)
        assert atoms["heart_missing_top_action"] == "Add blood pressure"

    def test_missing_top_action_without_device(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("bp", 118, "measured_self_report")], now)
        atoms = derive_domain_atoms("heart", resolved, default_registry)
        assert atoms["heart_missing_top_action"] == "Connect Apple Health"


class TestOtherDomainAtoms:
    def test_frame(self, default_registry, make_obs, now):
        resolved = _resolved(
            default_registry,
            [
                make_obs("waist_to_height", 0.48, "measured_self_report"),
                make_obs("pushups", "6-15"),
                make_obs("pain_limitation", "severe"),
            ],
            now,
        )
        atoms = derive_domain_atoms("frame", resolved, default_registry)
        assert atoms == {
            "waist_to_height": pytest.approx(0.48),
            "strength_bucket": "6-15",
            "limitation_flag": True,
        }
        assert extract_risk_flags("frame", resolved, default_registry) == {"severe_pain_flag": True}

    def test_mild_pain_is_not_severe(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("pain_limitation", "mild")], now)
        assert extract_risk_flags("frame", resolved, default_registry) == {"severe_pain_flag": False}
        assert derive_domain_atoms("frame", resolved, default_registry)["limitation_flag"] is False

    @pytest.mark.parametrize(
        ("category", "diabetes_flag"),
        [("diabetes", True), ("prediabetes", False), ("no_risk", False)],
    )
    def test_diabetes_flag(self, default_registry, make_obs, now, category, diabetes_flag):
        resolved = _resolved(default_registry, [make_obs("metabolic_risk", category)], now)
        flags = extract_risk_flags("metabolism", resolved, default_registry)
        assert flags == {"diabetes_flag": diabetes_flag}

    def test_metabolism(self, default_registry, make_obs, now):
        resolved = _resolved(
            default_registry,
            [make_obs("metabolic_risk", "prediabetes"), make_obs("apob", 85, "lab")],
            now,
        )
        atoms = derive_domain_atoms("metabolism", resolved, default_registry)
        assert atoms == {"labs_present": True, "met_risk_flags": ["prediabetes"]}

    def test_metabolism_no_risk(self, default_registry, make_obs, now):
        resolved = _resolved(default_registry, [make_obs("metabolic_risk", "no_risk")], now)
        atoms = derive_domain_atoms("metabolism", resolved, default_registry)
        assert atoms == {"labs_present": False, "met_risk_flags": []}

    def test_recovery(self, default_registry, make_obs, now):
        resolved = _resolved(
            default_registry,
            [
                make_obs("sleep_duration", "6-7h"),
                make_obs("sleep_regularity", True),
                make_obs("insomnia", "3-4"),
            ],
            now,
        )
        atoms = derive_domain_atoms("recovery", resolved, default_registry)
        assert atoms == {"sleep_bucket": "6-7h", "regularity_flag": True, "insomnia_bucket": "3-4"}

    def test_mind(self, default_registry, make_obs, now):
        resolved = _resolved(
            default_registry,
            [make_obs("pvt_lite", 280, "test"), make_obs("brain_fog", "often")],
            now,
        )
        atoms = derive_domain_atoms("mind", resolved, default_registry)
        assert atoms == {"mind_test_present": True, "fog_bucket": "often"}
        assert extract_risk_flags("mind", resolved, default_registry) == {}
