"""Tests for domain score calculation, priors, suppression and missing evidence."""

from __future__ import annotations

from itertools import combinations

import pytest

from primecard.domains.health.domain_logic.domain_score import (
    calculate_domain_score,
    compute_domain_weights,
    get_fastest_upgrade_action,
    get_missing_drivers,
    get_prior_score,
    select_domain_results,
)
from primecard.domains.health.domain_logic.scorecard_engine import score_observations
from primecard.domains.health.domain_logic.scorecard_models import UserContext


def _results(registry, observations, now):
    results, _ = score_observations(observations, registry, None, now)
    return results


class TestPriorScore:
    def test_base_priors(self, default_registry):
        assert get_prior_score("heart", default_registry) == 50
        assert get_prior_score("metabolism", default_registry) == 55

    def test_no_age(self, default_registry):
        assert get_prior_score("heart", default_registry, UserContext(age=None)) == 50

    def test_young_adult_unchanged(self, default_registry):
        assert get_prior_score("frame", default_registry, UserContext(age=35)) == 50

    def test_age_fifty(self, default_registry):
        assert get_prior_score("heart", default_registry, UserContext(age=55)) == 47

    def test_age_sixty(self, default_registry):
        assert get_prior_score("recovery", default_registry, UserContext(age=62)) == 45

    def test_non_physical_domain_ignores_age(self, default_registry):
        assert get_prior_score("metabolism", default_registry, UserContext(age=70)) == 55
        assert get_prior_score("mind", default_registry, UserContext(age=70)) == 50

    def test_prior_is_used_with_no_evidence(self, default_registry):
        result = calculate_domain_score("heart", [], default_registry, UserContext(age=62))
        assert result.score == 45
        assert result.using_prior is True


class TestWeightAllocation:
    def test_reallocation_and_caps(self, default_registry, make_obs, now):
        # bp 0.30 and cardio 0.10 -> 0.75/0.25, bp capped at 0.5 -> 2/3 and 1/3
        results = _results(
            default_registry,
            [
                make_obs("bp", 125, "measured_self_report"),
                make_obs("cardio_fitness", "average"),
            ],
            now,
        )
        weights = compute_domain_weights("heart", results, default_registry)
        assert weights["bp"] == pytest.approx(2 / 3)
        assert weights["cardio_fitness"] == pytest.approx(1 / 3)

        score = calculate_domain_score("heart", results, default_registry)
        assert score.score == 76.7
        assert score.using_prior is False

    def test_single_driver_gets_full_weight(self, default_registry, make_result):
        weights = compute_domain_weights("heart", [make_result("bp", 85)], default_registry)
        assert weights == {"bp": pytest.approx(1.0)}

    @pytest.mark.parametrize("domain", ["heart", "frame", "metabolism", "recovery", "mind"])
    def test_weights_sum_to_one_for_every_subset(self, default_registry, make_result, domain):
        keys = [d.driver_key for d in default_registry.drivers_for_domain(domain)]
        for size in range(1, len(keys) + 1):
            for subset in combinations(keys, size):
                weights = compute_domain_weights(
                    domain, [make_result(k) for k in subset], default_registry
                )
                assert sum(weights.values()) == pytest.approx(1.0), subset

    def test_no_results(self, default_registry):
        assert compute_domain_weights("heart", [], default_registry) == {}

    def test_other_domain_drivers_are_ignored(self, default_registry, make_result):
        results = [make_result("bp", 85), make_result("hba1c", 20, "lab")]
        score = calculate_domain_score("heart", results, default_registry)
        assert score.score == 85.0

    def test_score_bounded_by_driver_scores(self, small_registry, make_result):
        results = [make_result("alpha", 90), make_result("beta", 10)]
        score = calculate_domain_score("heart", results, small_registry).score
        assert 10 <= score <= 90


class TestFallbackSuppression:
    def test_bmi_suppressed_by_body_fat(self, default_registry, make_obs, now):
        results = _results(
            default_registry,
            [make_obs("body_fat", 18, "image_estimate"), make_obs("bmi", 27, "measured_self_report")],
            now,
        )
        kept, suppressed = select_domain_results("frame", results, default_registry)
        assert [r.driver_key for r in kept] == ["body_fat"]
        assert [r.driver_key for r in suppressed] == ["bmi"]
        assert calculate_domain_score("frame", results, default_registry).score == 92.0

    def test_bmi_used_alone(self, default_registry, make_obs, now):
        results = _results(default_registry, [make_obs("bmi", 27, "measured_self_report")], now)
        kept, suppressed = select_domain_results("frame", results, default_registry)
        assert [r.driver_key for r in kept] == ["bmi"]
        assert suppressed == []
        assert calculate_domain_score("frame", results, default_registry).score == 70.0

    def test_suppression_only_within_domain(self, small_registry, make_result):
        # gamma suppresses fallback in frame; recovery has no fallback driver.
        results = [make_result("gamma", 80), make_result("fallback", 20)]
        kept, suppressed = select_domain_results("frame", results, small_registry)
        assert [r.driver_key for r in kept] == ["gamma"]
        assert [r.driver_key for r in suppressed] == ["fallback"]
        kept, suppressed = select_domain_results("recovery", results, small_registry)
        assert [r.driver_key for r in kept] == ["gamma"]
        assert suppressed == []


class TestMissingDrivers:
    def test_sorted_by_weight(self, default_registry):
        missing = get_missing_drivers("heart", [], default_registry)
        assert [c.driver_key for c in missing] == ["vo2max", "bp", "rhr", "cardio_fitness", "hrv"]

    def test_ties_keep_registry_order(self, default_registry):
        missing = get_missing_drivers("heart", ["vo2max", "bp", "rhr"], default_registry)
        assert [c.driver_key for c in missing] == ["cardio_fitness", "hrv"]

    def test_suppressed_fallback_is_not_missing(self, default_registry):
        missing = get_missing_drivers("frame", ["body_fat"], default_registry)
        assert "bmi" not in [c.driver_key for c in missing]

    def test_fallback_missing_without_suppressor(self, default_registry):
        missing = get_missing_drivers("frame", [], default_registry)
        assert "bmi" in [c.driver_key for c in missing]

    def test_fastest_action_with_body_fat(self, default_registry):
        action = get_fastest_upgrade_action("frame", ["body_fat", "bmi"], default_registry)
        assert action == "Measure your waist at the navel"

    def test_fastest_action_with_bmi_only(self, default_registry):
        action = get_fastest_upgrade_action("frame", ["bmi"], default_registry)
        assert action == "Upload a body photo for a body fat estimate"

    def test_nothing_missing(self, small_registry):
        assert get_fastest_upgrade_action("heart", ["alpha", "beta"], small_registry) is None
