from __future__ import annotations

import pytest

from stepexec.planning.schema import Layer, LayerInfo, Step, StepStatus, Target
from stepexec.planning.scoring import (
    FailureCategory,
    FailureClassifier,
    RegexFailureClassifier,
    ScoringEngine,
    clamp_score,
)


def _step(step_type: str = "create_file", content: str | None = None, **extra) -> Step:
    return Step(id="s1", type=step_type, content=content, **extra)


def _layer(layer: Layer) -> LayerInfo:
    return LayerInfo(target=Target.BACKEND, layer=layer)


def test_success_without_markers_scores_one() -> None:
    assert ScoringEngine().score_success(_step(content="export const x = 1")) == 1


def test_success_with_several_markers_scores_two() -> None:
    content = "interface UserRepository {}\n// value object used by the aggregate root"
    assert ScoringEngine().score_success(_step(content=content)) == 2


def test_failure_categories() -> None:
    engine = ScoringEngine()

    assert engine.score_failure(_step(), "Domain layer violation: external dependencies") == -2
    assert engine.score_failure(_step(), "Quality checks failed\nTest: FAILED") == -1
    assert engine.score_failure(_step(), "git commit failed: index.lock") == -1
    assert engine.score_failure(_step(), "the moon is in the wrong phase") == 0


def test_refactor_without_markers_is_catastrophic() -> None:
    step = _step("refactor_file", content="just replace the old code")

    assert ScoringEngine().score_failure(step, "anything") == -2


def test_custom_classifier_is_used() -> None:
    class AlwaysRuntime(FailureClassifier):
        def classify(self, output: str) -> FailureCategory:
            return FailureCategory.RUNTIME

    assert ScoringEngine(classifier=AlwaysRuntime()).score_failure(_step(), "odd") == -1


def test_regex_classifier_prefers_catastrophic() -> None:
    classifier = RegexFailureClassifier()

    assert classifier.classify("architecture violation while lint failed") is FailureCategory.CATASTROPHIC


@pytest.mark.parametrize(
    ("layer", "content", "expected"),
    [
        (Layer.DOMAIN, "import axios from 'axios'", -2),
        (Layer.DOMAIN, "a value object", 2),
        (Layer.DATA, "export class DbAddAccount {}", 0),
        (Layer.DATA, "class Repo implements AddAccount { select * from users }", -2),
        (Layer.INFRA, "export const adapter = () => null", 0),
        (Layer.PRESENTATION, "calculate the total price", -2),
        (Layer.MAIN, "export const makeLogin = factory()", 2),
    ],
)
def test_layer_impacts(layer: Layer, content: str, expected: int) -> None:
    engine = ScoringEngine(_layer(layer))

    assert engine.apply_layer_impacts(1, _step(content=content)) == expected


@pytest.mark.parametrize(
    ("layer", "content"),
    [
        (Layer.DATA, "export class DbAddAccount {}"),
        (Layer.PRESENTATION, "compute the total price"),
        (Layer.INFRA, "export const adapter = () => null"),
    ],
)
def test_layer_penalties_never_push_a_success_below_one(layer: Layer, content: str) -> None:
    assert ScoringEngine(_layer(layer)).score_success(_step(content=content)) == 1


def test_final_score_defaults_to_one_without_scores() -> None:
    assert ScoringEngine().final_score([_step()]) == 1.0


def test_final_score_is_mean_plus_bonus_and_clamped() -> None:
    steps = [
        _step(score=2, status=StepStatus.SUCCESS),
        _step(score=1, status=StepStatus.SUCCESS),
    ]

    assert ScoringEngine(_layer(Layer.DOMAIN)).final_score(steps) == 2.0
    assert ScoringEngine(_layer(Layer.DOMAIN)).final_score([_step(score=0)]) == 0.5
    assert ScoringEngine(_layer(Layer.DATA)).final_score([_step(score=0)]) == 1.0
    assert ScoringEngine().final_score([_step(score=-2)]) == 0.0


def test_record_tracks_histogram_and_total() -> None:
    engine = ScoringEngine()
    for score in (2, 1, 1, -1, 5):
        engine.record(score)

    assert engine.total == 5
    assert engine.breakdown() == {2: 2, 1: 2, 0: 0, -1: 1, -2: 0}
    assert clamp_score(-7) == -2
