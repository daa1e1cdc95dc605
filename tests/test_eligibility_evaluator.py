"""
Tests for EligibilityEvaluator

Covers rule priority, warning collection, message variants, purity and
rule table validation.

Run with: pytest tests/test_eligibility_evaluator.py -v
"""

import json

import pytest

from intake_engine.contracts import EligibilityVerdict, VerdictKind
from intake_engine.core.answer_store import AnswerStore
from intake_engine.core.eligibility_evaluator import EligibilityEvaluator
from intake_engine.core.section_discloser import SectionDiscloser


@pytest.fixture(scope="module")
def evaluator():
    return EligibilityEvaluator()


CLEAN_ANSWERS = {
    'mental_health_diagnosis': ['none'],
    'eating_relationship': 'no',
    'diabetes': 'no',
    'pregnancy': 'no',
    'medical_conditions': ['none'],
    'current_medications': ['none'],
    'glp1_safety': ['none'],
}

# Answer fragments that each trigger one exclusion on their own
EXCLUSION_TRIGGERS = {
    'eating_disorder_exclusion': {'eating_relationship': 'yes', 'eating_disorder_type': ['anorexia']},
    'thyroid_exclusion': {'medical_conditions': ['men2']},
    'pregnancy_exclusion': {'sex_birth': 'female', 'pregnancy': 'nursing'},
    'type1_denial': {'diabetes': 'yes', 'diabetes_type': 'type1'},
    'insulin_exclusion': {'current_medications': ['insulin']},
    'glp1_allergy_exclusion': {'glp1_safety': ['glp1_allergy']},
}


def with_answers(**changes):
    answers = dict(CLEAN_ANSWERS)
    answers.update(changes)
    return answers


# ========================
# Rule table
# ========================

def test_rule_table_order(evaluator):
    assert evaluator.exclusion_types == [
        'mental_health_crisis',
        'eating_disorder_exclusion',
        'thyroid_exclusion',
        'pregnancy_exclusion',
        'type1_denial',
        'insulin_exclusion',
        'glp1_allergy_exclusion',
    ]
    assert evaluator.warning_types == [
        'eating_disorder_review',
        'pancreatitis_review',
        'gallbladder_review',
        'glp1_coordination',
        'glp1_high_risk_review',
    ]


def test_every_exclusion_has_critical_severity(evaluator):
    assert all(rule.severity == 'critical' for rule in evaluator.exclusions)


# ========================
# Exclusions
# ========================

def test_clean_answers_are_clear(evaluator):
    verdict = evaluator.evaluate(CLEAN_ANSWERS)
    assert verdict.kind == VerdictKind.CLEAR
    assert verdict.warnings == ()


@pytest.mark.parametrize("rule_type, fragment", sorted(EXCLUSION_TRIGGERS.items()))
def test_single_exclusion_triggers(evaluator, rule_type, fragment):
    verdict = evaluator.evaluate(with_answers(**fragment))
    assert verdict.is_exclusion
    assert verdict.rule.type == rule_type


@pytest.mark.parametrize("rule_type, fragment", sorted(EXCLUSION_TRIGGERS.items()))
def test_self_harm_always_wins(evaluator, rule_type, fragment):
    """Self-harm flag beats every other exclusion."""
    answers = with_answers(**fragment)
    answers['mental_health_diagnosis'] = ['depression', 'thoughts_harm']

    verdict = evaluator.evaluate(answers)

    assert verdict.rule.type == 'mental_health_crisis'


def test_self_harm_beats_anorexia(evaluator):
    answers = with_answers(
        mental_health_diagnosis=['thoughts_harm'],
        eating_relationship='yes',
        eating_disorder_type=['anorexia'],
    )
    assert evaluator.evaluate(answers).rule.type == 'mental_health_crisis'


def test_crisis_exclusion_carries_resources(evaluator):
    verdict = evaluator.evaluate({'mental_health_diagnosis': ['thoughts_harm']})
    labels = [r.label for r in verdict.rule.resources]
    assert '988 Crisis Lifeline (24/7)' in labels
    assert verdict.rule.resources[0].icon_name == 'phone'


def test_exclusion_has_no_warnings(evaluator):
    answers = with_answers(medical_conditions=['thyroid_cancer', 'pancreatitis'])
    verdict = evaluator.evaluate(answers)
    assert verdict.rule.type == 'thyroid_exclusion'
    assert verdict.warnings == ()


@pytest.mark.parametrize("value", ['pregnant', 'trying', 'nursing'])
def test_pregnancy_variants_resolve(evaluator, value):
    verdict = evaluator.evaluate(with_answers(pregnancy=value))
    base = next(r for r in evaluator.exclusions if r.type == 'pregnancy_exclusion')
    expected = next(v for v in base.variants if v[0] == value)

    assert verdict.rule.type == 'pregnancy_exclusion'
    assert verdict.rule.title == expected[1]
    assert verdict.rule.message == expected[2]


def test_pregnancy_no_is_clear(evaluator):
    assert evaluator.evaluate(with_answers(pregnancy='no')).kind == VerdictKind.CLEAR


# ========================
# Warnings
# ========================

def test_pancreatitis_scenario_single_warning(evaluator):
    answers = {
        'medical_conditions': ['pancreatitis'],
        'diabetes': 'no',
        'pregnancy': 'no',
        'current_medications': ['none'],
        'glp1_safety': ['none'],
    }
    verdict = evaluator.evaluate(answers)

    assert verdict.kind == VerdictKind.CLEAR
    assert verdict.warning_types == ('pancreatitis_review',)


def test_warnings_collected_in_table_order(evaluator):
    answers = with_answers(
        eating_relationship='yes',
        eating_disorder_type=['binge_eating'],
        medical_conditions=['gallbladder_active', 'pancreatitis'],
        glp1_safety=['kidney_stage4_5', 'other_glp1_current'],
    )
    verdict = evaluator.evaluate(answers)

    assert verdict.warning_types == (
        'eating_disorder_review',
        'pancreatitis_review',
        'gallbladder_review',
        'glp1_coordination',
        'glp1_high_risk_review',
    )


def test_gallbladder_is_info(evaluator):
    verdict = evaluator.evaluate(with_answers(medical_conditions=['gallbladder_active']))
    assert verdict.warnings[0].severity == 'info'


# ========================
# Totality and purity
# ========================

@pytest.mark.parametrize("answers", [
    {},
    None,
    'not a dict',
    {'medical_conditions': 'pancreatitis'},
    {'mental_health_diagnosis': None, 'pregnancy': ['pregnant']},
    {'glp1_safety': 42, 'eating_disorder_type': {'anorexia': True}},
])
def test_partial_or_malformed_answers_never_raise(evaluator, answers):
    verdict = evaluator.evaluate(answers)
    assert verdict.kind == VerdictKind.CLEAR
    assert verdict.warnings == ()


def test_evaluate_is_idempotent(evaluator):
    answers = with_answers(medical_conditions=['pancreatitis'], pregnancy='trying')
    snapshot = json.dumps(answers, sort_keys=True)

    first = evaluator.evaluate(answers)
    second = evaluator.evaluate(answers)

    assert first == second
    assert json.dumps(answers, sort_keys=True) == snapshot


def test_stale_diabetes_type_never_evaluated(evaluator):
    """Switching diabetes back to 'no' must drop a type1 answer before evaluation."""
    store = AnswerStore.for_sections(SectionDiscloser(), CLEAN_ANSWERS)
    store.set('diabetes', 'yes')
    store.set('diabetes_type', 'type1')
    assert evaluator.evaluate(store.snapshot()).rule.type == 'type1_denial'

    store.set('diabetes', 'no')

    assert evaluator.evaluate(store.snapshot()).kind == VerdictKind.CLEAR


def test_verdict_json_round_trip(evaluator):
    verdict = evaluator.evaluate({'mental_health_diagnosis': ['thoughts_harm']})
    restored = EligibilityVerdict.from_json(verdict.to_json())

    assert restored.kind == VerdictKind.EXCLUSION
    assert restored.rule.type == 'mental_health_crisis'
    assert restored.rule.resources == verdict.rule.resources


# ========================
# Rule table validation
# ========================

def write_rules(tmp_path, ruleset):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(ruleset))
    return str(path)


def test_missing_rule_table(tmp_path):
    with pytest.raises(FileNotFoundError, match="Eligibility rule table not found"):
        EligibilityEvaluator(str(tmp_path / "missing.json"))


def test_invalid_rule_table_reports_all_errors(tmp_path):
    ruleset = {
        "exclusions": [
            {"type": "a", "title": "A", "message": "m", "condition": {"equals": ["x", 1]}},
            {"type": "a", "title": "A", "message": "m", "condition": {"eq": ["x", 1]}, "severity": "fatal"},
        ],
        "warnings": [
            {"type": "b", "message": "m", "condition": {"eq": ["x", 1]}},
        ],
    }

    with pytest.raises(ValueError) as excinfo:
        EligibilityEvaluator(write_rules(tmp_path, ruleset))

    message = str(excinfo.value)
    assert "unknown operator 'equals'" in message
    assert "Duplicate rule type 'a'" in message
    assert "unknown severity 'fatal'" in message
    assert "missing 'title'" in message


def test_variants_need_variant_field(tmp_path):
    ruleset = {
        "exclusions": [{
            "type": "p", "title": "P", "message": "m",
            "condition": {"eq": ["x", 1]},
            "variants": {"1": {"title": "T"}},
        }],
        "warnings": [],
    }

    with pytest.raises(ValueError) as excinfo:
        EligibilityEvaluator(write_rules(tmp_path, ruleset))

    assert "'variants' without 'variant_field'" in str(excinfo.value)
    assert "variant '1' needs 'title' and 'message'" in str(excinfo.value)
