"""
Tests for FlowSequencer - conditional edges, back navigation, progress

Run with: pytest tests/test_flow_sequencer.py -v
"""

import json

import pytest

from intake_engine.commands import FlowState
from intake_engine.core.flow_sequencer import FlowSequencer, NavigationError

VALID_EMAIL = {'email': 'someone@example.com'}


@pytest.fixture(scope="module")
def sequencer():
    return FlowSequencer()


# ========================
# next()
# ========================

def test_glp1_experience_yes_goes_to_history(sequencer):
    assert sequencer.next('glp1_experience', {'hasGLP1Experience': True}) == 'glp1_history'


def test_glp1_experience_no_skips_history(sequencer):
    assert sequencer.next('glp1_experience', {'hasGLP1Experience': False}) == 'medication_choice'


def test_linear_edges(sequencer):
    assert sequencer.next('timeline_questions', {}) == 'state_selection'
    assert sequencer.next('medical_assessment', {}) == 'medical_completion_celebration'
    assert sequencer.next('account_creation', {}) == 'complete'


def test_email_capture_skipped_when_email_known(sequencer):
    assert sequencer.next('weight_loss_interstitial', {}) == 'email_capture'
    assert sequencer.next('weight_loss_interstitial', VALID_EMAIL) == 'medical_assessment_intro'


def test_invalid_email_not_skipped(sequencer):
    assert sequencer.next('weight_loss_interstitial', {'email': 'nope'}) == 'email_capture'


def test_next_is_pure(sequencer):
    answers = {'hasGLP1Experience': True}
    assert sequencer.next('glp1_experience', answers) == sequencer.next('glp1_experience', answers)
    assert answers == {'hasGLP1Experience': True}


def test_unknown_screen_raises(sequencer):
    with pytest.raises(NavigationError, match="Unknown screen"):
        sequencer.next('nowhere', {})
    with pytest.raises(NavigationError):
        sequencer.previous('nowhere', {})
    with pytest.raises(NavigationError):
        sequencer.progress('nowhere')


def test_terminal_has_no_next(sequencer):
    with pytest.raises(NavigationError, match="terminal"):
        sequencer.next('complete', {})


def test_navigation_error_is_value_error():
    assert issubclass(NavigationError, ValueError)


# ========================
# previous()
# ========================

def test_medication_choice_back_with_experience(sequencer):
    assert sequencer.previous('medication_choice', {'hasGLP1Experience': True}) == 'glp1_history'


def test_medication_choice_back_without_experience(sequencer):
    assert sequencer.previous('medication_choice', {'hasGLP1Experience': False}) == 'glp1_experience'


def test_medication_choice_back_with_history_answers(sequencer):
    answers = {'glp1_history': {'wegovy': {'duration': '6 months'}}}
    assert sequencer.previous('medication_choice', answers) == 'glp1_history'


def test_back_is_not_index_minus_one(sequencer):
    """Back over a skipped screen lands on the screen actually shown."""
    assert sequencer.previous('medical_assessment_intro', VALID_EMAIL) == 'weight_loss_interstitial'
    assert sequencer.previous('medical_assessment_intro', {}) == 'email_capture'


def test_back_linear(sequencer):
    assert sequencer.previous('state_selection', {}) == 'timeline_questions'
    assert sequencer.previous('plan_selection', {}) == 'medication_choice'


def test_back_from_start_stays(sequencer):
    assert sequencer.previous('timeline_questions', {}) == 'timeline_questions'


def test_back_from_terminal_stays(sequencer):
    assert sequencer.previous('complete', {}) == 'complete'
    assert sequencer.previous('exclusion', {}) == 'exclusion'


def test_back_from_screen_off_the_path(sequencer):
    """glp1_history visited, then experience answer flipped: fall back to declared order."""
    assert sequencer.previous('glp1_history', {'hasGLP1Experience': False}) == 'glp1_experience'


# ========================
# forward_path() and progress()
# ========================

def test_forward_path_with_experience(sequencer):
    path = sequencer.forward_path({'hasGLP1Experience': True})
    assert path[0] == 'timeline_questions'
    assert path[-1] == 'complete'
    assert 'glp1_history' in path
    assert 'exclusion' not in path


def test_forward_path_without_experience(sequencer):
    path = sequencer.forward_path(dict(VALID_EMAIL, hasGLP1Experience=False))
    assert 'glp1_history' not in path
    assert 'email_capture' not in path


def test_step_numbers(sequencer):
    assert sequencer.total_steps == 10
    assert sequencer.progress('timeline_questions').step == 1
    assert sequencer.progress('email_capture').step == 4
    assert sequencer.progress('medical_assessment').step == 5
    assert sequencer.progress('account_creation').step == 10
    assert sequencer.progress('complete').step == 10


def test_interstitial_shares_next_step(sequencer):
    assert sequencer.progress('weight_loss_interstitial').step == sequencer.progress('email_capture').step
    assert sequencer.progress('medical_assessment_intro').step == sequencer.progress('medical_assessment').step
    assert sequencer.progress('medical_completion_celebration').step == sequencer.progress('glp1_experience').step
    assert sequencer.progress('weight_loss_interstitial').label is None


def test_progress_fields(sequencer):
    progress = sequencer.progress('state_selection')
    assert progress.total == 10
    assert progress.label == 'Location'
    assert progress.percentage == 20.0


@pytest.mark.parametrize("answers", [
    {},
    {'hasGLP1Experience': True},
    {'hasGLP1Experience': False},
    dict(VALID_EMAIL, hasGLP1Experience=True),
    dict(VALID_EMAIL, hasGLP1Experience=False),
])
def test_progress_monotonic_on_forward_traversal(sequencer, answers):
    steps = [sequencer.progress(screen_id).step for screen_id in sequencer.forward_path(answers)]
    assert steps == sorted(steps)
    assert steps[-1] == sequencer.total_steps


# ========================
# advance() / retreat() with the section cursor
# ========================

def make_state(screen_id, cursor=1):
    return FlowState(intake_id='test', screen_id=screen_id, section_cursor=cursor)


def test_advance_within_assessment(sequencer):
    state = sequencer.advance(make_state('medical_assessment', 2), {})
    assert state.screen_id == 'medical_assessment'
    assert state.section_cursor == 3


def test_advance_from_last_section_leaves_screen(sequencer):
    state = sequencer.advance(make_state('medical_assessment', 6), {})
    assert state.screen_id == 'medical_completion_celebration'
    assert state.section_cursor == 1


def test_retreat_within_assessment(sequencer):
    state = sequencer.retreat(make_state('medical_assessment', 3), {})
    assert state.screen_id == 'medical_assessment'
    assert state.section_cursor == 2


def test_retreat_from_section_one_delegates(sequencer):
    state = sequencer.retreat(make_state('medical_assessment', 1), {})
    assert state.screen_id == 'medical_assessment_intro'


def test_retreat_into_assessment_lands_on_last_section(sequencer):
    state = sequencer.retreat(make_state('medical_completion_celebration'), {})
    assert state.screen_id == 'medical_assessment'
    assert state.section_cursor == 6


def test_retreat_does_not_mutate_input(sequencer):
    original = make_state('medical_assessment', 3)
    sequencer.retreat(original, {})
    assert original.section_cursor == 3


# ========================
# Validation
# ========================

def test_invalid_graph(tmp_path):
    config = {
        "start": "missing",
        "screens": [
            {"id": "a", "next": [{"if": {"eq": ["x", 1]}, "go_to": "nowhere"}]},
            {"id": "a"},
            {"id": "b", "skip_if": {"bogus": 1}},
        ],
    }
    path = tmp_path / "flow.json"
    path.write_text(json.dumps(config))

    with pytest.raises(ValueError) as excinfo:
        FlowSequencer(str(path))

    message = str(excinfo.value)
    assert "'start' names unknown screen 'missing'" in message
    assert "unknown target 'nowhere'" in message
    assert "Duplicate screen id 'a'" in message
    assert "unknown operator 'bogus'" in message
    assert "must end with a terminal screen" in message


def test_missing_flow_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="Flow graph not found"):
        FlowSequencer(str(tmp_path / "missing.json"))
