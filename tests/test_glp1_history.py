"""
Tests for GLP-1 medication history records

Run with: pytest tests/test_glp1_history.py -v
"""

from intake_engine.utils.glp1_history import (
    has_current_medication,
    is_history_complete,
    missing_details,
    needs_currently_taking,
    summarize_history,
)

DETAILS = {'duration': '6 months', 'last_taken': 'this week', 'highest_dose': '1.7mg'}


def record(**extra):
    return dict(DETAILS, **extra)


def test_empty_history_incomplete():
    assert not is_history_complete({})
    assert not is_history_complete(None)
    assert not is_history_complete('wegovy')


def test_single_complete_record():
    assert is_history_complete({'wegovy': record(currently_taking='no')})


def test_currently_taking_required_until_one_is_current():
    history = {'wegovy': record(), 'ozempic': record()}
    assert missing_details(history) == {
        'wegovy': ['currently_taking'],
        'ozempic': ['currently_taking'],
    }


def test_only_current_medication_keeps_currently_taking():
    history = {'wegovy': record(currently_taking='yes'), 'ozempic': record()}

    assert has_current_medication(history)
    assert needs_currently_taking(history, 'wegovy')
    assert not needs_currently_taking(history, 'ozempic')
    assert is_history_complete(history)


def test_other_needs_a_name():
    history = {'other': record(currently_taking='no')}
    assert missing_details(history) == {'other': ['name']}

    history['other']['name'] = 'Rybelsus'
    assert is_history_complete(history)


def test_blank_details_are_missing():
    history = {'zepbound': {'currently_taking': 'no', 'duration': ' ', 'last_taken': '', 'highest_dose': '5mg'}}
    assert missing_details(history) == {'zepbound': ['duration', 'last_taken']}


def test_side_effects_optional():
    history = {'mounjaro': record(currently_taking='no')}
    assert 'side_effects' not in missing_details(history).get('mounjaro', [])


def test_summary_names():
    history = {
        'wegovy': record(currently_taking='yes'),
        'other': record(name='Rybelsus'),
        'new_thing': record(),
    }

    summary = summarize_history(history)

    assert summary == {
        'selected_medications': ['Wegovy', 'Rybelsus', 'New Thing'],
        'currently_taking': ['Wegovy'],
    }


def test_summary_of_nothing():
    assert summarize_history(None) == {'selected_medications': [], 'currently_taking': []}
