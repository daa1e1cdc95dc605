"""
GLP-1 medication history records.

The glp1_history answer is a dict keyed by medication id. A key being
present means the medication is selected; removing the key (deselecting)
removes its details with it:

    {
        'wegovy': {
            'currently_taking': 'yes',
            'duration': '6 months',
            'last_taken': 'this week',
            'highest_dose': '1.7mg',
            'side_effects': 'mild nausea',      # optional
        },
        'other': {
            'name': 'Rybelsus',                  # required for 'other'
            'duration': '2 months',
            'last_taken': '1 year ago',
            'highest_dose': '7mg',
        },
    }

'currently_taking' is asked for every medication until one of them is
marked current; after that only the current one carries it.
"""

from typing import Dict, List

KNOWN_MEDICATIONS = {
    'wegovy': 'Wegovy',
    'ozempic': 'Ozempic',
    'semaglutide_compound': 'Compounded Semaglutide',
    'zepbound': 'Zepbound',
    'mounjaro': 'Mounjaro',
    'tirzepatide_compound': 'Compounded Tirzepatide',
    'saxenda': 'Saxenda',
    'victoza': 'Victoza',
}

OTHER_MEDICATION = 'other'

REQUIRED_DETAIL_FIELDS = ('duration', 'last_taken', 'highest_dose')


def _filled(value) -> bool:
    return isinstance(value, str) and value.strip() != ''


def _records(history) -> Dict[str, dict]:
    if not isinstance(history, dict):
        return {}
    return {med_id: record for med_id, record in history.items() if isinstance(record, dict)}


def has_current_medication(history) -> bool:
    """True if any selected medication is marked as currently taken."""
    return any(
        record.get('currently_taking') == 'yes'
        for record in _records(history).values()
    )


def needs_currently_taking(history, med_id: str) -> bool:
    """
    Whether 'currently_taking' must be answered for this medication.

    Args:
        history: glp1_history answer
        med_id: Medication id

    Returns:
        True until some medication is marked current; afterwards only for
        the current one
    """
    if has_current_medication(history):
        return _records(history).get(med_id, {}).get('currently_taking') == 'yes'
    return True


def missing_details(history) -> Dict[str, List[str]]:
    """
    Required details still missing, per selected medication.

    Returns:
        dict: {med_id: [field, ...]} for incomplete medications only
    """
    missing = {}

    for med_id, record in _records(history).items():
        fields = []

        if needs_currently_taking(history, med_id) and record.get('currently_taking') not in ('yes', 'no'):
            fields.append('currently_taking')

        if med_id == OTHER_MEDICATION and not _filled(record.get('name')):
            fields.append('name')

        fields.extend(f for f in REQUIRED_DETAIL_FIELDS if not _filled(record.get(f)))

        if fields:
            missing[med_id] = fields

    return missing


def is_history_complete(history) -> bool:
    """At least one medication selected and every selected one complete."""
    return bool(_records(history)) and not missing_details(history)


def summarize_history(history) -> Dict[str, List[str]]:
    """
    Display names of selected and currently-taken medications.

    Returns:
        dict: {'selected_medications': [...], 'currently_taking': [...]}
    """
    selected = []
    current = []

    for med_id, record in _records(history).items():
        if med_id == OTHER_MEDICATION:
            name = record.get('name') or 'Other GLP-1'
        else:
            name = KNOWN_MEDICATIONS.get(med_id, med_id.replace('_', ' ').title())

        selected.append(name)
        if record.get('currently_taking') == 'yes':
            current.append(name)

    return {'selected_medications': selected, 'currently_taking': current}
