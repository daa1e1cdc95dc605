"""
Tests for the Flask JSON API

Uses the Flask test client with step files written under tmp_path.

Run with: pytest tests/test_app.py -v
"""

import pytest

import app as app_module


@pytest.fixture
def client(tmp_path, monkeypatch):
    app_module.app.config['TESTING'] = True
    monkeypatch.setitem(app_module.app.config, 'INTAKE_OUTPUT_DIR', str(tmp_path / 'intakes'))
    monkeypatch.setitem(app_module.components, 'persistence', None)
    monkeypatch.setitem(app_module.components, 'catalog', None)
    return app_module.app.test_client()


def post(client, path, **body):
    return client.post(path, json=body)


def start(client, **prefill):
    response = post(client, '/api/start', prefill=prefill or None)
    assert response.status_code == 200
    return response.get_json()


def answer(client, intake_id, field, value):
    response = post(client, '/api/answer', intake_id=intake_id, field=field, value=value)
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def advance(client, intake_id):
    response = post(client, '/api/next', intake_id=intake_id)
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def walk_to_mental_health(client):
    intake_id = start(client, email='someone@example.com')['intake_id']

    for field, value in [('goal.range', '16-30'), ('goal.motivations', ['boost_energy']), ('goal.challenges', ['time'])]:
        answer(client, intake_id, field, value)
    advance(client, intake_id)

    answer(client, intake_id, 'state', 'TX')
    advance(client, intake_id)

    for field, value in [
        ('date_of_birth', '1985-01-01'), ('sex_birth', 'male'),
        ('height_ft', 5), ('height_in', 10), ('weight', 200),
    ]:
        answer(client, intake_id, field, value)
    advance(client, intake_id)        # -> weight_loss_interstitial
    advance(client, intake_id)        # -> medical_assessment_intro (email prefilled)
    advance(client, intake_id)        # -> basic_info
    data = advance(client, intake_id)  # -> mental_health

    assert data['section_id'] == 'mental_health'
    return intake_id


# ========================
# Flow endpoints
# ========================

def test_start(client):
    data = start(client)

    assert data['success']
    assert data['screen_id'] == 'timeline_questions'
    assert data['visible_questions'] == ['goal.range']
    assert data['progress']['step'] == 1
    assert app_module.get_persistence().get_step_count(data['intake_id']) == 1


def test_answer_persists_step(client):
    intake_id = start(client)['intake_id']

    data = answer(client, intake_id, 'goal.range', '1-15')

    assert data['auto_advance']
    assert data['visible_questions'] == ['goal.range', 'goal.motivations']
    assert app_module.get_persistence().get_step_count(intake_id) == 2


def test_answer_requires_field(client):
    intake_id = start(client)['intake_id']
    response = post(client, '/api/answer', intake_id=intake_id, value='x')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing field'


def test_unknown_intake(client):
    response = post(client, '/api/next', intake_id='missing1')

    assert response.status_code == 404
    assert not response.get_json()['success']


def test_illegal_answer_is_conflict(client):
    intake_id = start(client)['intake_id']
    response = post(client, '/api/answer', intake_id=intake_id, field='weight', value=150)

    assert response.status_code == 409
    assert response.get_json()['command'] == 'AnswerQuestion'


def test_blocked_advance_not_persisted(client):
    intake_id = start(client)['intake_id']

    data = advance(client, intake_id)

    assert data['screen_id'] == 'timeline_questions'
    assert data['missing_fields'] == ['goal.range', 'goal.motivations', 'goal.challenges']
    assert app_module.get_persistence().get_step_count(intake_id) == 1


def test_back_on_first_screen_stays(client):
    intake_id = start(client)['intake_id']

    response = post(client, '/api/back', intake_id=intake_id)

    assert response.status_code == 200
    assert response.get_json()['screen_id'] == 'timeline_questions'
    assert app_module.get_persistence().get_step_count(intake_id) == 1


def test_progress(client):
    intake_id = start(client)['intake_id']

    data = client.get(f'/api/progress/{intake_id}').get_json()

    assert data['screen_id'] == 'timeline_questions'
    assert data['step'] == 1
    assert data['total'] == 10
    assert data['percentage'] == 10.0
    assert data['saved_steps'] == 1


def test_progress_unknown_intake(client):
    response = client.get('/api/progress/missing1')

    assert response.status_code == 404
    assert response.get_json()['error'] == 'Intake not found: missing1'


def test_exclusion_and_finalize(client):
    intake_id = walk_to_mental_health(client)
    answer(client, intake_id, 'mental_health_diagnosis', ['thoughts_harm'])

    data = advance(client, intake_id)

    assert data['screen_id'] == 'exclusion'
    assert data['complete']
    assert data['exclusion']['type'] == 'mental_health_crisis'

    response = post(client, '/api/finalize', intake_id=intake_id)
    submission = response.get_json()['submission']

    assert response.status_code == 200
    assert submission['verdict_kind'] == 'exclusion'
    assert submission['answers']['email'] == 'someone@example.com'

    duplicate = post(client, '/api/finalize', intake_id=intake_id)
    assert duplicate.status_code == 409
    assert duplicate.get_json()['error'] == 'Intake already submitted'


def test_finalize_too_early(client):
    intake_id = start(client)['intake_id']
    response = post(client, '/api/finalize', intake_id=intake_id)

    assert response.status_code == 409
    assert response.get_json()['command'] == 'FinalizeIntake'


# ========================
# Catalog endpoints
# ========================

def test_catalog_medications(client):
    data = client.get('/api/catalog/medications?state=TX').get_json()
    assert [m['medication'] for m in data['medications']] == ['semaglutide', 'tirzepatide']


def test_catalog_plans(client):
    data = client.get('/api/catalog/plans?state=TX&medication=semaglutide').get_json()
    assert len(data['plans']) == 2


def test_catalog_discount_without_service(client):
    data = post(client, '/api/catalog/discount', code='SAVE20').get_json()

    assert data['success']
    assert not data['valid']
    assert data['discount'] is None


def test_catalog_doses(client):
    data = client.get('/api/catalog/doses?medication=tirzepatide&has_glp1_experience=false').get_json()

    assert data['options'][0]['value'] == 'no-preference'
    assert data['default'] == '2.5mg'
