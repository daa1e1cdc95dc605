"""
Flask Web Application for the Adaptive Intake Flow Engine

JSON API over IntakeManager. Flow state is persisted per step, so every
request is stateless and any intake can be resumed by id.
"""

from flask import Flask, request, jsonify
import logging

from intake_engine.commands import Advance, AnswerQuestion, FinalizeIntake, GoBack, StartIntake
from intake_engine.core.eligibility_evaluator import EligibilityEvaluator
from intake_engine.core.flow_sequencer import FlowSequencer
from intake_engine.core.intake_manager import IntakeManager
from intake_engine.core.section_discloser import SectionDiscloser
from intake_engine.persistence import IntakePersistence
from intake_engine.results import IllegalCommand
from intake_engine.utils.catalog import CatalogProvider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['SECRET_KEY'] = 'intake-engine-secret-key'
app.config['INTAKE_OUTPUT_DIR'] = 'outputs/intakes'

# Components are created once, on first use
components = {
    'manager': None,
    'persistence': None,
    'catalog': None,
}


def get_manager():
    """Create IntakeManager on first use (loads and validates all config)"""
    if components['manager'] is None:
        components['manager'] = IntakeManager(
            sequencer=FlowSequencer(),
            discloser=SectionDiscloser(),
            evaluator=EligibilityEvaluator(),
        )
    return components['manager']


def get_persistence():
    if components['persistence'] is None:
        components['persistence'] = IntakePersistence(app.config['INTAKE_OUTPUT_DIR'])
    return components['persistence']


def get_catalog():
    if components['catalog'] is None:
        components['catalog'] = CatalogProvider()
    return components['catalog']


def step_to_json(result):
    """Serialize a StepResult for the renderer"""
    return {
        'success': True,
        'intake_id': result.state.intake_id,
        'screen_id': result.screen_id,
        'section_id': result.section_id,
        'progress': {
            'step': result.progress.step,
            'total': result.progress.total,
            'label': result.progress.label,
            'percentage': result.progress.percentage,
        },
        'visible_questions': list(result.visible_questions),
        'missing_fields': list(result.missing_fields),
        'auto_advance': result.auto_advance,
        'pruned_fields': list(result.pruned_fields),
        'exclusion': result.exclusion,
        'warnings': list(result.warnings),
        'complete': result.complete,
    }


def illegal_to_json(result):
    return jsonify({
        'success': False,
        'error': result.reason,
        'command': result.command_type,
    }), 409


def run_step(command, previous_state=None):
    """Handle a command, persist the new step if the state moved"""
    result = get_manager().handle(command)

    if isinstance(result, IllegalCommand):
        return illegal_to_json(result)

    if previous_state is None or result.state.step_count > previous_state.step_count:
        get_persistence().save_step(result.state)

    return jsonify(step_to_json(result))


def load_state(intake_id):
    """Latest persisted FlowState, or None"""
    persistence = get_persistence()
    if not intake_id or not persistence.intake_exists(intake_id):
        return None
    return persistence.load_latest_step(intake_id)


def no_intake(intake_id):
    return jsonify({
        'success': False,
        'error': f'Intake not found: {intake_id}'
    }), 404


@app.route('/api/start', methods=['POST'])
def start_intake():
    """Start new intake"""
    try:
        data = request.get_json(silent=True) or {}
        return run_step(StartIntake(prefill=data.get('prefill')))

    except Exception as e:
        logger.error(f"Error starting intake: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/answer', methods=['POST'])
def submit_answer():
    """Record one answer on the current section"""
    try:
        data = request.get_json(silent=True) or {}
        intake_id = data.get('intake_id')
        field = data.get('field')

        if not field:
            return jsonify({
                'success': False,
                'error': 'Missing field'
            }), 400

        state = load_state(intake_id)
        if state is None:
            return no_intake(intake_id)

        return run_step(AnswerQuestion(state=state, field=field, value=data.get('value')), state)

    except Exception as e:
        logger.error(f"Error processing answer: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/next', methods=['POST'])
def next_screen():
    """Continue to the next section or screen"""
    try:
        data = request.get_json(silent=True) or {}
        intake_id = data.get('intake_id')

        state = load_state(intake_id)
        if state is None:
            return no_intake(intake_id)

        return run_step(Advance(state=state), state)

    except Exception as e:
        logger.error(f"Error advancing intake: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/back', methods=['POST'])
def previous_screen():
    """Go back one section or screen"""
    try:
        data = request.get_json(silent=True) or {}
        intake_id = data.get('intake_id')

        state = load_state(intake_id)
        if state is None:
            return no_intake(intake_id)

        return run_step(GoBack(state=state), state)

    except Exception as e:
        logger.error(f"Error going back: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/progress/<intake_id>')
def intake_progress(intake_id):
    """Current progress bar position"""
    try:
        state = load_state(intake_id)
        if state is None:
            return no_intake(intake_id)

        progress = get_manager().sequencer.progress(state.screen_id)
        return jsonify({
            'success': True,
            'screen_id': state.screen_id,
            'step': progress.step,
            'total': progress.total,
            'label': progress.label,
            'percentage': progress.percentage,
            'saved_steps': get_persistence().get_step_count(intake_id),
        })

    except Exception as e:
        logger.error(f"Error reading progress: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/finalize', methods=['POST'])
def finalize_intake():
    """Build and store the submission payload"""
    try:
        data = request.get_json(silent=True) or {}
        intake_id = data.get('intake_id')

        state = load_state(intake_id)
        if state is None:
            return no_intake(intake_id)

        result = get_manager().handle(FinalizeIntake(state=state))
        if isinstance(result, IllegalCommand):
            return illegal_to_json(result)

        payload = result.to_json()
        get_persistence().save_submission(intake_id, payload)

        return jsonify({
            'success': True,
            'submission': payload
        })

    except FileExistsError as e:
        logger.warning(f"Duplicate submission: {e}")
        return jsonify({
            'success': False,
            'error': 'Intake already submitted'
        }), 409

    except Exception as e:
        logger.error(f"Error finalizing intake: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/catalog/medications')
def catalog_medications():
    """Medications for a state"""
    try:
        state_code = request.args.get('state', '')
        service_type = request.args.get('service_type', 'weight_loss')
        return jsonify({
            'success': True,
            'medications': get_catalog().medications(state_code, service_type)
        })

    except Exception as e:
        logger.error(f"Error loading medications: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/catalog/plans')
def catalog_plans():
    """Plans for a medication"""
    try:
        return jsonify({
            'success': True,
            'plans': get_catalog().plans(
                request.args.get('state', ''),
                request.args.get('medication', ''),
                service_type=request.args.get('service_type', 'weight_loss'),
                pharmacy=request.args.get('pharmacy', ''),
            )
        })

    except Exception as e:
        logger.error(f"Error loading plans: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/catalog/discount', methods=['POST'])
def catalog_discount():
    """Validate a discount code"""
    try:
        data = request.get_json(silent=True) or {}
        discount = get_catalog().apply_discount(data.get('code', ''))
        return jsonify({
            'success': True,
            'valid': discount is not None,
            'discount': discount
        })

    except Exception as e:
        logger.error(f"Error applying discount: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@app.route('/api/catalog/doses')
def catalog_doses():
    """Dose options and the preselected dose"""
    try:
        medication = request.args.get('medication', '')
        experienced = request.args.get('has_glp1_experience', 'false').lower() == 'true'
        catalog = get_catalog()
        return jsonify({
            'success': True,
            'options': catalog.dose_options(medication),
            'default': catalog.default_dose(medication, experienced)
        })

    except Exception as e:
        logger.error(f"Error loading doses: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


if __name__ == '__main__':
    # Load and validate configuration before serving
    get_manager()

    print("\n" + "="*60)
    print("ADAPTIVE INTAKE FLOW ENGINE - JSON API")
    print("="*60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=True, host='0.0.0.0', port=5000)
