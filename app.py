"""
Flask Web Application for the Clinical Decision Tree Navigator

JSON API over TraversalEngine: one engine per session id, held in memory.
Each session carries its own lock, so concurrent requests on one session
are applied one at a time. Sessions idle for longer than
SESSION_TTL_SECONDS are dropped.
"""

from flask import Flask, request, jsonify, send_file
import logging
import threading
from datetime import datetime, timedelta

from clinical_tree.config import get_settings
from clinical_tree.core.traversal_engine import TraversalEngine
from clinical_tree.persistence import ReportStore
from clinical_tree.results import IllegalOperation, SessionStatus
from clinical_tree.utils.helpers import generate_session_id
from clinical_tree.utils.patient_intake import skipped_patient, validate_patient_data
from clinical_tree.utils.tree_loader import QuestionnaireCatalog, TreeDocumentError

logger = logging.getLogger(__name__)


def create_app(settings=None, clock=datetime.now):
    """
    Build the Flask application.

    Args:
        settings: Settings instance (defaults to environment settings)
        clock: Wall-clock source handed to every engine and used for
               session idle expiry

    Returns:
        Flask app
    """
    settings = settings or get_settings()

    app = Flask(__name__)
    app.config['SECRET_KEY'] = settings.secret_key

    catalog = QuestionnaireCatalog(settings.catalog_path)
    store = ReportStore(settings.reports_dir)
    session_ttl = timedelta(seconds=settings.session_ttl_seconds)

    # session_id -> {'engine', 'questionnaire_id', 'lock', 'last_seen'}
    sessions = {}
    registry_lock = threading.Lock()

    def error_response(message, status):
        return jsonify({'success': False, 'error': message}), status

    def illegal_response(result):
        return jsonify({
            'success': False,
            'error': result.reason,
            'illegal_operation': result.to_dict(),
        }), 409

    def step_response(session_id, result):
        if isinstance(result, IllegalOperation):
            return illegal_response(result)
        return jsonify({
            'success': True,
            'session_id': session_id,
            'outcome': result.outcome.value,
            'view': result.view.to_dict(),
            'log_entry': result.log_entry.to_dict() if result.log_entry is not None else None,
        })

    def json_body():
        """Request JSON object; {} when absent, None when not an object"""
        data = request.get_json(silent=True)
        if data is None:
            return {}
        return data if isinstance(data, dict) else None

    def sweep_expired_sessions():
        cutoff = clock() - session_ttl
        with registry_lock:
            expired = [sid for sid, entry in sessions.items() if entry['last_seen'] < cutoff]
            for sid in expired:
                del sessions[sid]
        if expired:
            logger.info(f"Expired {len(expired)} idle sessions")

    def get_session(session_id):
        sweep_expired_sessions()
        with registry_lock:
            entry = sessions.get(session_id)
            if entry is not None:
                entry['last_seen'] = clock()
        return entry

    @app.route('/api/questionnaires')
    def list_questionnaires():
        """Available questionnaires"""
        return jsonify({
            'success': True,
            'questionnaires': [entry.to_dict() for entry in catalog.list_entries()],
        })

    @app.route('/api/sessions', methods=['POST'])
    def start_session():
        """Start a consultation: questionnaire id plus patient data or skip"""
        data = json_body()
        if data is None:
            return error_response('Request body must be a JSON object', 400)
        questionnaire_id = data.get('questionnaire_id')

        entry = catalog.get(questionnaire_id) if isinstance(questionnaire_id, str) else None
        if entry is None:
            return error_response(f"Unknown questionnaire: {questionnaire_id}", 404)

        if data.get('skip_patient'):
            patient = skipped_patient()
        else:
            patient, errors = validate_patient_data(data.get('patient'))
            if patient is None:
                return jsonify({'success': False, 'error': 'Invalid patient data', 'details': errors}), 400

        try:
            document = catalog.load_document(questionnaire_id)
        except (FileNotFoundError, TreeDocumentError) as e:
            logger.error(f"Error loading questionnaire {questionnaire_id}: {e}")
            return error_response(str(e), 500)

        sweep_expired_sessions()

        session_id = generate_session_id()
        engine = TraversalEngine(document, patient, title=entry.title, clock=clock)
        with registry_lock:
            sessions[session_id] = {
                'engine': engine,
                'questionnaire_id': questionnaire_id,
                'lock': threading.Lock(),
                'last_seen': clock(),
            }

        logger.info(f"Session {session_id} started: {questionnaire_id}")
        return jsonify({
            'success': True,
            'session_id': session_id,
            'questionnaire': entry.to_dict(),
            'view': engine.current_view().to_dict(),
        }), 201

    @app.route('/api/sessions/<session_id>')
    def view_session(session_id):
        """Current step and session trail"""
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)

        with session['lock']:
            engine = session['engine']
            return jsonify({
                'success': True,
                'session_id': session_id,
                'view': engine.current_view().to_dict(),
                'history': list(engine.history),
                'log': [entry.to_dict() for entry in engine.log],
            })

    @app.route('/api/sessions/<session_id>/choose', methods=['POST'])
    def choose(session_id):
        """Choose an answer (or option) by position"""
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)

        data = json_body()
        if data is None:
            return error_response('Request body must be a JSON object', 400)
        index = data.get('index')
        if not isinstance(index, int) or isinstance(index, bool):
            return error_response("'index' must be an integer", 400)

        with session['lock']:
            result = session['engine'].choose_index(index, from_options=bool(data.get('from_options')))
        return step_response(session_id, result)

    @app.route('/api/sessions/<session_id>/back', methods=['POST'])
    def back(session_id):
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)
        with session['lock']:
            result = session['engine'].back()
        return step_response(session_id, result)

    @app.route('/api/sessions/<session_id>/restart', methods=['POST'])
    def restart(session_id):
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)
        with session['lock']:
            result = session['engine'].restart()
        return step_response(session_id, result)

    @app.route('/api/sessions/<session_id>/report')
    def report(session_id):
        """Report text once the consultation reached an outcome"""
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)

        with session['lock']:
            text = session['engine'].report_text()
        if isinstance(text, IllegalOperation):
            return illegal_response(text)

        return jsonify({'success': True, 'session_id': session_id, 'report': text})

    @app.route('/api/sessions/<session_id>/report/save', methods=['POST'])
    def save_report(session_id):
        """Write the report to the reports directory"""
        session = get_session(session_id)
        if session is None:
            return error_response('Session not found', 404)

        engine = session['engine']
        with session['lock']:
            text = engine.report_text()
            status = engine.status
        if isinstance(text, IllegalOperation):
            return illegal_response(text)

        try:
            path = store.save(text, engine.title)
        except FileExistsError as e:
            return error_response(str(e), 409)
        except Exception as e:
            logger.error(f"Error saving report for session {session_id}: {e}")
            return error_response(str(e), 500)

        return jsonify({
            'success': True,
            'filename': path.name,
            'status': status.value,
        }), 201

    @app.route('/api/reports/<filename>')
    def download_report(filename):
        """Download a saved report"""
        path = store.resolve(filename)
        if path is None:
            return error_response('Invalid filename', 400)
        if not path.is_file():
            return error_response('File not found', 404)

        return send_file(path, as_attachment=True, download_name=filename, mimetype='text/plain')

    @app.route('/api/sessions/<session_id>', methods=['DELETE'])
    def end_session(session_id):
        """Discard a session"""
        with registry_lock:
            session = sessions.pop(session_id, None)
        if session is None:
            return error_response('Session not found', 404)

        with session['lock']:
            engine = session['engine']
            logger.info(
                f"Session {session_id} ended ({session['questionnaire_id']}, "
                f"status={engine.status.value}, steps={len(engine.log)})"
            )
            completed = engine.status is not SessionStatus.ACTIVE

        return jsonify({
            'success': True,
            'session_id': session_id,
            'completed': completed,
        })

    return app


if __name__ == '__main__':
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_app(settings)

    print("\n" + "="*60)
    print("CLINICAL DECISION TREE NAVIGATOR - WEB API")
    print("="*60)
    print(f"\nServer starting on http://{settings.host}:{settings.port}")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=True, host=settings.host, port=settings.port)
