"""
Zootopia Vocabulary Widget - Flask Application
JSON/WAV API consumed by the widget's hosting page.
"""
import os

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .config import config
from .models import TOPICS, AccentVariant, AppMode
from .services.errors import (
    RecognitionAbortedError,
    SessionNotFoundError,
    UnknownTopicError,
    UnsupportedPlatformCapabilityError,
)
from .services.gemini_client import get_gemini_client
from .services.locale_loader import message
from .services.practice import check_spelling, masked_word
from .services.pronunciation_grader import feedback_tier, get_pronunciation_grader, tier_caption
from .services.recognition import RECOGNITION_SETTINGS
from .services.session_store import SessionStore
from .services.speech_orchestrator import DEFAULT_CHANNEL, get_speech_orchestrator


# Initialize Flask app
app = Flask(__name__)
app.config.from_object(config[os.getenv('FLASK_ENV', 'development')])

CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ALLOWED_ORIGINS']}})

# Learning sessions keyed by id; each holds topic, words, cursor and mode.
session_store = SessionStore()


def _grade_payload(result, transcript=None):
    tier = feedback_tier(result.score)
    payload = {
        'score': result.score,
        'feedback': result.feedback,
        'tier': tier,
        'tierCaption': tier_caption(tier),
    }
    if transcript is not None:
        payload['transcript'] = transcript
    return payload


def _json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _text(payload, key):
    value = payload.get(key)
    return '' if value is None else str(value).strip()


def _flag(payload, key, default=True):
    value = payload.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() not in ('', '0', 'false', 'no', 'off')
    return bool(value)


# ============================================================================
# TOPICS & SETTINGS
# ============================================================================

@app.route('/api/topics')
def list_topics():
    """Return the fixed topic set."""
    return jsonify({'topics': [topic.to_dict() for topic in TOPICS]})


@app.route('/api/config')
def widget_config():
    """Tell the page whether Gemini is available and how to run recognition."""
    return jsonify({
        'fallbackMode': not get_gemini_client().is_configured,
        'recognition': RECOGNITION_SETTINGS,
        'accents': [accent.value for accent in AccentVariant],
        'modes': [mode.value for mode in AppMode],
    })


# ============================================================================
# LEARNING SESSIONS
# ============================================================================

@app.route('/api/sessions', methods=['POST'])
def create_session():
    """Start a session for a topic and load its first word list."""
    topic_id = _text(_json_body(), 'topicId')
    if not topic_id:
        return jsonify({'error': 'Missing topicId'}), 400
    session = session_store.create(topic_id)
    return jsonify(session.to_dict()), 201


@app.route('/api/sessions/<session_id>')
def get_session(session_id):
    return jsonify(session_store.get(session_id).to_dict())


@app.route('/api/sessions/<session_id>', methods=['DELETE'])
def delete_session(session_id):
    session_store.discard(session_id)
    return '', 204


@app.route('/api/sessions/<session_id>/topic', methods=['POST'])
def change_topic(session_id):
    topic_id = _text(_json_body(), 'topicId')
    if not topic_id:
        return jsonify({'error': 'Missing topicId'}), 400
    session = session_store.select_topic(session_store.get(session_id), topic_id)
    return jsonify(session.to_dict())


@app.route('/api/sessions/<session_id>/next', methods=['POST'])
def next_word(session_id):
    return jsonify(session_store.next(session_store.get(session_id)).to_dict())


@app.route('/api/sessions/<session_id>/prev', methods=['POST'])
def previous_word(session_id):
    return jsonify(session_store.prev(session_store.get(session_id)).to_dict())


@app.route('/api/sessions/<session_id>/flip', methods=['POST'])
def flip_card(session_id):
    return jsonify(session_store.flip(session_store.get(session_id)).to_dict())


@app.route('/api/sessions/<session_id>/mode', methods=['POST'])
def change_mode(session_id):
    session = session_store.get(session_id)
    mode = _text(_json_body(), 'mode')
    try:
        session = session_store.set_mode(session, mode or '')
    except ValueError:
        return jsonify({'error': f'Invalid mode: {mode}'}), 400
    return jsonify(session.to_dict())


# ============================================================================
# SPELLING
# ============================================================================

@app.route('/api/sessions/<session_id>/spelling')
def spelling_hint(session_id):
    """Masked word with the first ``hints`` letters revealed."""
    word = session_store.get(session_id).current_word
    hints = request.args.get('hints', 0, type=int)
    return jsonify({'masked': masked_word(word.word if word else '', hints or 0)})


@app.route('/api/sessions/<session_id>/spelling', methods=['POST'])
def spelling_check(session_id):
    word = session_store.get(session_id).current_word
    answer = _text(_json_body(), 'answer')
    correct = check_spelling(answer, word.word if word else '')
    return jsonify({'correct': correct, 'status': 'correct' if correct else 'incorrect'})


# ============================================================================
# SPEECH SYNTHESIS
# ============================================================================

@app.route('/api/speak', methods=['POST'])
def speak():
    """Return WAV audio from Gemini, or a local-synthesis directive for the page."""
    payload = _json_body()
    text = _text(payload, 'text')
    if not text:
        return jsonify({'error': 'Missing text'}), 400

    # Speech channels are keyed by live session ids.
    session_id = _text(payload, 'sessionId')
    channel = session_store.get(session_id).id if session_id else DEFAULT_CHANNEL
    outcome = get_speech_orchestrator().speak(text, AccentVariant.parse(_text(payload, 'accent')), channel=channel)
    if outcome.provider == 'gemini':
        return Response(
            outcome.audio,
            mimetype='audio/wav',
            headers={'X-Speech-Provider': 'gemini'},
        )
    if outcome.provider == 'local':
        return jsonify({
            'engine': 'local',
            'cancelPrevious': True,
            'utterance': outcome.utterance.to_dict(),
        })
    return jsonify({'engine': 'none', 'superseded': True})


# ============================================================================
# SPEECH RECOGNITION & GRADING
# ============================================================================

@app.route('/api/sessions/<session_id>/recognition', methods=['POST'])
def start_recognition(session_id):
    """Open a recognition session for the current word, superseding any earlier one."""
    session = session_store.get(session_id)
    word = session.current_word
    if word is None:
        return jsonify({'error': 'No current word'}), 409
    supported = _flag(_json_body(), 'supported')
    recognition = session.recognition.start(word.word, supported=supported)
    return jsonify({'token': recognition.token, 'settings': RECOGNITION_SETTINGS}), 201


@app.route('/api/sessions/<session_id>/recognition/<token>/result', methods=['POST'])
def recognition_result(session_id, token):
    session = session_store.get(session_id)
    transcript = _text(_json_body(), 'transcript')
    recognition = session.recognition.complete(token, transcript)
    result = get_pronunciation_grader().grade(recognition.word, recognition.transcript)
    return jsonify(_grade_payload(result, transcript=recognition.transcript))


@app.route('/api/sessions/<session_id>/recognition/<token>/error', methods=['POST'])
def recognition_error(session_id, token):
    session = session_store.get(session_id)
    recognition = session.recognition.fail(token, _text(_json_body(), 'error'))
    return jsonify(recognition.to_dict())


@app.route('/api/sessions/<session_id>/recognition/<token>/end', methods=['POST'])
def recognition_end(session_id, token):
    session = session_store.get(session_id)
    recognition = session.recognition.end(token)
    return jsonify(recognition.to_dict() if recognition else {'token': token, 'state': 'stale'})


@app.route('/api/grade', methods=['POST'])
def grade():
    """Grade a transcript directly, without a recognition session."""
    payload = _json_body()
    target = _text(payload, 'targetWord')
    if not target:
        return jsonify({'error': 'Missing targetWord'}), 400
    recognized = _text(payload, 'recognizedText')
    result = get_pronunciation_grader().grade(target, recognized)
    return jsonify(_grade_payload(result))


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.errorhandler(SessionNotFoundError)
def session_not_found(error):
    return jsonify({'error': 'Session not found.'}), 404


@app.errorhandler(UnknownTopicError)
def topic_not_found(error):
    return jsonify({'error': f'Unknown topic: {error}'}), 404


@app.errorhandler(UnsupportedPlatformCapabilityError)
def recognition_unsupported(error):
    return jsonify({
        'error': 'unsupported',
        'notice': message('recognition_unsupported', "Browser doesn't support speech recognition."),
    }), 400


@app.errorhandler(RecognitionAbortedError)
def recognition_stale(error):
    return jsonify({
        'error': 'stale',
        'notice': message('recognition_stale', 'Recognition session is no longer active.'),
    }), 409


@app.errorhandler(404)
def not_found(error):
    """404 error handler."""
    return jsonify({'error': 'Not found.'}), 404


@app.errorhandler(500)
def internal_error(error):
    """500 error handler."""
    return jsonify({'error': 'Internal server error.'}), 500


# ============================================================================
# INITIALIZATION
# ============================================================================

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 1111)), debug=True)
