"""
Flask Web Application for the GenAI Idea Intake Assistant

JSON API over the Sequencer. The client holds the conversation state and
sends it back with every answer; the server keeps no sessions.

Run:
    python app.py
    flask --app app:create_app run
"""

from flask import Flask, request, jsonify
import logging

from intake.config import Settings, create_llm_client
from intake.commands import ConversationState, SequencerInputError, validate_answers, validate_transcript
from intake.core.question_set import QuestionSet
from intake.core.criteria_validator import CriteriaValidator
from intake.core.follow_up_generator import FollowUpGenerator
from intake.core.sequencer import Sequencer
from intake.core.field_mapper import FieldMapper
from intake.core.idea_analyzer import IdeaAnalyzer
from intake.core.recommendation_generator import RecommendationGenerator
from intake.core.submission import IdeaSubmission, IncompleteSubmissionError
from intake.persistence import IdeaStore

logger = logging.getLogger(__name__)

AI_MODE_REQUIRED = "AI mode required: set INTAKE_AI_MODE to openai, ollama or huggingface"


def _error(message, status, **extra):
    payload = {'success': False, 'error': message}
    payload.update(extra)
    return jsonify(payload), status


def _read_state(body):
    """State from {'state': {...}} or from the bare request fields"""
    raw = body.get('state') if isinstance(body.get('state'), dict) else body
    return ConversationState.from_json(raw)


def create_app(settings=None, llm_client=None, question_set=None, idea_store=None):
    """
    Build the Flask app and its shared, read-only collaborators

    Args:
        settings: Settings (read from the environment if None)
        llm_client: Pre-built LLM client (tests inject a mock here)
        question_set: Pre-loaded QuestionSet
        idea_store: Pre-built IdeaStore

    Returns:
        Flask: Configured application
    """
    settings = settings or Settings.from_env()

    if llm_client is None and settings.ai_enabled:
        llm_client = create_llm_client(settings)

    question_set = question_set or QuestionSet.from_file(settings.question_set_path)
    idea_store = idea_store or IdeaStore(settings.csv_path)

    analyzer = IdeaAnalyzer(llm_client)
    sequencer = None
    submission = None
    if llm_client is not None:
        sequencer = Sequencer(
            question_set,
            CriteriaValidator(llm_client),
            FollowUpGenerator(llm_client)
        )
        submission = IdeaSubmission(
            FieldMapper(llm_client),
            RecommendationGenerator(llm_client),
            idea_store
        )

    app = Flask(__name__)

    @app.route('/api/start', methods=['POST'])
    def start_conversation():
        """Start new conversation: first question + initial state"""
        try:
            body = request.get_json(silent=True) or {}
            if sequencer is None:
                # Static mode still shows the first question
                first = question_set.first
                state = ConversationState(
                    total_questions=question_set.total,
                    transcript=[{'role': 'assistant', 'content': first.question}],
                )
                return jsonify({
                    'success': True,
                    'aiEnabled': False,
                    'question': first.to_dict(total_questions=question_set.total),
                    'state': state.to_json(),
                })

            result = sequencer.start(session_id=body.get('sessionId'))
            payload = result.to_response()
            payload.update({'success': True, 'aiEnabled': True})
            return jsonify(payload)

        except Exception as e:
            logger.error(f"Error starting conversation: {e}", exc_info=True)
            return _error(str(e), 500)

    @app.route('/api/advance', methods=['POST'])
    def advance_conversation():
        """Submit one answer and get the next step"""
        if sequencer is None:
            return _error(AI_MODE_REQUIRED, 400)

        try:
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                return _error("Request body must be a JSON object", 400)

            state = _read_state(body)
            result = sequencer.advance(state, body.get('answer'), request_id=body.get('requestId'))

            payload = result.to_response()
            payload['success'] = True
            return jsonify(payload)

        except SequencerInputError as e:
            logger.warning(f"Rejected advance request: {e}")
            return _error(str(e), 400)
        except Exception as e:
            logger.error(f"Error advancing conversation: {e}", exc_info=True)
            return _error(str(e), 500)

    @app.route('/api/submit', methods=['POST'])
    def submit_idea():
        """Map the finished conversation to a record and append it to the CSV"""
        if submission is None:
            return _error(AI_MODE_REQUIRED, 400)

        try:
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                return _error("Request body must be a JSON object", 400)

            answers = validate_answers(body.get('answers'))
            transcript = validate_transcript(body.get('transcript'))

            receipt = submission.submit(answers, transcript)
            return jsonify(receipt.to_response())

        except SequencerInputError as e:
            logger.warning(f"Rejected submission payload: {e}")
            return _error(str(e), 400)
        except IncompleteSubmissionError as e:
            logger.warning(f"Rejected submission: {e} {e.missing_fields}")
            return _error(str(e), 400, missingFields=e.missing_fields)
        except Exception as e:
            logger.error(f"Error submitting idea: {e}", exc_info=True)
            return _error(str(e), 500)

    @app.route('/api/analyze', methods=['POST'])
    def analyze_idea():
        """Summary, gaps and readiness score for the idea so far"""
        try:
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                return _error("Request body must be a JSON object", 400)

            answers = validate_answers(body.get('answers'))
            transcript = validate_transcript(body.get('transcript'))

            analysis = analyzer.analyze(answers, transcript)
            return jsonify({
                'success': True,
                'generated': analysis.generated,
                'analysis': analysis.to_dict(),
            })

        except SequencerInputError as e:
            logger.warning(f"Rejected analysis payload: {e}")
            return _error(str(e), 400)
        except Exception as e:
            logger.error(f"Error analyzing idea: {e}", exc_info=True)
            return _error(str(e), 500)

    @app.route('/api/health', methods=['GET'])
    def health():
        """App, language model and CSV store status"""
        llm_ok = False
        model_info = {}
        if llm_client is not None:
            try:
                llm_ok = llm_client.check_connection()
                model_info = llm_client.get_model_info()
            except Exception as e:
                logger.warning(f"Health check: language model unavailable: {e}")

        csv_ok = idea_store.is_writable()
        status = 'healthy' if (llm_ok or not settings.ai_enabled) and csv_ok else 'degraded'

        return jsonify({
            'status': status,
            'aiMode': settings.ai_mode,
            'llm': {'connected': llm_ok, **model_info},
            'csv': {'path': str(idea_store.csv_path), 'writable': csv_ok},
            'questions': question_set.total,
        })

    logger.info(f"Flask app created (ai_mode={settings.ai_mode}, questions={question_set.total})")
    return app


if __name__ == '__main__':
    settings = Settings.from_env()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_app(settings)

    print("\n" + "=" * 60)
    print("GENAI IDEA INTAKE ASSISTANT - API SERVER")
    print("=" * 60)
    print(f"\nAI mode: {settings.ai_mode} ({settings.model_name})")
    print("Server starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000)
