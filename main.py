"""
Console Harness for the Sequencer (Functional Core)

Runs one idea-intake conversation in the terminal, holding the conversation
state in the loop the same way the browser client does, then submits it.
"""

import logging
import sys

from intake.config import Settings, ConfigError, create_llm_client
from intake.commands import SequencerInputError
from intake.core.question_set import QuestionSet
from intake.core.criteria_validator import CriteriaValidator
from intake.core.follow_up_generator import FollowUpGenerator
from intake.core.sequencer import Sequencer
from intake.core.field_mapper import FieldMapper
from intake.core.recommendation_generator import RecommendationGenerator
from intake.core.submission import IdeaSubmission, IncompleteSubmissionError
from intake.persistence import IdeaStore
from intake.results import Advance, Complete, FollowUp, NeedsAssistance

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def render(result):
    """Print the assistant side of a SequencerResult"""
    if isinstance(result, Complete):
        print(f"\nAssistant: {result.message}\n")

    elif isinstance(result, NeedsAssistance):
        print(f"\nAssistant: {result.suggestion}\n")
        print(f"  ({result.help_text})")
        print("  Still needed:")
        for criterion in result.criteria:
            print(f"    - {criterion}")
        print()

    elif isinstance(result, FollowUp):
        prompt = result.prompt
        print(f"\n[Follow-up {prompt.attempt} of {prompt.max_attempts}]")
        print(f"Assistant: {prompt.text}\n")

    elif isinstance(result, Advance):
        if result.max_follow_ups_reached:
            print("\n(Moving forward with your current answer.)")
        q = result.question
        print(f"\n[Question {q.position} of {result.state.total_questions}]")
        print(f"Assistant: {q.question}")
        if q.help_text:
            print(f"  ({q.help_text})")
        print()


def main():
    """Run console conversation"""
    print_separator()
    print("GENAI IDEA INTAKE ASSISTANT - CONSOLE")
    print_separator()

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"\nConfiguration error: {e}")
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not settings.ai_enabled:
        print("\nStatic mode: set INTAKE_AI_MODE to openai, ollama or huggingface")
        return 1

    print(f"\nInitializing ({settings.ai_mode}: {settings.model_name})...")

    try:
        llm_client = create_llm_client(settings)
        question_set = QuestionSet.from_file(settings.question_set_path)
        sequencer = Sequencer(
            question_set,
            CriteriaValidator(llm_client),
            FollowUpGenerator(llm_client)
        )
        submission = IdeaSubmission(
            FieldMapper(llm_client),
            RecommendationGenerator(llm_client),
            IdeaStore(settings.csv_path)
        )
    except Exception as e:
        logger.error(f"Failed to initialize: {e}", exc_info=True)
        print(f"\nFailed to initialize: {e}")
        return 1

    print_separator()
    print("Type 'quit', 'exit', or 'stop' to end early\n")

    # State is external - we hold it in this loop
    result = sequencer.start()
    render(result)
    state = result.state
    request_number = 0

    while not isinstance(result, Complete):
        try:
            user_input = input("> ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nConversation interrupted by user")
            return 0

        if not user_input:
            print("Please enter a response.\n")
            continue

        if user_input.lower() in EXIT_COMMANDS:
            print("\nConversation ended early by user")
            return 0

        request_number += 1
        try:
            result = sequencer.advance(state, user_input, request_id=str(request_number))
        except SequencerInputError as e:
            print(f"\nERROR: {e}\n")
            continue

        state = result.state
        render(result)

    print_separator()
    print("CONVERSATION COMPLETE - SUBMITTING")
    print_separator()

    try:
        receipt = submission.submit(state.answers, state.transcript)
    except IncompleteSubmissionError as e:
        print(f"\nSubmission rejected: {e} {e.missing_fields}")
        return 1

    print("\nSubmitted:")
    print(f"  - Opportunity ID: {receipt.opportunity_id}")
    print(f"  - Name: {receipt.opportunity_name}")
    print(f"  - CSV: {receipt.csv_path}")
    print("\nRecommendations:")
    for key, text in receipt.recommendations.to_dict().items():
        print(f"  - {key}: {text}")

    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
