"""
Console Test Harness for IntakeManager (Functional Core)

Simple console loop to walk the intake flow without the web layer.

Input per prompt:
    <value>         answer the highlighted question
    a, b, c         several options for a multi-select (comma separated)
    med:field=value one detail of a GLP-1 history record ('med' alone selects it)
    next            continue to the next section or screen
    back            go back one section or screen
    quit            stop
"""

import logging
import sys

from intake_engine.commands import Advance, AnswerQuestion, FinalizeIntake, GoBack, StartIntake
from intake_engine.core.eligibility_evaluator import EligibilityEvaluator
from intake_engine.core.flow_sequencer import FlowSequencer
from intake_engine.core.intake_manager import IntakeManager
from intake_engine.core.section_discloser import SectionDiscloser
from intake_engine.results import IllegalCommand

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def parse_value(question, raw):
    """Console text -> answer value for the question kind"""
    if question.kind == 'multi_select':
        return [item.strip() for item in raw.split(',') if item.strip()]
    if question.kind == 'boolean':
        return raw.lower() in ('y', 'yes', 'true', '1')
    if question.kind == 'number':
        try:
            return float(raw) if '.' in raw else int(raw)
        except ValueError:
            return raw
    return raw


def print_step(result):
    """Show screen, progress, exclusion and warnings"""
    progress = result.progress
    label = progress.label or ''
    print(f"\n[{result.screen_id}] step {progress.step}/{progress.total} {label}".rstrip())

    if result.exclusion:
        print_separator("-")
        print(result.exclusion['title'])
        print(result.exclusion['message'])
        for resource in result.exclusion['resources']:
            print(f"  * {resource['label']}: {resource['value']}")
        print_separator("-")

    for warning in result.warnings:
        print(f"  ! {warning['title']}")

    if result.missing_fields:
        print(f"Still needed: {', '.join(result.missing_fields)}")

    if result.pruned_fields:
        print(f"Cleared: {', '.join(result.pruned_fields)}")


def open_question(result, discloser):
    """First visible question without an answer, or None"""
    answers = result.state.answers
    for field in result.visible_questions:
        question = discloser.question(field)
        if not discloser.is_answered(question, answers):
            return question
    return None


def main():
    """Run console intake"""
    print_separator()
    print("INTAKE FLOW ENGINE - CONSOLE TEST")
    print_separator()

    try:
        discloser = SectionDiscloser()
        manager = IntakeManager(
            sequencer=FlowSequencer(),
            discloser=discloser,
            evaluator=EligibilityEvaluator(),
        )
    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        return 1

    print("Type 'next', 'back' or 'quit'\n")

    result = manager.handle(StartIntake())
    print_step(result)

    while not result.complete:
        try:
            question = open_question(result, discloser)
            if question is not None:
                options = f" {list(question.options)}" if question.options else ""
                print(f"\n{question.prompt}{options}")
            elif result.visible_questions:
                print("\nType 'next' to continue")

            user_input = input("> ").strip()
            if not user_input:
                continue

            if user_input.lower() in EXIT_COMMANDS:
                print("\nIntake ended by user")
                return 0

            if user_input.lower() == 'next':
                outcome = manager.handle(Advance(state=result.state))
            elif user_input.lower() == 'back':
                outcome = manager.handle(GoBack(state=result.state))
            elif question is None:
                print("Nothing to answer here - type 'next'")
                continue
            elif question.kind == 'medication_history':
                # wegovy:duration=6 months
                med_id, _, detail = user_input.partition(':')
                detail_field, _, detail_value = detail.partition('=')
                if not detail_field:
                    outcome = manager.handle(AnswerQuestion(
                        state=result.state, field=f"{question.field}.{med_id.strip()}", value={},
                    ))
                else:
                    outcome = manager.handle(AnswerQuestion(
                        state=result.state,
                        field=f"{question.field}.{med_id.strip()}.{detail_field.strip()}",
                        value=detail_value.strip(),
                    ))
            else:
                outcome = manager.handle(AnswerQuestion(
                    state=result.state,
                    field=question.field,
                    value=parse_value(question, user_input),
                ))

            if isinstance(outcome, IllegalCommand):
                print(f"Rejected: {outcome.reason}")
                continue

            result = outcome
            print_step(result)

        except KeyboardInterrupt:
            print("\n\nIntake interrupted by user (Ctrl+C)")
            return 0

    payload = manager.handle(FinalizeIntake(state=result.state))

    print_separator()
    print("INTAKE COMPLETE")
    print_separator()
    print(f"  - Intake ID: {payload.intake_id}")
    print(f"  - Verdict: {payload.verdict_kind}")
    print(f"  - Warnings: {[w['type'] for w in payload.warnings]}")
    print(f"  - Answers: {len(payload.answers)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
