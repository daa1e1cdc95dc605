"""
Intake Manager - Intake flow orchestration (Functional Core)

Responsibilities:
- Accept commands (start, answer, advance, back, finalize)
- Route answers into the Answer Store and reveal sub-questions
- Run the eligibility rule table at evaluation points
- Apply the verdict directive (stop at the exclusion screen, or continue)
- Build the submission payload

Design principles:
- Ephemeral per command (no intake state held between commands)
- Functional core: FlowState in, FlowState out
- Thin orchestration layer (logic lives in the sequencer, discloser,
  evaluator and presenter)
- Lifecycle violations return IllegalCommand instead of raising

Continue:
    Single-select and boolean answers reveal the next sub-question at once.
    Multi-select and text answers do not; Advance on an incomplete section
    reveals the next sub-question instead of leaving the section.

Evaluation points:
    Advancing out of a section flagged evaluates_eligibility, or out of the
    last section of a screen containing such sections, evaluates the whole
    rule table. Once a verdict exists it is refreshed on every answer, so
    warnings never describe answers that have since changed.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from intake_engine.commands import (
    Advance,
    AnswerQuestion,
    FinalizeIntake,
    FlowState,
    GoBack,
    StartIntake,
)
from intake_engine.core.answer_store import AnswerStore
from intake_engine.results import IllegalCommand, StepResult, SubmissionPayload
from intake_engine.utils.glp1_history import summarize_history
from intake_engine.utils.helpers import derive_age, generate_intake_id
from intake_engine.utils.verdict_presenter import (
    FlowDirective,
    exclusion_view,
    present_verdict,
    warning_views,
)

logger = logging.getLogger(__name__)


class IntakeManager:
    """
    Orchestrates one intake flow per command.

    Functional core design:
    - Configs cached, state external
    - handle() transforms FlowState deterministically
    """

    def __init__(self, sequencer, discloser, evaluator):
        """
        Initialize Intake Manager with stateless collaborators.

        Args:
            sequencer: FlowSequencer instance
            discloser: SectionDiscloser instance
            evaluator: EligibilityEvaluator instance

        Raises:
            TypeError: If a collaborator lacks the required methods
        """
        self._validate_modules(sequencer, discloser, evaluator)

        self.sequencer = sequencer    # Stateless, safe to cache
        self.discloser = discloser    # Stateless, safe to cache
        self.evaluator = evaluator    # Stateless, safe to cache

        self._validate_wiring()

        logger.info("Intake Manager initialized (functional core)")

    def _validate_modules(self, sequencer, discloser, evaluator):
        """Validate module interfaces"""
        for name, module, methods in (
            ('sequencer', sequencer, ('next', 'previous', 'progress', 'advance', 'retreat')),
            ('discloser', discloser, ('visible_questions', 'missing_fields', 'reveal_after')),
            ('evaluator', evaluator, ('evaluate',)),
        ):
            for method in methods:
                if not callable(getattr(module, method, None)):
                    raise TypeError(f"{name} must have callable {method}() method")

    def _validate_wiring(self):
        """Every section named by a screen must exist."""
        errors = []
        for screen in self.sequencer.screens.values():
            for section_id in screen.sections:
                if section_id not in self.discloser.sections:
                    errors.append(f"Screen '{screen.id}' names unknown section '{section_id}'")

        if errors:
            raise ValueError("Intake wiring validation failed:\n  - " + "\n  - ".join(errors))

    # =========================================================================
    # Command handler
    # =========================================================================

    def handle(self, command) -> Union[StepResult, SubmissionPayload, IllegalCommand]:
        """
        Process one command.

        Args:
            command: StartIntake, AnswerQuestion, Advance, GoBack or FinalizeIntake

        Returns:
            StepResult, SubmissionPayload or IllegalCommand

        Raises:
            TypeError: If command is not a known command type
        """
        if isinstance(command, StartIntake):
            return self._start(command)
        if isinstance(command, AnswerQuestion):
            return self._answer(command)
        if isinstance(command, Advance):
            return self._advance(command)
        if isinstance(command, GoBack):
            return self._back(command)
        if isinstance(command, FinalizeIntake):
            return self._finalize(command)

        raise TypeError(f"Unknown command type: {type(command).__name__}")

    # =========================================================================
    # Command implementations
    # =========================================================================

    def _start(self, command: StartIntake) -> StepResult:
        intake_id = generate_intake_id(short=True)

        store = self._store(command.prefill or {})
        if store.has('date_of_birth'):
            store.set('age', derive_age(store.get('date_of_birth')))

        answers = store.snapshot()
        screen_id = self.sequencer.start
        section_id = self._section_id(screen_id, 1)

        state = FlowState(
            intake_id=intake_id,
            screen_id=screen_id,
            answers=answers,
            section_cursor=1,
            visible_count=self.discloser.resume_visible_count(section_id, answers) if section_id else 1,
            step_count=0,
        )

        logger.info(f"Started intake {intake_id}")
        return self._build_result(state)

    def _answer(self, command: AnswerQuestion) -> Union[StepResult, IllegalCommand]:
        state = command.state
        command_type = type(command).__name__

        if self.sequencer.is_terminal(state.screen_id):
            return IllegalCommand(
                reason=f"Screen '{state.screen_id}' is terminal, answers are closed",
                command_type=command_type,
            )

        section_id = self._section_id(state.screen_id, state.section_cursor)
        if section_id is None:
            return IllegalCommand(
                reason=f"Screen '{state.screen_id}' collects no answers",
                command_type=command_type,
            )

        root_field = self._root_field(command.field)
        if self.discloser.section_of(root_field) != section_id:
            return IllegalCommand(
                reason=f"Field '{command.field}' is not part of section '{section_id}'",
                command_type=command_type,
            )

        question = self.discloser.question(root_field)
        relevant = [q.field for q in self.discloser.relevant_questions(section_id, state.answers)]
        if root_field not in relevant:
            return IllegalCommand(
                reason=f"Field '{command.field}' is not relevant for the current answers",
                command_type=command_type,
            )

        store = self._store(state.answers)
        pruned = store.set(command.field, command.value)

        if root_field == 'date_of_birth':
            store.set('age', derive_age(store.get('date_of_birth')))

        answers = store.snapshot()
        auto_advance = self.discloser.should_auto_advance(root_field, store.get(root_field))

        # Multi-select and text answers wait for an explicit continue (Advance)
        visible_count = state.visible_count
        if auto_advance and self.discloser.is_answered(question, answers):
            visible_count = self.discloser.reveal_after(section_id, root_field, answers, visible_count)

        verdict = state.verdict
        if verdict is not None:
            verdict = self.evaluator.evaluate(answers)

        new_state = dataclasses.replace(
            state,
            answers=answers,
            visible_count=visible_count,
            verdict=verdict,
            step_count=state.step_count + 1,
        )

        logger.debug(f"[{state.intake_id}] {command.field} answered, visible={visible_count}")

        return self._build_result(
            new_state,
            pruned_fields=tuple(pruned),
            auto_advance=auto_advance,
        )

    def _advance(self, command: Advance) -> Union[StepResult, IllegalCommand]:
        state = command.state

        if self.sequencer.is_terminal(state.screen_id):
            return IllegalCommand(
                reason=f"Screen '{state.screen_id}' is terminal, nothing follows it",
                command_type=type(command).__name__,
            )

        screen = self.sequencer.screen(state.screen_id)
        section_id = self._section_id(state.screen_id, state.section_cursor)

        if section_id is not None:
            missing = self.discloser.missing_fields(section_id, state.answers)
            if missing:
                revealed = self.discloser.reveal_next(section_id, state.answers, state.visible_count)
                if revealed > state.visible_count:
                    logger.debug(f"[{state.intake_id}] Continue in {section_id}, visible={revealed}")
                    return self._build_result(dataclasses.replace(
                        state,
                        visible_count=revealed,
                        step_count=state.step_count + 1,
                    ))

                logger.info(f"[{state.intake_id}] Advance blocked, missing: {missing}")
                return self._build_result(state, missing_fields=tuple(missing))

            if self._is_evaluation_point(screen, section_id):
                verdict = self.evaluator.evaluate(state.answers)
                state = dataclasses.replace(state, verdict=verdict)

                if present_verdict(verdict) == FlowDirective.STOP_AND_SHOW_EXCLUSION:
                    logger.warning(f"[{state.intake_id}] Excluded by rule '{verdict.rule.type}'")
                    new_state = dataclasses.replace(
                        state,
                        screen_id=self.sequencer.exclusion_screen,
                        section_cursor=1,
                        visible_count=1,
                        step_count=state.step_count + 1,
                    )
                    return self._build_result(new_state)

                if verdict.warnings:
                    logger.info(f"[{state.intake_id}] Warnings: {list(verdict.warning_types)}")

        new_state = self.sequencer.advance(state, state.answers)
        new_state = dataclasses.replace(
            new_state,
            visible_count=self._resume_count(new_state),
            step_count=state.step_count + 1,
        )

        logger.info(f"[{state.intake_id}] Advanced to {new_state.screen_id} (section {new_state.section_cursor})")
        return self._build_result(new_state)

    def _back(self, command: GoBack) -> StepResult:
        state = command.state

        new_state = self.sequencer.retreat(state, state.answers)
        if new_state == state:
            return self._build_result(state)

        new_state = dataclasses.replace(
            new_state,
            visible_count=self._resume_count(new_state),
            step_count=state.step_count + 1,
        )

        logger.info(f"[{state.intake_id}] Back to {new_state.screen_id} (section {new_state.section_cursor})")
        return self._build_result(new_state)

    def _finalize(self, command: FinalizeIntake) -> Union[SubmissionPayload, IllegalCommand]:
        state = command.state

        if not self.sequencer.is_terminal(state.screen_id):
            return IllegalCommand(
                reason=f"Intake not complete (screen '{state.screen_id}')",
                command_type=type(command).__name__,
            )

        verdict = state.verdict
        if state.screen_id != self.sequencer.exclusion_screen:
            verdict = self.evaluator.evaluate(state.answers)

        payload = SubmissionPayload(
            intake_id=state.intake_id,
            answers=state.answers,
            verdict_kind=verdict.kind.value,
            exclusion=exclusion_view(verdict),
            warnings=warning_views(verdict),
            medication_history=summarize_history(state.answers.get('glp1_history')),
            submitted_at=datetime.now(timezone.utc).isoformat(),
        )

        logger.info(f"Finalized intake {state.intake_id}: {payload.verdict_kind}, {len(payload.warnings)} warning(s)")
        return payload

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _store(self, answers: dict) -> AnswerStore:
        return AnswerStore.for_sections(self.discloser, answers)

    def _root_field(self, field: str) -> str:
        """'glp1_history.wegovy.duration' -> 'glp1_history'; literal ids unchanged."""
        if self.discloser.question(field) is not None or '.' not in field:
            return field
        root = field.split('.')[0]
        return root if root in self.discloser.record_fields() else field

    def _section_id(self, screen_id: str, cursor: int) -> Optional[str]:
        sections = self.sequencer.screen(screen_id).sections
        if not sections:
            return None
        return sections[min(max(cursor, 1), len(sections)) - 1]

    def _resume_count(self, state: FlowState) -> int:
        section_id = self._section_id(state.screen_id, state.section_cursor)
        if section_id is None:
            return 1
        return self.discloser.resume_visible_count(section_id, state.answers)

    def _is_evaluation_point(self, screen, section_id: str) -> bool:
        if self.discloser.evaluates_eligibility(section_id):
            return True
        is_last = screen.sections and screen.sections[-1] == section_id
        return bool(is_last) and any(self.discloser.evaluates_eligibility(s) for s in screen.sections)

    def _build_result(
        self,
        state: FlowState,
        missing_fields: tuple = (),
        pruned_fields: tuple = (),
        auto_advance: bool = False,
    ) -> StepResult:
        """Assemble a StepResult for the state's current screen and section."""
        section_id = self._section_id(state.screen_id, state.section_cursor)

        visible = ()
        if section_id is not None:
            visible = tuple(
                q.field for q in self.discloser.visible_questions(section_id, state.answers, state.visible_count)
            )

        exclusion = None
        if state.screen_id == self.sequencer.exclusion_screen:
            exclusion = exclusion_view(state.verdict)

        return StepResult(
            state=state,
            screen_id=state.screen_id,
            section_id=section_id,
            progress=self.sequencer.progress(state.screen_id),
            visible_questions=visible,
            missing_fields=missing_fields,
            auto_advance=auto_advance,
            pruned_fields=pruned_fields,
            exclusion=exclusion,
            warnings=tuple(warning_views(state.verdict)),
            complete=self.sequencer.is_terminal(state.screen_id),
        )
