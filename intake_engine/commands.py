"""
Command types for IntakeManager control flow.

Commands are the ONLY public interface to IntakeManager.
No direct method calls. No state inspection beyond FlowState. Commands only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import copy

from intake_engine.contracts import EligibilityVerdict


@dataclass(frozen=True)
class FlowState:
    """
    Explicit position in the intake flow.

    Everything needed to resume is here: which screen, which section on
    that screen, how many sub-questions are revealed, the answers and the
    last verdict. Nothing lives in the manager between commands.

    Attributes:
        intake_id: Intake identifier
        screen_id: Current screen
        answers: Answer set (deep copied on every transition)
        section_cursor: 1-based section index within the screen
        visible_count: Revealed sub-questions in the current section
        verdict: Last computed eligibility verdict (None before the first
            evaluation point)
        step_count: Number of accepted commands (used for persistence)
    """
    intake_id: str
    screen_id: str
    answers: Dict[str, Any] = field(default_factory=dict)
    section_cursor: int = 1
    visible_count: int = 1
    verdict: Optional[EligibilityVerdict] = None
    step_count: int = 0

    def to_json(self) -> dict:
        """
        Serialize to JSON-safe dict (deep copy).

        Returns:
            dict: Deep copy of the state
        """
        return {
            'intake_id': self.intake_id,
            'screen_id': self.screen_id,
            'answers': copy.deepcopy(self.answers),
            'section_cursor': self.section_cursor,
            'visible_count': self.visible_count,
            'verdict': self.verdict.to_json() if self.verdict else None,
            'step_count': self.step_count,
        }

    @staticmethod
    def from_json(data: dict) -> "FlowState":
        """
        Deserialize from JSON dict.

        Deep copies so no external reference can mutate the state.

        Args:
            data: Raw state dict from JSON

        Returns:
            FlowState
        """
        verdict_data = data.get('verdict')
        return FlowState(
            intake_id=data['intake_id'],
            screen_id=data['screen_id'],
            answers=copy.deepcopy(data.get('answers', {})),
            section_cursor=data.get('section_cursor', 1),
            visible_count=data.get('visible_count', 1),
            verdict=EligibilityVerdict.from_json(verdict_data) if verdict_data else None,
            step_count=data.get('step_count', 0),
        )


# Command types

@dataclass(frozen=True)
class StartIntake:
    """
    Begin a new intake.

    No state parameter - the manager creates the initial state.
    prefill carries answers known before the flow starts (e.g. an email
    captured on a landing page, which makes the email screen skip).
    Returns: StepResult on the start screen.
    """
    prefill: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AnswerQuestion:
    """
    Record one answer on the current screen.

    Returns: StepResult with updated visibility (screen unchanged).
    """
    state: FlowState
    field: str
    value: Any


@dataclass(frozen=True)
class Advance:
    """
    Continue action: next section or next screen.

    Blocked (state unchanged, missing_fields populated) while the current
    section is incomplete.
    Returns: StepResult.
    """
    state: FlowState


@dataclass(frozen=True)
class GoBack:
    """
    Back action: previous section or previous screen.

    Returns: StepResult.
    """
    state: FlowState


@dataclass(frozen=True)
class FinalizeIntake:
    """
    Build the submission payload.

    Only valid on a terminal screen.
    Returns: SubmissionPayload.
    """
    state: FlowState


# Command union type for type hints
Command = StartIntake | AnswerQuestion | Advance | GoBack | FinalizeIntake
