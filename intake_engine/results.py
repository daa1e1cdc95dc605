"""
Result types returned by IntakeManager.handle()

These are the ONLY return types from the command handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from intake_engine.commands import FlowState
from intake_engine.contracts import Progress


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of StartIntake, AnswerQuestion, Advance or GoBack.

    Attributes:
        state: Updated flow state (pass to the next command)
        screen_id: Screen to render
        section_id: Section to render (None on screens without sections)
        progress: Progress bar position
        visible_questions: Field ids to show, in order
        missing_fields: Required fields blocking an Advance (empty otherwise)
        auto_advance: The renderer may move on without a continue action
        pruned_fields: Answers removed because they stopped being relevant
        exclusion: Exclusion screen payload when the flow was stopped
        warnings: Warning payloads from the last verdict
        complete: The flow reached a terminal screen
    """
    state: FlowState
    screen_id: str
    section_id: Optional[str]
    progress: Progress
    visible_questions: Tuple[str, ...] = ()
    missing_fields: Tuple[str, ...] = ()
    auto_advance: bool = False
    pruned_fields: Tuple[str, ...] = ()
    exclusion: Optional[Dict[str, Any]] = None
    warnings: Tuple[Dict[str, Any], ...] = ()
    complete: bool = False


@dataclass(frozen=True)
class SubmissionPayload:
    """
    Final answers plus the last verdict, handed to clinical review.

    Returned by: FinalizeIntake

    Attributes:
        intake_id: Intake identifier
        answers: Final answer set
        verdict_kind: 'exclusion' or 'clear'
        exclusion: Exclusion payload (None when clear)
        warnings: Warning payloads in table order
        medication_history: Selected / current GLP-1 medications
        submitted_at: ISO-8601 UTC timestamp
    """
    intake_id: str
    answers: Dict[str, Any]
    verdict_kind: str
    exclusion: Optional[Dict[str, Any]]
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    medication_history: Dict[str, List[str]] = field(default_factory=dict)
    submitted_at: str = ""

    def to_json(self) -> dict:
        return {
            'intake_id': self.intake_id,
            'answers': self.answers,
            'verdict_kind': self.verdict_kind,
            'exclusion': self.exclusion,
            'warnings': self.warnings,
            'medication_history': self.medication_history,
            'submitted_at': self.submitted_at,
        }


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the manager (invalid lifecycle transition).

    Examples:
    - AnswerQuestion on a terminal screen
    - AnswerQuestion for a field not on the current section
    - FinalizeIntake before a terminal screen is reached

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
