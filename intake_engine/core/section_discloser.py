"""
Section Discloser - Progressive disclosure of sub-questions within a screen

Responsibilities:
- Decide which sub-questions of a section are relevant for the answers so far
- Decide how many of them are visible (one new question per answer)
- Decide whether a section is complete
- Expose per-field relevance, exclusive options and record fields to the
  Answer Store, so storage and disclosure share one definition

Design principles:
- Stateless: visible_count is passed in and returned, never stored here
- Deterministic: same answers and count always produce the same questions
- One predicate: visibility and completion both use relevant_if, so a
  question hidden by a branch can never be "required but unanswered"
- No timers: reveal_after() reveals immediately; any settle delay for
  animation belongs to the renderer
- Fail fast: sections are validated on initialization

Branching example (medical_conditions):
    diabetes=no,  sex_birth=male   -> diabetes, medical_conditions, glp1_safety
    diabetes=yes, sex_birth=female -> diabetes, diabetes_type, pregnancy,
                                      medical_conditions, glp1_safety
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from intake_engine.contracts import Section, SubQuestion
from intake_engine.core.condition_evaluator import (
    evaluate_condition,
    is_answered,
    resolve_field,
    validate_condition,
)
from intake_engine.utils.glp1_history import is_history_complete
from intake_engine.utils.helpers import DATA_DIR, load_json_config

logger = logging.getLogger(__name__)

DEFAULT_SECTIONS_PATH = DATA_DIR / "assessment_sections.json"

QUESTION_KINDS = {
    'single_select',
    'multi_select',
    'boolean',
    'text',
    'date',
    'number',
    'medication_history',
}

# Kinds that reveal the next question as soon as they are answered
AUTO_ADVANCE_KINDS = {'single_select', 'boolean'}


class SectionDiscloser:
    """
    Stateless progressive-disclosure controller for every section.
    """

    def __init__(self, sections_path: str = str(DEFAULT_SECTIONS_PATH)):
        """
        Initialize discloser with section definitions.

        Args:
            sections_path: Path to assessment_sections.json

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If section definitions are malformed
        """
        self.sections_path = sections_path
        self.config = load_json_config(sections_path, "Section definitions")

        self._validate_sections()

        self.sections: Dict[str, Section] = {
            section_id: self._build_section(section_id, raw)
            for section_id, raw in self.config["sections"].items()
        }

        # field -> (section_id, question)
        self._questions_by_field: Dict[str, Tuple[str, SubQuestion]] = {}
        for section_id, section in self.sections.items():
            for question in section.questions:
                self._questions_by_field[question.field] = (section_id, question)

        logger.info(f"Section Discloser initialized with {len(self.sections)} sections")

    # =========================================================================
    # Public API
    # =========================================================================

    def section(self, section_id: str) -> Section:
        """
        Get a section definition.

        Raises:
            ValueError: If the section is unknown
        """
        if section_id not in self.sections:
            raise ValueError(f"Unknown section: {section_id}")
        return self.sections[section_id]

    def question(self, field: str) -> Optional[SubQuestion]:
        """Get the question writing this field, or None."""
        entry = self._questions_by_field.get(field)
        return entry[1] if entry else None

    def section_of(self, field: str) -> Optional[str]:
        """Get the id of the section containing this field, or None."""
        entry = self._questions_by_field.get(field)
        return entry[0] if entry else None

    def relevant_questions(self, section_id: str, answers: dict) -> List[SubQuestion]:
        """
        Questions of a section that apply to these answers.

        Args:
            section_id: Section identifier
            answers: Answer set

        Returns:
            list[SubQuestion]: Relevant questions in display order
        """
        return [
            q for q in self.section(section_id).questions
            if evaluate_condition(q.relevant_if, answers)
        ]

    def visible_questions(self, section_id: str, answers: dict, visible_count: int) -> List[SubQuestion]:
        """
        Questions currently shown.

        The first visible_count relevant questions, cut off after the first
        required question that is still unanswered (nothing is revealed
        past an open gate).

        Args:
            section_id: Section identifier
            answers: Answer set
            visible_count: Number of revealed questions (minimum 1)

        Returns:
            list[SubQuestion]: Visible questions in display order
        """
        visible = []
        limit = max(1, visible_count)

        for index, question in enumerate(self.relevant_questions(section_id, answers)):
            if index >= limit:
                break
            visible.append(question)
            if question.required and not self.is_answered(question, answers):
                break

        return visible

    def reveal_after(self, section_id: str, field: str, answers: dict, visible_count: int) -> int:
        """
        Visible count after a question has been answered.

        Reveals the question right after the answered one. Answering an
        earlier question again never hides anything already revealed.

        Args:
            section_id: Section identifier
            field: Field just answered
            answers: Answer set including the new answer
            visible_count: Current visible count

        Returns:
            int: New visible count
        """
        relevant = self.relevant_questions(section_id, answers)
        fields = [q.field for q in relevant]

        if field not in fields:
            return max(1, visible_count)

        return min(max(visible_count, fields.index(field) + 2), max(1, len(relevant)))

    def reveal_next(self, section_id: str, answers: dict, visible_count: int) -> int:
        """
        Visible count after an explicit continue inside a section.

        The next relevant question is revealed only when every visible
        required question has an answer.
        """
        relevant = self.relevant_questions(section_id, answers)
        visible = self.visible_questions(section_id, answers, visible_count)

        if len(visible) >= len(relevant):
            return max(1, visible_count)

        if any(q.required and not self.is_answered(q, answers) for q in visible):
            return max(1, visible_count)

        return len(visible) + 1

    def should_auto_advance(self, field: str, value: Any = None) -> bool:
        """
        Whether answering this field reveals the next question without an
        explicit continue action.

        Single-select and boolean questions auto-advance. A multi-select
        with only its exclusive option picked ("None of these") does too.
        """
        question = self.question(field)
        if question is None:
            return False

        if question.auto_advance or question.kind in AUTO_ADVANCE_KINDS:
            return True

        if question.exclusive_value and value == [question.exclusive_value]:
            return True

        return False

    def is_answered(self, question: SubQuestion, answers: dict) -> bool:
        """Whether a question has a usable answer."""
        value = resolve_field(answers, question.field)

        if question.kind == 'medication_history':
            return is_history_complete(value)

        return is_answered(value)

    def missing_fields(self, section_id: str, answers: dict) -> List[str]:
        """
        Relevant required fields without an answer.

        Args:
            section_id: Section identifier
            answers: Answer set

        Returns:
            list[str]: Field ids in display order
        """
        return [
            q.field for q in self.relevant_questions(section_id, answers)
            if q.required and not self.is_answered(q, answers)
        ]

    def is_section_complete(self, section_id: str, answers: dict) -> bool:
        """True when every relevant required question is answered."""
        return not self.missing_fields(section_id, answers)

    def resume_visible_count(self, section_id: str, answers: dict) -> int:
        """
        Visible count reconstructed from answers alone.

        Everything answered stays visible. The first unanswered relevant
        question is shown too when the answer before it would have revealed
        it on its own (single-select, boolean, exclusive option); after a
        multi-select or text answer it waits for a continue.

        Args:
            section_id: Section identifier
            answers: Answer set (e.g. restored from persistence)

        Returns:
            int: Visible count (minimum 1)
        """
        relevant = self.relevant_questions(section_id, answers)

        for index, question in enumerate(relevant):
            if not self.is_answered(question, answers):
                if index == 0:
                    return 1
                previous = relevant[index - 1]
                if self.should_auto_advance(previous.field, resolve_field(answers, previous.field)):
                    return index + 1
                return index

        return max(1, len(relevant))

    def evaluates_eligibility(self, section_id: str) -> bool:
        """Whether completing this section triggers rule evaluation."""
        return self.section(section_id).evaluates_eligibility

    # =========================================================================
    # Answer Store wiring
    # =========================================================================

    def relevance_map(self) -> Dict[str, dict]:
        """field -> relevant_if, for every conditionally relevant field."""
        return {
            field: question.relevant_if
            for field, (_, question) in self._questions_by_field.items()
            if question.relevant_if
        }

    def exclusive_values(self) -> Dict[str, str]:
        """field -> exclusive option, for multi-selects that have one."""
        return {
            field: question.exclusive_value
            for field, (_, question) in self._questions_by_field.items()
            if question.exclusive_value
        }

    def record_fields(self) -> List[str]:
        """Fields holding nested records (written through dotted paths)."""
        return [
            field for field, (_, question) in self._questions_by_field.items()
            if question.kind == 'medication_history'
        ]

    # =========================================================================
    # Construction & validation
    # =========================================================================

    def _build_section(self, section_id: str, raw: dict) -> Section:
        questions = []

        for raw_q in raw["questions"]:
            kind = raw_q.get("kind", "single_select")
            questions.append(SubQuestion(
                field=raw_q["field"],
                prompt=raw_q.get("prompt", ""),
                kind=kind,
                options=tuple(raw_q.get("options", [])),
                required=raw_q.get("required", True),
                relevant_if=raw_q.get("relevant_if"),
                exclusive_value=raw_q.get("exclusive_value"),
                auto_advance=raw_q.get("auto_advance", False),
            ))

        return Section(
            id=section_id,
            title=raw.get("title"),
            questions=tuple(questions),
            evaluates_eligibility=raw.get("evaluates_eligibility", False),
        )

    def _validate_sections(self):
        """
        Validate section definitions on initialization.

        Checks:
        - 'sections' exists and no section is empty
        - Every question has a field and a known kind
        - No field is written by two questions
        - relevant_if conditions are well formed
        - exclusive_value is one of the options

        Raises:
            ValueError: If validation fails
        """
        errors = []
        sections = self.config.get("sections")

        if not isinstance(sections, dict) or not sections:
            raise ValueError("Section definitions validation failed:\n  - Missing 'sections'")

        seen_fields = set()

        for section_id, raw in sections.items():
            questions = raw.get("questions") if isinstance(raw, dict) else None

            if not questions:
                errors.append(f"Section '{section_id}' has no questions")
                continue

            for i, question in enumerate(questions):
                field = question.get("field")

                if not field:
                    errors.append(f"Question at index {i} in section '{section_id}' missing 'field'")
                    continue

                if field in seen_fields:
                    errors.append(f"Duplicate field '{field}'")
                seen_fields.add(field)

                kind = question.get("kind", "single_select")
                if kind not in QUESTION_KINDS:
                    errors.append(f"Field '{field}' has unknown kind '{kind}'")

                errors.extend(validate_condition(question.get("relevant_if"), f"'{field}'.relevant_if"))

                exclusive = question.get("exclusive_value")
                if exclusive is not None and exclusive not in question.get("options", []):
                    errors.append(f"Field '{field}' exclusive_value '{exclusive}' is not an option")

        if errors:
            error_msg = "Section definitions validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)
