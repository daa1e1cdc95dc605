"""
Answer Store - Single source of truth for collected answers

Responsibilities:
- Hold the answer set: field id -> value
- Normalize multi-selects that carry an exclusive option ("None of these")
- Write dotted field ids into nested records (glp1_history.wegovy.duration)
- Prune answers whose question stopped being relevant after a change
- Produce deep-copied snapshots for persistence and evaluation

Design principles:
- Dumb container: no navigation, no eligibility, no disclosure decisions
- Relevance comes from the section definitions (SectionDiscloser.relevance_map()),
  so a stale branch answer can never reach the rule table
- Pruning runs to a fixed point: clearing one field may make another
  irrelevant (diabetes=no clears diabetes_type, and so on)
- Setting a field to None removes it

Field ids:
    Literal keys always win, so 'goal.range' is stored as one top-level key.
    A dotted id is written into a nested record only when its first part is
    a record field (e.g. 'glp1_history').
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from intake_engine.core.condition_evaluator import evaluate_condition, is_answered, resolve_field

logger = logging.getLogger(__name__)


class AnswerStore:
    """Mutable answer set with relevance pruning."""

    def __init__(
        self,
        relevance: Optional[Dict[str, dict]] = None,
        exclusive_values: Optional[Dict[str, str]] = None,
        record_fields: Optional[Iterable[str]] = None,
        answers: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize store.

        Args:
            relevance: field -> relevant_if predicate
            exclusive_values: field -> exclusive multi-select option
            record_fields: Fields holding nested records
            answers: Initial answers (deep copied, then pruned)
        """
        self.relevance: Dict[str, dict] = dict(relevance or {})
        self.exclusive_values: Dict[str, str] = dict(exclusive_values or {})
        self.record_fields = set(record_fields or ())
        self.answers: Dict[str, Any] = copy.deepcopy(answers) if answers else {}

        pruned = self._prune()
        if pruned:
            logger.info(f"Pruned irrelevant answers on load: {pruned}")

    @classmethod
    def for_sections(cls, discloser, answers: Optional[Dict[str, Any]] = None) -> "AnswerStore":
        """
        Build a store wired to a SectionDiscloser's definitions.

        Args:
            discloser: SectionDiscloser instance
            answers: Initial answers

        Returns:
            AnswerStore
        """
        return cls(
            relevance=discloser.relevance_map(),
            exclusive_values=discloser.exclusive_values(),
            record_fields=discloser.record_fields(),
            answers=answers,
        )

    # ========================
    # Reads
    # ========================

    def get(self, field: str, default: Any = None) -> Any:
        """
        Get an answer.

        Args:
            field: Field id (literal or dotted)
            default: Returned when the field is absent

        Returns:
            Stored value or default
        """
        return resolve_field(self.answers, field, default)

    def has(self, field: str) -> bool:
        """True if the field has a stored value."""
        return self.get(field) is not None

    def snapshot(self) -> Dict[str, Any]:
        """
        Deep copy of the answer set.

        Returns:
            dict: Independent copy, safe to persist or mutate
        """
        return copy.deepcopy(self.answers)

    # ========================
    # Writes
    # ========================

    def set(self, field: str, value: Any) -> List[str]:
        """
        Store an answer and prune whatever it made irrelevant.

        Args:
            field: Field id
            value: New value (None or an empty value removes the field)

        Returns:
            list[str]: Fields removed by pruning

        Example:
            store.set('diabetes', 'yes')
            store.set('diabetes_type', 'type2')
            store.set('diabetes', 'no')   # -> ['diabetes_type']
        """
        if not is_answered(value):
            self._delete(field)
        else:
            if field in self.exclusive_values:
                value = self._normalize_exclusive(field, value)
            self._write(field, copy.deepcopy(value))

        pruned = self._prune()
        if pruned:
            logger.info(f"Answer to '{field}' pruned: {pruned}")
        return pruned

    def set_many(self, values: Dict[str, Any]) -> List[str]:
        """
        Store several answers, pruning after each.

        Args:
            values: field -> value, applied in iteration order

        Returns:
            list[str]: All fields removed by pruning
        """
        pruned = []
        for field, value in values.items():
            pruned.extend(self.set(field, value))
        return pruned

    def clear(self, selector: Union[str, Callable[[str], bool]]) -> List[str]:
        """
        Remove answers by prefix or predicate.

        Args:
            selector: Field id prefix (e.g. 'glp1_history') or a callable
                taking a field id and returning True to remove it

        Returns:
            list[str]: Removed field ids, pruned dependents included
        """
        removed = []

        if callable(selector):
            matches = selector
        else:
            prefix = selector

            def matches(field):
                return field.startswith(prefix)

            # 'glp1_history.wegovy' reaches inside a record
            if self._record_path(prefix) is not None and self.get(prefix) is not None:
                self._delete(prefix)
                removed.append(prefix)

        for field in [f for f in self.answers if matches(f)]:
            del self.answers[field]
            removed.append(field)

        pruned = self._prune()
        if removed:
            logger.info(f"Cleared answers: {removed}")
        return removed + pruned

    # ========================
    # Private Helpers
    # ========================

    def _normalize_exclusive(self, field: str, value: Any) -> Any:
        """
        Keep an exclusive option and ordinary options apart.

        Newly picking the exclusive option drops everything else; picking an
        ordinary option while the exclusive one was selected drops it.
        """
        if not isinstance(value, list):
            return value

        exclusive = self.exclusive_values[field]
        if exclusive not in value or len(value) == 1:
            return value

        previous = self.answers.get(field)
        previous = previous if isinstance(previous, list) else []

        if exclusive not in previous:
            return [exclusive]
        return [item for item in value if item != exclusive]

    def _record_path(self, field: str) -> Optional[List[str]]:
        """Split a dotted id whose root is a record field, else None."""
        if field in self.answers or '.' not in field:
            return None
        parts = field.split('.')
        if parts[0] not in self.record_fields:
            return None
        return parts

    def _write(self, field: str, value: Any):
        parts = self._record_path(field)
        if parts is None:
            self.answers[field] = value
            return

        current = self.answers
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def _delete(self, field: str):
        if field in self.answers:
            del self.answers[field]
            return

        parts = self._record_path(field)
        if parts is None:
            return

        current = self.answers
        for part in parts[:-1]:
            current = current.get(part)
            if not isinstance(current, dict):
                return
        current.pop(parts[-1], None)

    def _prune(self) -> List[str]:
        """
        Remove answers whose relevance predicate no longer holds.

        Repeats until nothing changes.

        Returns:
            list[str]: Removed field ids, in removal order
        """
        removed = []
        changed = True

        while changed:
            changed = False
            for field, condition in self.relevance.items():
                if field in self.answers and not evaluate_condition(condition, self.answers):
                    del self.answers[field]
                    removed.append(field)
                    changed = True

        return removed
