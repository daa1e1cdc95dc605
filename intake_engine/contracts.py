"""
Semantic contracts for the intake flow engine.

This module defines immutable data structures that serve as contracts
between modules. These are NOT validators - they define shape and
semantics without enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- No validation logic (loaders validate configuration, contracts only carry it)
- No dependencies on other modules
- Tuples instead of lists wherever a collection is carried

Contents:
- Resource: Support resource shown with an exclusion (hotline, text line)
- EligibilityRule: One row of the eligibility rule table
- EligibilityVerdict: Result of evaluating the rule table
- SubQuestion / Section: Progressive-disclosure building blocks
- ScreenDescriptor: One top-level screen of the flow graph
- Progress: Progress bar position for a screen

Usage:
    from intake_engine.contracts import EligibilityVerdict, VerdictKind
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class VerdictKind(str, Enum):
    """Outcome of evaluating the rule table."""
    EXCLUSION = "exclusion"
    CLEAR = "clear"


class RuleKind(str, Enum):
    """Whether a rule halts the flow or only flags the case."""
    EXCLUSION = "exclusion"
    WARNING = "warning"


VALID_SEVERITIES = {"critical", "warning", "info"}


@dataclass(frozen=True)
class Resource:
    """
    Support resource attached to an exclusion.

    Attributes:
        label: Display label, e.g. '988 Crisis Lifeline (24/7)'
        value: Contact instruction, e.g. 'Call or text 988'
        icon_name: Icon hint for the renderer ('phone', 'message')
    """
    label: str
    value: str
    icon_name: Optional[str] = None


@dataclass(frozen=True)
class EligibilityRule:
    """
    One record of the eligibility rule table.

    Rules are evaluated in table order. For exclusions the first match wins,
    for warnings every match is collected. Equality compares display data
    only, so a rule restored from a persisted verdict equals the live one.

    Attributes:
        type: Stable tag, e.g. 'mental_health_crisis', 'pancreatitis_review'
        kind: RuleKind.EXCLUSION or RuleKind.WARNING
        severity: 'critical', 'warning' or 'info'
        condition: Predicate over the answer set (condition_evaluator DSL)
        title: Display title
        message: Display message
        resources: Support resources (may be empty)
        variant_field: Field whose value selects a message variant
        variants: ((value, title, message), ...) alternatives keyed by
            the value of variant_field. When the rule is matched, the
            evaluator returns a copy with title/message already resolved.
    """
    type: str
    kind: RuleKind
    severity: str
    condition: Dict[str, Any] = field(compare=False)
    title: str
    message: str
    resources: Tuple[Resource, ...] = ()
    variant_field: Optional[str] = field(default=None, compare=False)
    variants: Tuple[Tuple[str, str, str], ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class EligibilityVerdict:
    """
    Result of EligibilityEvaluator.evaluate() for one answer snapshot.

    Either:
        kind=EXCLUSION, rule=<matched exclusion>, warnings=()
    or:
        kind=CLEAR, rule=None, warnings=(<matched warnings>...)

    Immutable once produced; recomputed whenever relevant answers change.
    """
    kind: VerdictKind
    rule: Optional[EligibilityRule] = None
    warnings: Tuple[EligibilityRule, ...] = ()

    @property
    def is_exclusion(self) -> bool:
        return self.kind == VerdictKind.EXCLUSION

    @property
    def warning_types(self) -> Tuple[str, ...]:
        return tuple(w.type for w in self.warnings)

    def to_json(self) -> dict:
        """
        Serialize to JSON-safe dict.

        Only display data is serialized; predicates stay in the rule table.
        """
        return {
            'kind': self.kind.value,
            'rule': _rule_to_json(self.rule) if self.rule else None,
            'warnings': [_rule_to_json(w) for w in self.warnings],
        }

    @staticmethod
    def from_json(data: dict) -> "EligibilityVerdict":
        """
        Deserialize from a dict produced by to_json().

        Args:
            data: Serialized verdict

        Returns:
            EligibilityVerdict
        """
        rule_data = data.get('rule')
        return EligibilityVerdict(
            kind=VerdictKind(data['kind']),
            rule=_rule_from_json(rule_data) if rule_data else None,
            warnings=tuple(_rule_from_json(w) for w in data.get('warnings', [])),
        )


def _rule_to_json(rule: EligibilityRule) -> dict:
    return {
        'type': rule.type,
        'kind': rule.kind.value,
        'severity': rule.severity,
        'title': rule.title,
        'message': rule.message,
        'resources': [
            {'label': r.label, 'value': r.value, 'icon_name': r.icon_name}
            for r in rule.resources
        ],
    }


def _rule_from_json(data: dict) -> EligibilityRule:
    return EligibilityRule(
        type=data['type'],
        kind=RuleKind(data['kind']),
        severity=data.get('severity', 'warning'),
        condition={},
        title=data.get('title', ''),
        message=data.get('message', ''),
        resources=tuple(
            Resource(label=r['label'], value=r['value'], icon_name=r.get('icon_name'))
            for r in data.get('resources', [])
        ),
    )


@dataclass(frozen=True)
class SubQuestion:
    """
    One question inside a section.

    Attributes:
        field: Answer set key written by this question (also its id)
        prompt: Question text
        kind: 'single_select', 'multi_select', 'boolean', 'text', 'date',
            'number' or 'medication_history'
        options: Allowed values for select kinds (empty = any value)
        required: Whether the section needs an answer when the question is relevant
        relevant_if: Predicate deciding whether the question applies at all
        exclusive_value: Multi-select option that excludes every other option
        auto_advance: Answering reveals the next question without a continue action
    """
    field: str
    prompt: str
    kind: str = "single_select"
    options: Tuple[str, ...] = ()
    required: bool = True
    relevant_if: Optional[Dict[str, Any]] = None
    exclusive_value: Optional[str] = None
    auto_advance: bool = False


@dataclass(frozen=True)
class Section:
    """
    Logical group of sub-questions within one screen.

    Attributes:
        id: Section identifier, e.g. 'medical_conditions'
        title: Section label shown by the renderer
        questions: Sub-questions in display order
        evaluates_eligibility: Completing this section triggers rule evaluation
    """
    id: str
    title: Optional[str]
    questions: Tuple[SubQuestion, ...]
    evaluates_eligibility: bool = False


@dataclass(frozen=True)
class ScreenDescriptor:
    """
    One top-level screen of the flow graph. Read-only at runtime.

    Attributes:
        id: Screen identifier
        step: Progress step number (derived at load time)
        label: Progress label (None for interstitials)
        sections: Section ids shown on this screen, in order
        interstitial: Screen collects no data
        terminal: Flow ends here
        detached: Not part of the declared order (reached only by directive)
        allow_back: Whether back navigation leaves this screen
        next_rules: ({"if": cond, "go_to": id} | {"else": id}, ...)
        back_rules: Same shape, consulted by previous()
        skip_if: Predicate; when true the screen is passed over
    """
    id: str
    step: int
    label: Optional[str] = None
    sections: Tuple[str, ...] = ()
    interstitial: bool = False
    terminal: bool = False
    detached: bool = False
    allow_back: bool = True
    next_rules: Tuple[Dict[str, Any], ...] = ()
    back_rules: Tuple[Dict[str, Any], ...] = ()
    skip_if: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Progress:
    """
    Progress bar position.

    Attributes:
        step: Current step (1-based)
        total: Fixed total number of steps
        label: Section label, None when the screen shows none
        percentage: step / total * 100, rounded to one decimal
    """
    step: int
    total: int
    label: Optional[str]
    percentage: float
