"""
Verdict Presenter - Deterministic flow directive from an eligibility verdict.

Purpose:
    This module is the single boundary between eligibility evaluation and
    navigation. It collapses an EligibilityVerdict into one of three
    directives the Intake Manager acts on.

Scope:
    This module does NOT:
    - Evaluate rules
    - Move between screens
    - Write answers

    This module ONLY:
    - Interprets an EligibilityVerdict
    - Shapes the exclusion screen payload

Design Constraints:
    - Pure, total, deterministic functions
    - Never raises exceptions
    - No side effects, no logging
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from intake_engine.contracts import EligibilityRule, EligibilityVerdict


class FlowDirective(str, Enum):
    """
    What the sequencer does after a verdict.

    Values:
        STOP_AND_SHOW_EXCLUSION: Leave the declared order for the terminal
                                 exclusion screen, bypassing everything left.
        CONTINUE_WITH_WARNINGS: Proceed normally; warnings travel with the
                                submission payload.
        CONTINUE_CLEAN: Proceed normally, nothing to attach.
    """
    STOP_AND_SHOW_EXCLUSION = "stop_and_show_exclusion"
    CONTINUE_WITH_WARNINGS = "continue_with_warnings"
    CONTINUE_CLEAN = "continue_clean"


def present_verdict(verdict: Optional[EligibilityVerdict]) -> FlowDirective:
    """
    Map a verdict to a flow directive.

    Precedence rules (applied in order):
        1. Exclusion with a rule    -> STOP_AND_SHOW_EXCLUSION
        2. Clear with warnings      -> CONTINUE_WITH_WARNINGS
        3. Otherwise (incl. None)   -> CONTINUE_CLEAN

    Examples:
        >>> present_verdict(EligibilityVerdict(kind=VerdictKind.CLEAR))
        <FlowDirective.CONTINUE_CLEAN: 'continue_clean'>
    """
    if verdict is None:
        return FlowDirective.CONTINUE_CLEAN

    if verdict.is_exclusion and verdict.rule is not None:
        return FlowDirective.STOP_AND_SHOW_EXCLUSION

    if verdict.warnings:
        return FlowDirective.CONTINUE_WITH_WARNINGS

    return FlowDirective.CONTINUE_CLEAN


def exclusion_view(verdict: Optional[EligibilityVerdict]) -> Optional[Dict[str, Any]]:
    """
    Payload for the exclusion screen.

    Returns:
        dict with type, title, message, severity and resources, or None
        when the verdict is not an exclusion
    """
    if verdict is None or not verdict.is_exclusion or verdict.rule is None:
        return None

    rule = verdict.rule
    return {
        'type': rule.type,
        'title': rule.title,
        'message': rule.message,
        'severity': rule.severity,
        'resources': [
            {'label': r.label, 'value': r.value, 'icon_name': r.icon_name}
            for r in rule.resources
        ],
    }


def warning_views(verdict: Optional[EligibilityVerdict]) -> List[Dict[str, Any]]:
    """Warnings attached to the submission payload, in table order."""
    if verdict is None:
        return []
    return [_warning_view(rule) for rule in verdict.warnings]


def _warning_view(rule: EligibilityRule) -> Dict[str, Any]:
    return {
        'type': rule.type,
        'severity': rule.severity,
        'title': rule.title,
        'message': rule.message,
    }
