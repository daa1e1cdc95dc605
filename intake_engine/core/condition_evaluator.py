"""
Condition Evaluator - Declarative predicate language shared by the intake engine

Responsibilities:
- Evaluate JSON predicates against an answer set
- Validate predicate structure when configuration is loaded
- Resolve field ids (literal keys first, then dotted paths into nested records)

Used by:
- EligibilityEvaluator (rule predicates)
- SectionDiscloser (relevant_if on sub-questions)
- AnswerStore (relevance pruning)
- FlowSequencer (routing, back rules, skip rules)

Design principles:
- Total: evaluation never raises, whatever the answer values look like
- Missing fields evaluate to False (field doesn't exist = condition not met)
- Malformed values evaluate to False (a string where a list is expected
  does not "contain" anything)
- Structure errors are caught at load time by validate_condition(), not
  at evaluation time

Supported operators:
    all, any, not                       logical
    eq, ne, in                          value comparison
    is_true, is_false                   strict boolean checks
    exists, not_empty                   presence checks
    contains, contains_any              multi-select membership
    matches                             regular expression on strings
"""

import logging
import re
from typing import Any, List, Optional, Set

logger = logging.getLogger(__name__)

_MISSING = object()

# Operator name -> expected argument shape
#   'list'   : list of sub-conditions
#   'cond'   : single sub-condition
#   'field'  : field id string
#   'pair'   : [field, value]
#   'pair_list': [field, [values]]
OPERATORS = {
    'all': 'list',
    'any': 'list',
    'not': 'cond',
    'eq': 'pair',
    'ne': 'pair',
    'in': 'pair_list',
    'is_true': 'field',
    'is_false': 'field',
    'exists': 'field',
    'not_empty': 'field',
    'contains': 'pair',
    'contains_any': 'pair_list',
    'matches': 'pair',
}


def resolve_field(answers: dict, field: str, default: Any = None) -> Any:
    """
    Look up a field in the answer set.

    Literal keys win ('goal.range' is a top-level key in the goals section).
    Otherwise a dotted id walks nested dicts: 'glp1_history.wegovy.duration'.

    Args:
        answers: Answer set
        field: Field id
        default: Returned when the field cannot be resolved

    Returns:
        Field value or default
    """
    if not isinstance(answers, dict) or not isinstance(field, str):
        return default

    if field in answers:
        return answers[field]

    if '.' not in field:
        return default

    current = answers
    for part in field.split('.'):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def is_answered(value: Any) -> bool:
    """
    True when a value counts as an answer.

    None, empty strings (after strip), empty lists and empty dicts are
    unanswered. False and 0 are answers.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ''
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def evaluate_condition(dsl: Optional[dict], answers: dict) -> bool:
    """
    Evaluate a predicate against the answer set.

    Args:
        dsl: Predicate dict, e.g. {"contains": ["medical_conditions", "pancreatitis"]}
        answers: Answer set

    Returns:
        bool: Evaluation result (never raises)
    """
    if not dsl:
        return True  # Empty condition is vacuously true

    if not isinstance(dsl, dict):
        logger.warning(f"Condition is not a dict: {dsl!r}")
        return False

    # Logical operators
    if "all" in dsl:
        conditions = dsl["all"]
        if not isinstance(conditions, list):
            return False
        return all(evaluate_condition(sub, answers) for sub in conditions)

    if "any" in dsl:
        conditions = dsl["any"]
        if not isinstance(conditions, list) or not conditions:
            return False  # Empty any = no conditions met
        return any(evaluate_condition(sub, answers) for sub in conditions)

    if "not" in dsl:
        return not evaluate_condition(dsl["not"], answers)

    # Comparison operators
    if "eq" in dsl:
        field, expected = _pair(dsl["eq"])
        actual = resolve_field(answers, field, _MISSING)
        return actual is not _MISSING and actual == expected

    if "ne" in dsl:
        field, expected = _pair(dsl["ne"])
        return resolve_field(answers, field) != expected

    if "in" in dsl:
        field, allowed = _pair(dsl["in"])
        actual = resolve_field(answers, field)
        if actual is None or not isinstance(allowed, list):
            return False
        if isinstance(actual, (list, dict)):
            return False
        return actual in allowed

    # Boolean operators
    if "is_true" in dsl:
        return resolve_field(answers, dsl["is_true"]) is True

    if "is_false" in dsl:
        return resolve_field(answers, dsl["is_false"]) is False

    # Presence operators
    if "exists" in dsl:
        return resolve_field(answers, dsl["exists"]) is not None

    if "not_empty" in dsl:
        return is_answered(resolve_field(answers, dsl["not_empty"]))

    # Multi-select operators
    if "contains" in dsl:
        field, item = _pair(dsl["contains"])
        values = resolve_field(answers, field)
        if not isinstance(values, (list, tuple, set)):
            return False
        return item in values

    if "contains_any" in dsl:
        field, items = _pair(dsl["contains_any"])
        values = resolve_field(answers, field)
        if not isinstance(values, (list, tuple, set)) or not isinstance(items, list):
            return False
        return any(item in values for item in items)

    # String operator
    if "matches" in dsl:
        field, pattern = _pair(dsl["matches"])
        value = resolve_field(answers, field)
        if not isinstance(value, str) or not isinstance(pattern, str):
            return False
        return re.search(pattern, value.strip()) is not None

    # Unknown operator
    logger.warning(f"Unknown condition operator: {list(dsl.keys())}")
    return False


def _pair(args: Any):
    """Unpack [field, value] arguments, tolerating malformed shapes."""
    if isinstance(args, (list, tuple)) and len(args) == 2:
        return args[0], args[1]
    return None, None


def validate_condition(dsl: Any, where: str) -> List[str]:
    """
    Check predicate structure.

    Args:
        dsl: Predicate to check
        where: Location label used in error messages

    Returns:
        list[str]: Errors found (empty when valid)
    """
    errors = []

    if dsl is None or dsl == {}:
        return errors

    if not isinstance(dsl, dict):
        return [f"{where}: condition must be an object, got {type(dsl).__name__}"]

    if len(dsl) != 1:
        return [f"{where}: condition must have exactly one operator, got {sorted(dsl.keys())}"]

    operator, args = next(iter(dsl.items()))
    shape = OPERATORS.get(operator)

    if shape is None:
        return [f"{where}: unknown operator '{operator}'"]

    if shape == 'list':
        if not isinstance(args, list):
            errors.append(f"{where}: '{operator}' expects a list of conditions")
        else:
            for i, sub in enumerate(args):
                errors.extend(validate_condition(sub, f"{where}.{operator}[{i}]"))

    elif shape == 'cond':
        if not isinstance(args, dict) or not args:
            errors.append(f"{where}: '{operator}' expects a condition")
        else:
            errors.extend(validate_condition(args, f"{where}.{operator}"))

    elif shape == 'field':
        if not isinstance(args, str) or not args:
            errors.append(f"{where}: '{operator}' expects a field id")

    elif shape in ('pair', 'pair_list'):
        if not isinstance(args, list) or len(args) != 2 or not isinstance(args[0], str):
            errors.append(f"{where}: '{operator}' expects [field, value]")
        elif shape == 'pair_list' and not isinstance(args[1], list):
            errors.append(f"{where}: '{operator}' expects [field, [values]]")
        elif operator == 'matches':
            try:
                re.compile(args[1])
            except (re.error, TypeError) as e:
                errors.append(f"{where}: invalid pattern for 'matches': {e}")

    return errors


def referenced_fields(dsl: Any) -> Set[str]:
    """
    Collect every field id a predicate reads.

    Args:
        dsl: Predicate

    Returns:
        set[str]: Field ids
    """
    fields = set()

    if not isinstance(dsl, dict):
        return fields

    for operator, args in dsl.items():
        shape = OPERATORS.get(operator)
        if shape == 'list' and isinstance(args, list):
            for sub in args:
                fields |= referenced_fields(sub)
        elif shape == 'cond':
            fields |= referenced_fields(args)
        elif shape == 'field' and isinstance(args, str):
            fields.add(args)
        elif shape in ('pair', 'pair_list') and isinstance(args, list) and args:
            if isinstance(args[0], str):
                fields.add(args[0])

    return fields
