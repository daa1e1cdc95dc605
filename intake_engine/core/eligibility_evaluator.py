"""
Eligibility Evaluator - Priority-ordered rule table over the answer set

Responsibilities:
- Load the rule table (exclusions, then warnings) from JSON
- Return the first matching exclusion, or every matching warning
- Resolve message variants (pregnancy wording depends on the answer)

Design principles:
- Pure: same answers always produce the same verdict, no hidden state
- Total: never raises for a partially filled or malformed answer set;
  absent fields mean "not applicable", not "matched"
- Priority order is a contract: the table order in the JSON file is the
  evaluation order, and the first exclusion short-circuits
- Fail fast: the rule table is validated on initialization

Evaluation points:
    The intake manager calls evaluate() whenever a section flagged
    evaluates_eligibility completes (mental health, eating & substance use,
    medical conditions, medications) and again when the assessment ends.
    Evaluating the whole table each time is safe because unanswered
    fields never match.
"""

import dataclasses
import logging
from typing import List, Optional

from intake_engine.contracts import (
    EligibilityRule,
    EligibilityVerdict,
    Resource,
    RuleKind,
    VALID_SEVERITIES,
    VerdictKind,
)
from intake_engine.core.condition_evaluator import (
    evaluate_condition,
    resolve_field,
    validate_condition,
)
from intake_engine.utils.helpers import DATA_DIR, load_json_config

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = DATA_DIR / "eligibility_rules.json"


class EligibilityEvaluator:
    """
    Deterministic eligibility rule evaluator.

    Holds only the rule table; answers come in with every call.
    """

    def __init__(self, rules_path: str = str(DEFAULT_RULES_PATH)):
        """
        Initialize evaluator with a rule table.

        Args:
            rules_path: Path to eligibility_rules.json

        Raises:
            FileNotFoundError: If the rule table doesn't exist
            ValueError: If the rule table is malformed
        """
        self.rules_path = rules_path
        self.ruleset = load_json_config(rules_path, "Eligibility rule table")

        self._validate_ruleset()

        self.exclusions = tuple(
            self._build_rule(raw, RuleKind.EXCLUSION) for raw in self.ruleset["exclusions"]
        )
        self.warnings = tuple(
            self._build_rule(raw, RuleKind.WARNING) for raw in self.ruleset["warnings"]
        )

        logger.info(
            f"Eligibility Evaluator initialized with {len(self.exclusions)} exclusions, "
            f"{len(self.warnings)} warnings (version {self.ruleset.get('version', 'unknown')})"
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def evaluate(self, answers: dict) -> EligibilityVerdict:
        """
        Evaluate the rule table against an answer set.

        Args:
            answers: Answer set (may be partial)

        Returns:
            EligibilityVerdict: exclusion with the first matching rule, or
            clear with all matching warnings in table order
        """
        if not isinstance(answers, dict):
            answers = {}

        for rule in self.exclusions:
            if evaluate_condition(rule.condition, answers):
                logger.debug(f"Exclusion matched: {rule.type}")
                return EligibilityVerdict(
                    kind=VerdictKind.EXCLUSION,
                    rule=self._resolve_variant(rule, answers),
                )

        warnings = tuple(
            rule for rule in self.warnings
            if evaluate_condition(rule.condition, answers)
        )

        if warnings:
            logger.debug(f"Warnings matched: {[w.type for w in warnings]}")

        return EligibilityVerdict(kind=VerdictKind.CLEAR, warnings=warnings)

    @property
    def exclusion_types(self) -> List[str]:
        """Exclusion rule types in priority order."""
        return [rule.type for rule in self.exclusions]

    @property
    def warning_types(self) -> List[str]:
        """Warning rule types in table order."""
        return [rule.type for rule in self.warnings]

    # =========================================================================
    # Rule construction
    # =========================================================================

    def _build_rule(self, raw: dict, kind: RuleKind) -> EligibilityRule:
        """Convert one validated JSON record into an EligibilityRule."""
        variants = raw.get("variants", {})

        return EligibilityRule(
            type=raw["type"],
            kind=kind,
            severity=raw.get("severity", "critical" if kind == RuleKind.EXCLUSION else "warning"),
            condition=raw["condition"],
            title=raw["title"],
            message=raw["message"],
            resources=tuple(
                Resource(label=r["label"], value=r["value"], icon_name=r.get("icon_name"))
                for r in raw.get("resources", [])
            ),
            variant_field=raw.get("variant_field"),
            variants=tuple(
                (value, v["title"], v["message"]) for value, v in variants.items()
            ),
        )

    def _resolve_variant(self, rule: EligibilityRule, answers: dict) -> EligibilityRule:
        """
        Pick the title/message variant matching the answer.

        Falls back to the rule's default wording when the field value has
        no variant.
        """
        if not rule.variant_field:
            return rule

        value = resolve_field(answers, rule.variant_field)

        for variant_value, title, message in rule.variants:
            if variant_value == value:
                return dataclasses.replace(rule, title=title, message=message)

        return rule

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_ruleset(self):
        """
        Validate rule table structure on initialization.

        Checks:
        - 'exclusions' and 'warnings' lists exist
        - Every rule has type, title, message and a valid condition
        - Types are unique across the whole table
        - Severities are known
        - Resources have label and value
        - Variants have title and message and name a variant_field

        Raises:
            ValueError: If validation fails
        """
        errors = []
        seen_types = set()

        for section in ("exclusions", "warnings"):
            rules = self.ruleset.get(section)

            if not isinstance(rules, list):
                errors.append(f"Missing '{section}' list in rule table")
                continue

            for i, raw in enumerate(rules):
                where = f"{section}[{i}]"

                if not isinstance(raw, dict):
                    errors.append(f"{where}: rule must be an object")
                    continue

                rule_type = raw.get("type")
                if not rule_type:
                    errors.append(f"{where}: missing 'type'")
                else:
                    where = f"{section}[{i}] '{rule_type}'"
                    if rule_type in seen_types:
                        errors.append(f"Duplicate rule type '{rule_type}'")
                    seen_types.add(rule_type)

                for key in ("title", "message"):
                    if not raw.get(key):
                        errors.append(f"{where}: missing '{key}'")

                if not raw.get("condition"):
                    errors.append(f"{where}: missing 'condition'")
                else:
                    errors.extend(validate_condition(raw["condition"], f"{where}.condition"))

                severity = raw.get("severity")
                if severity is not None and severity not in VALID_SEVERITIES:
                    errors.append(f"{where}: unknown severity '{severity}'")

                for j, resource in enumerate(raw.get("resources", [])):
                    if not isinstance(resource, dict) or not resource.get("label") or not resource.get("value"):
                        errors.append(f"{where}: resource {j} needs 'label' and 'value'")

                errors.extend(self._validate_variants(raw, where))

        if errors:
            error_msg = "Eligibility rule table validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)

    def _validate_variants(self, raw: dict, where: str) -> List[str]:
        errors = []
        variants: Optional[dict] = raw.get("variants")

        if variants is None:
            return errors

        if not raw.get("variant_field"):
            errors.append(f"{where}: 'variants' without 'variant_field'")

        if not isinstance(variants, dict):
            errors.append(f"{where}: 'variants' must be an object")
            return errors

        for value, variant in variants.items():
            if not isinstance(variant, dict) or not variant.get("title") or not variant.get("message"):
                errors.append(f"{where}: variant '{value}' needs 'title' and 'message'")

        return errors
