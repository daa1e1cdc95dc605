"""
Flow Sequencer - Screen graph navigation and progress

Responsibilities:
- Load the screen graph (declared order, conditional edges, skip rules)
- next(): successor of a screen for an answer set
- previous(): predecessor, reconstructed from how the screen was reached
- progress(): fixed step number, total and label per screen
- advance() / retreat(): FlowState transitions aware of the section cursor
  inside multi-section screens

Design principles:
- Pure: next() and previous() depend only on screen id + answers, so a
  flow resumed from persisted answers lands on the same screen
- Back is NOT index - 1: explicit back rules first, then a replay of the
  forward path from the start screen
- Interstitial screens share the step of the screen they lead into, so the
  progress bar never fills on a screen that collects nothing
- Unknown screen ids are programmer errors and raise NavigationError

Graph format (intake_flow.json):
    {
        "start": "timeline_questions",
        "exclusion_screen": "exclusion",
        "screens": [
            {"id": "...", "label": "...", "sections": [...],
             "next": [{"if": cond, "go_to": id}, {"else": id}],
             "back": [...], "skip_if": cond,
             "interstitial": bool, "terminal": bool, "detached": bool,
             "allow_back": bool}
        ]
    }
"""

import dataclasses
import logging
from typing import Dict, List, Optional

from intake_engine.contracts import Progress, ScreenDescriptor
from intake_engine.core.condition_evaluator import evaluate_condition, validate_condition
from intake_engine.utils.helpers import DATA_DIR, load_json_config

logger = logging.getLogger(__name__)

DEFAULT_FLOW_PATH = DATA_DIR / "intake_flow.json"


class NavigationError(ValueError):
    """Navigation requested from or to a screen the graph doesn't allow."""


class FlowSequencer:
    """
    Stateless navigator over the screen graph.
    """

    def __init__(self, flow_path: str = str(DEFAULT_FLOW_PATH)):
        """
        Initialize sequencer with a screen graph.

        Args:
            flow_path: Path to intake_flow.json

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the graph is malformed
        """
        self.flow_path = flow_path
        self.config = load_json_config(flow_path, "Flow graph")

        self._validate_flow()

        self.start: str = self.config["start"]
        self.exclusion_screen: Optional[str] = self.config.get("exclusion_screen")

        # Declared order excludes detached screens
        self.order: List[str] = [
            raw["id"] for raw in self.config["screens"] if not raw.get("detached", False)
        ]

        self.total_steps = sum(
            1 for raw in self.config["screens"]
            if not raw.get("interstitial", False)
            and not raw.get("terminal", False)
            and not raw.get("detached", False)
        )

        steps = self._derive_steps()
        self.screens: Dict[str, ScreenDescriptor] = {
            raw["id"]: self._build_screen(raw, steps[raw["id"]])
            for raw in self.config["screens"]
        }

        logger.info(f"Flow Sequencer initialized with {len(self.screens)} screens, {self.total_steps} steps")

    # =========================================================================
    # Public API
    # =========================================================================

    def screen(self, screen_id: str) -> ScreenDescriptor:
        """
        Get a screen descriptor.

        Raises:
            NavigationError: If the screen id is unknown
        """
        if screen_id not in self.screens:
            raise NavigationError(f"Unknown screen: {screen_id}")
        return self.screens[screen_id]

    def next(self, screen_id: str, answers: dict) -> str:
        """
        Successor of a screen.

        First matching 'next' rule wins; otherwise the next screen in
        declared order. Screens whose skip_if holds are passed over.

        Args:
            screen_id: Current screen
            answers: Answer set

        Returns:
            str: Next screen id

        Raises:
            NavigationError: If screen_id is unknown or terminal
        """
        current = self.screen(screen_id)

        if current.terminal:
            raise NavigationError(f"Screen '{screen_id}' is terminal, no next screen")

        target = self._match_rules(current.next_rules, answers)
        if target is None:
            target = self._declared_successor(screen_id)

        while True:
            candidate = self.screen(target)
            if candidate.terminal or not candidate.skip_if or not evaluate_condition(candidate.skip_if, answers):
                break
            logger.debug(f"Skipping screen '{target}'")
            target = self._declared_successor(target)

        return target

    def previous(self, screen_id: str, answers: dict) -> str:
        """
        Predecessor of a screen, as reached with these answers.

        Order of resolution:
        1. Screens with allow_back=false (and the start screen) return themselves
        2. Explicit 'back' rules
        3. The screen before this one on the forward path replayed from start
        4. The closest earlier non-skipped screen in declared order

        Args:
            screen_id: Current screen
            answers: Answer set

        Returns:
            str: Previous screen id

        Raises:
            NavigationError: If screen_id is unknown
        """
        current = self.screen(screen_id)

        if not current.allow_back or screen_id == self.start:
            return screen_id

        target = self._match_rules(current.back_rules, answers)
        if target is not None:
            return target

        path = self.forward_path(answers)
        if screen_id in path:
            index = path.index(screen_id)
            return path[index - 1] if index > 0 else screen_id

        index = self.order.index(screen_id) if screen_id in self.order else 0
        for candidate in reversed(self.order[:index]):
            screen = self.screens[candidate]
            if not screen.skip_if or not evaluate_condition(screen.skip_if, answers):
                return candidate

        return self.start

    def forward_path(self, answers: dict) -> List[str]:
        """
        Screens visited going forward from start with these answers.

        Args:
            answers: Answer set

        Returns:
            list[str]: Screen ids from start to the first terminal screen
        """
        path = [self.start]
        current = self.start

        while not self.screens[current].terminal and len(path) <= len(self.screens):
            current = self.next(current, answers)
            path.append(current)

        return path

    def progress(self, screen_id: str) -> Progress:
        """
        Progress bar position for a screen.

        Args:
            screen_id: Screen id

        Returns:
            Progress: step, total, label, percentage

        Raises:
            NavigationError: If screen_id is unknown
        """
        screen = self.screen(screen_id)
        return Progress(
            step=screen.step,
            total=self.total_steps,
            label=screen.label,
            percentage=round(screen.step / self.total_steps * 100, 1) if self.total_steps else 100.0,
        )

    def is_terminal(self, screen_id: str) -> bool:
        return self.screen(screen_id).terminal

    # =========================================================================
    # FlowState transitions
    # =========================================================================

    def advance(self, state, answers: dict):
        """
        Move forward one unit: the next section on the same screen, or the
        first section of the next screen.

        Args:
            state: FlowState
            answers: Answer set

        Returns:
            FlowState: New state (input unchanged)
        """
        screen = self.screen(state.screen_id)

        if state.section_cursor < len(screen.sections):
            return dataclasses.replace(state, section_cursor=state.section_cursor + 1, visible_count=1)

        target = self.next(state.screen_id, answers)
        return dataclasses.replace(state, screen_id=target, section_cursor=1, visible_count=1)

    def retreat(self, state, answers: dict):
        """
        Move back one unit.

        Inside a multi-section screen the cursor moves one section back
        until section 1; after that the screen-level previous() applies and
        the previous screen opens on its last section.

        Args:
            state: FlowState
            answers: Answer set

        Returns:
            FlowState: New state (input unchanged)
        """
        if state.section_cursor > 1:
            return dataclasses.replace(state, section_cursor=state.section_cursor - 1)

        target = self.previous(state.screen_id, answers)
        if target == state.screen_id:
            return state

        sections = self.screen(target).sections
        return dataclasses.replace(state, screen_id=target, section_cursor=max(1, len(sections)))

    # =========================================================================
    # Construction & validation
    # =========================================================================

    def _match_rules(self, rules, answers: dict) -> Optional[str]:
        for rule in rules:
            if "else" in rule:
                return rule["else"]
            if evaluate_condition(rule.get("if"), answers):
                return rule["go_to"]
        return None

    def _declared_successor(self, screen_id: str) -> str:
        if screen_id not in self.order:
            raise NavigationError(f"Screen '{screen_id}' is not part of the declared order")

        index = self.order.index(screen_id)
        if index + 1 >= len(self.order):
            raise NavigationError(f"Screen '{screen_id}' has no successor")
        return self.order[index + 1]

    def _derive_steps(self) -> Dict[str, int]:
        """
        Step number per screen.

        Substantive screens count 1..total in declared order. Interstitials
        take the step of the next substantive screen. Terminal screens take
        the total.
        """
        steps = {}
        pending_interstitials = []
        step = 0

        for raw in self.config["screens"]:
            screen_id = raw["id"]

            if raw.get("terminal", False) or raw.get("detached", False):
                steps[screen_id] = self.total_steps
                continue

            if raw.get("interstitial", False):
                pending_interstitials.append(screen_id)
                continue

            step += 1
            steps[screen_id] = step
            for interstitial_id in pending_interstitials:
                steps[interstitial_id] = step
            pending_interstitials = []

        # Interstitials after the last substantive screen
        for interstitial_id in pending_interstitials:
            steps[interstitial_id] = self.total_steps

        return steps

    def _build_screen(self, raw: dict, step: int) -> ScreenDescriptor:
        return ScreenDescriptor(
            id=raw["id"],
            step=step,
            label=raw.get("label"),
            sections=tuple(raw.get("sections", [])),
            interstitial=raw.get("interstitial", False),
            terminal=raw.get("terminal", False),
            detached=raw.get("detached", False),
            allow_back=raw.get("allow_back", True),
            next_rules=tuple(raw.get("next", [])),
            back_rules=tuple(raw.get("back", [])),
            skip_if=raw.get("skip_if"),
        )

    def _validate_flow(self):
        """
        Validate the screen graph on initialization.

        Checks:
        - 'screens' list exists, ids are unique
        - 'start' and 'exclusion_screen' name known screens
        - Rule targets name known screens; every rule list ends with 'else'
          or contains only conditional rules
        - Conditions are well formed
        - The declared order ends in a terminal screen

        Raises:
            ValueError: If validation fails
        """
        errors = []
        screens = self.config.get("screens")

        if not isinstance(screens, list) or not screens:
            raise ValueError("Flow graph validation failed:\n  - Missing 'screens' list")

        ids = [raw.get("id") for raw in screens if isinstance(raw, dict)]
        known = set(ids)

        if len(ids) != len(screens) or None in known:
            errors.append("Every screen needs an 'id'")

        duplicates = sorted({screen_id for screen_id in ids if ids.count(screen_id) > 1 and screen_id})
        for screen_id in duplicates:
            errors.append(f"Duplicate screen id '{screen_id}'")

        for key in ("start", "exclusion_screen"):
            value = self.config.get(key)
            if key == "start" and not value:
                errors.append("Missing 'start'")
            elif value is not None and value not in known:
                errors.append(f"'{key}' names unknown screen '{value}'")

        for raw in screens:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            screen_id = raw["id"]

            for rule_key in ("next", "back"):
                for i, rule in enumerate(raw.get(rule_key, [])):
                    where = f"'{screen_id}'.{rule_key}[{i}]"
                    target = rule.get("else", rule.get("go_to"))
                    if target not in known:
                        errors.append(f"{where}: unknown target '{target}'")
                    if "else" not in rule:
                        errors.extend(validate_condition(rule.get("if"), f"{where}.if"))

            errors.extend(validate_condition(raw.get("skip_if"), f"'{screen_id}'.skip_if"))

        declared = [raw for raw in screens if isinstance(raw, dict) and not raw.get("detached", False)]
        if declared and not declared[-1].get("terminal", False):
            errors.append("Declared order must end with a terminal screen")

        if errors:
            error_msg = "Flow graph validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)
