"""
Step-based intake persistence.

Append-only JSON files for audit trail and resume.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from intake_engine.commands import FlowState

logger = logging.getLogger(__name__)


class IntakePersistence:
    """
    Manages step-by-step JSON persistence.

    Layout:
        outputs/intakes/INTAKE-abc123/
            INTAKE-abc123_STEP-000.json
            INTAKE-abc123_STEP-001.json
            ...
            INTAKE-abc123_SUBMISSION.json

    Design:
    - Append-only (never overwrite)
    - One file per accepted command
    - Resume reloads the latest step
    """

    def __init__(self, base_dir: str = "outputs/intakes"):
        """
        Initialize persistence layer.

        Args:
            base_dir: Base directory for all intakes
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"IntakePersistence initialized: {self.base_dir}")

    def _intake_dir(self, intake_id: str) -> Path:
        return self.base_dir / f"INTAKE-{intake_id}"

    @staticmethod
    def _step_number(path: Path) -> int:
        """INTAKE-abc123_STEP-1000.json -> 1000 (numeric, not text order)"""
        return int(path.stem.rsplit("STEP-", 1)[1])

    def save_step(self, state: FlowState) -> str:
        """
        Save a step to an append-only file.

        Args:
            state: Flow state after the command

        Returns:
            str: Absolute path to saved file

        Raises:
            FileExistsError: If the step file already exists (double-submit)
        """
        intake_dir = self._intake_dir(state.intake_id)
        intake_dir.mkdir(exist_ok=True)

        filename = f"INTAKE-{state.intake_id}_STEP-{state.step_count:03d}.json"
        filepath = intake_dir / filename

        if filepath.exists():
            raise FileExistsError(
                f"Step file already exists: {filepath}. "
                f"This indicates a double-submit or step-count error."
            )

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(state.to_json(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved step {state.step_count} for {state.intake_id}: {filename}")
        return str(filepath.absolute())

    def load_latest_step(self, intake_id: str) -> Optional[FlowState]:
        """
        Load latest step for an intake.

        Args:
            intake_id: Intake identifier

        Returns:
            FlowState if the intake exists, None otherwise
        """
        intake_dir = self._intake_dir(intake_id)

        if not intake_dir.exists():
            logger.warning(f"Intake directory not found: {intake_id}")
            return None

        step_files = list(intake_dir.glob(f"INTAKE-{intake_id}_STEP-*.json"))

        if not step_files:
            logger.warning(f"No step files found for {intake_id}")
            return None

        latest_file = max(step_files, key=self._step_number)
        logger.info(f"Loading latest step for {intake_id}: {latest_file.name}")

        with open(latest_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return FlowState.from_json(data)

    def save_submission(self, intake_id: str, payload: dict) -> str:
        """
        Save the submission payload once.

        Args:
            intake_id: Intake identifier
            payload: SubmissionPayload.to_json()

        Returns:
            str: Absolute path to saved file

        Raises:
            FileExistsError: If the intake was already submitted
        """
        intake_dir = self._intake_dir(intake_id)
        intake_dir.mkdir(exist_ok=True)

        filepath = intake_dir / f"INTAKE-{intake_id}_SUBMISSION.json"
        if filepath.exists():
            raise FileExistsError(f"Intake {intake_id} already submitted: {filepath}")

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

        logger.info(f"Saved submission for {intake_id}")
        return str(filepath.absolute())

    def intake_exists(self, intake_id: str) -> bool:
        """True if at least one step file exists."""
        intake_dir = self._intake_dir(intake_id)
        return intake_dir.exists() and any(intake_dir.glob(f"INTAKE-{intake_id}_STEP-*.json"))

    def get_step_count(self, intake_id: str) -> int:
        """
        Get number of saved steps for an intake.

        Returns:
            int: Number of step files (0 if the intake doesn't exist)
        """
        intake_dir = self._intake_dir(intake_id)

        if not intake_dir.exists():
            return 0

        return len(list(intake_dir.glob(f"INTAKE-{intake_id}_STEP-*.json")))
