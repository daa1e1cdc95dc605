"""
Catalog Provider - Medication, plan, dose and discount lookups with fallback

The remote catalog (medications per state, plan pricing, discount codes) is
reached through an injected fetcher:

    fetcher(resource: str, params: dict) -> Any

where resource is 'medications', 'plans' or 'discount'. Any exception or
empty response degrades to static data from catalog_fallback.json, so a
catalog outage never blocks the flow. A failed discount lookup returns None
(no discount applied).
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from intake_engine.utils.helpers import DATA_DIR, load_json_config

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PATH = DATA_DIR / "catalog_fallback.json"

NO_PREFERENCE = 'no-preference'


class CatalogProvider:
    """Catalog lookups that never raise on remote failure."""

    def __init__(
        self,
        fetcher: Optional[Callable[[str, dict], Any]] = None,
        fallback_path: str = str(DEFAULT_FALLBACK_PATH),
    ):
        """
        Initialize provider.

        Args:
            fetcher: Remote lookup callable (None = fallback data only)
            fallback_path: Path to catalog_fallback.json

        Raises:
            FileNotFoundError: If the fallback file doesn't exist
            ValueError: If the fallback file is malformed
        """
        self.fetcher = fetcher
        self.fallback = load_json_config(fallback_path, "Catalog fallback")

        errors = [
            f"Missing '{key}'" for key in ("medications", "plans", "dose_options")
            if key not in self.fallback
        ]
        if errors:
            raise ValueError("Catalog fallback validation failed:\n  - " + "\n  - ".join(errors))

        logger.info(f"Catalog Provider initialized (remote={'yes' if fetcher else 'no'})")

    # =========================================================================
    # Public API
    # =========================================================================

    def medications(self, state_code: str, service_type: str = "weight_loss") -> List[dict]:
        """
        Medications available in a state.

        Args:
            state_code: Two-letter state code
            service_type: Service line

        Returns:
            list[dict]: [{'medication', 'name', 'pharmacies'}, ...]
        """
        result = self._fetch('medications', {'state': state_code, 'service_type': service_type})
        if result:
            return result
        return copy.deepcopy(self.fallback["medications"])

    def plans(self, state_code: str, medication: str, service_type: str = "weight_loss",
              pharmacy: str = "") -> List[dict]:
        """
        Plan pricing for a medication.

        Returns:
            list[dict]: Plans, from the remote catalog or the fallback
        """
        result = self._fetch('plans', {
            'state': state_code,
            'service_type': service_type,
            'medication': medication,
            'pharmacy': pharmacy,
        })
        if result:
            return result
        return copy.deepcopy(self.fallback["plans"].get(self._medication_key(medication), []))

    def apply_discount(self, code: str) -> Optional[dict]:
        """
        Look up a discount code.

        Returns:
            dict with discount details, or None when the code is unknown or
            the lookup failed
        """
        if not code or not code.strip():
            return None

        result = self._fetch('discount', {'code': code.strip()})
        if not isinstance(result, dict) or not result:
            return None
        return result

    def dose_options(self, medication: str) -> List[dict]:
        """Dose choices for a medication, 'No preference' first."""
        return copy.deepcopy(self.fallback["dose_options"].get(self._medication_key(medication), []))

    def default_dose(self, medication: str, has_glp1_experience: bool) -> Optional[str]:
        """
        Preselected dose.

        GLP-1-naive patients start on the lowest dose; experienced patients
        start with 'No preference'.
        """
        options = self.dose_options(medication)
        if not options:
            return None

        if has_glp1_experience:
            return options[0]["value"]

        for option in options:
            if option["value"] != NO_PREFERENCE:
                return option["value"]
        return options[0]["value"]

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _medication_key(self, medication: str) -> str:
        return (medication or "").strip().lower()

    def _fetch(self, resource: str, params: Dict[str, Any]) -> Any:
        if self.fetcher is None:
            return None

        try:
            return self.fetcher(resource, params)
        except Exception as e:
            logger.warning(f"Catalog lookup '{resource}' failed, using fallback: {e}")
            return None
