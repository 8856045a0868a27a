"""
Name-based Sex Inference

Infers a patient's sex from a first name using the gender-guesser dataset.
Inference is best effort: any failure yields None and never interrupts a load.
"""

import logging
from typing import Optional

import gender_guesser.detector as gender

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

DEFAULT_COUNTRY = "spain"

_detector: Optional[gender.Detector] = None


def _get_detector() -> gender.Detector:
    """Build the detector once; loading its name dataset is slow."""
    global _detector
    if _detector is None:
        _detector = gender.Detector(case_sensitive=False)
    return _detector


def infer_sex(first_name: Optional[str], country: str = DEFAULT_COUNTRY) -> Optional[str]:
    """
    Infer sex from a single first name.

    Args:
        first_name: First given name, e.g. "JUAN"
        country: gender-guesser country key used to weight ambiguous names.

    Returns:
        One of "male", "female", "mostly_male", "mostly_female", "andy",
        or None when the name is unknown, empty, or inference fails
    """
    if not first_name:
        return None

    try:
        result = _get_detector().get_gender(first_name, country)
    except Exception as e:
        logger.warning(f"Sex inference failed for '{first_name}': {e}")
        return None

    if result == UNKNOWN:
        return None

    return result
