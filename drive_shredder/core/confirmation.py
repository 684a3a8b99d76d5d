"""
Final typed confirmation before anything is erased
"""

import logging
from typing import Iterable

from .error_handler import ConfirmationMismatch
from .models import ClassifiedDevice, SafetyLevel

logger = logging.getLogger(__name__)

SAFE_PHRASE = "WIPE DRIVES"
CAUTION_PHRASE = "I WANT TO WIPE THESE DRIVES"
DANGEROUS_PHRASE = "I UNDERSTAND THE RISKS AND WANT TO WIPE DANGEROUS DRIVES"

def worst_level(selection: Iterable[ClassifiedDevice]) -> SafetyLevel:
    """Highest safety level in the selection (SAFE for an empty one)"""
    return max((entry.level for entry in selection), default=SafetyLevel.SAFE)

def required_phrase(selection: Iterable[ClassifiedDevice]) -> str:
    """The phrase the operator has to type, scaled to the riskiest device"""
    level = worst_level(selection)
    if level >= SafetyLevel.DANGEROUS:
        return DANGEROUS_PHRASE
    if level == SafetyLevel.CAUTION:
        return CAUTION_PHRASE
    return SAFE_PHRASE

def confirm(selection: Iterable[ClassifiedDevice], user_input: str) -> bool:
    """Exact, case-sensitive match after stripping surrounding whitespace"""
    selection = list(selection)
    return (user_input or "").strip() == required_phrase(selection)

def require(selection: Iterable[ClassifiedDevice], user_input: str):
    """Raise ConfirmationMismatch unless the typed phrase matches"""
    selection = list(selection)
    if not confirm(selection, user_input):
        logger.info("Confirmation phrase mismatch, aborting wipe")
        raise ConfirmationMismatch(
            f"Confirmation did not match '{required_phrase(selection)}'; nothing was wiped")
    logger.info(f"Wipe confirmed for {len(selection)} device(s)")
