"""
Session Classifier

Decides whether a snapshot was taken in regular trading hours (strict
thresholds) or in extended/weekend mode (relaxed thresholds).

Classification uses only the flags the feature pipeline put on the snapshot,
never the wall clock, so repeated evaluation of one snapshot is deterministic:
- session.is_regular_hours == False           -> EXTENDED
- is_regular_hours absent, is_weekend == True  -> EXTENDED
- anything else (including both flags absent)  -> REGULAR

A missing session block therefore keeps the strict RTH thresholds.
"""

from dataclasses import dataclass
from enum import Enum

from opportunity_engine.shared.models.snapshot import FeatureSnapshot


class SessionMode(str, Enum):
    """Threshold regime selected by the session."""
    REGULAR = "regular"
    EXTENDED = "extended"  # weekend / pre-market / after-hours


@dataclass(frozen=True)
class SessionInfo:
    """
    Session classification for a snapshot.

    Attributes:
        mode: REGULAR or EXTENDED
        source: Which flag decided it ('explicit', 'weekend_flag', 'default')
    """
    mode: SessionMode
    source: str

    @property
    def is_regular(self) -> bool:
        return self.mode == SessionMode.REGULAR

    @property
    def label(self) -> str:
        return "RTH" if self.is_regular else "extended"


def classify_session(snapshot: FeatureSnapshot) -> SessionInfo:
    """Classify a snapshot's session from its explicit flags."""
    session = snapshot.session

    if session.is_regular_hours is True:
        return SessionInfo(SessionMode.REGULAR, "explicit")
    if session.is_regular_hours is False:
        return SessionInfo(SessionMode.EXTENDED, "explicit")
    if session.is_weekend is True:
        return SessionInfo(SessionMode.EXTENDED, "weekend_flag")
    return SessionInfo(SessionMode.REGULAR, "default")


def is_regular_session(snapshot: FeatureSnapshot) -> bool:
    return classify_session(snapshot).is_regular


def session_threshold(snapshot: FeatureSnapshot, strict: float, relaxed: float) -> float:
    """Pick the strict (RTH) or relaxed (extended) threshold for a snapshot."""
    return strict if is_regular_session(snapshot) else relaxed
