"""
PDTM Base Heuristics

Stateless signal evaluation: signal codes -> (level, confidence, reasons).

Priority (first match wins):
    TRANSACTION > UGC > ACCOUNT > VIEW
"""

from dataclasses import dataclass, field
from typing import Iterable, List

from engine.schemas.outputs import ActivityLevel, ConfidenceBucket
from engine.schemas.signals import SignalCode


TRANSACTION_SIGNALS = (SignalCode.URL_CHECKOUT, SignalCode.DOM_PAYMENT)
UGC_SIGNALS = (SignalCode.URL_EDITOR, SignalCode.DOM_EDITOR)
ACCOUNT_SIGNALS = (
    SignalCode.URL_LOGIN,
    SignalCode.URL_SIGNUP,
    SignalCode.URL_ACCOUNT,
    SignalCode.DOM_PASSWORD,
)


@dataclass
class HeuristicResult:
    """Base classification before structural auth detection."""
    level: ActivityLevel
    confidence: ConfidenceBucket
    reasons: List[str] = field(default_factory=list)


def evaluate_signals(signals: Iterable[SignalCode]) -> HeuristicResult:
    """
    Select an activity level from a set of signal codes.

    Transaction confidence is high only when more than one distinct signal
    corroborates it; URL or DOM alone is medium.
    """
    unique = list(dict.fromkeys(SignalCode(s) for s in signals))

    matched = [s.value for s in unique if s in TRANSACTION_SIGNALS]
    if matched:
        return HeuristicResult(
            level=ActivityLevel.TRANSACTION,
            confidence=ConfidenceBucket.HIGH if len(unique) > 1 else ConfidenceBucket.MEDIUM,
            reasons=matched,
        )

    matched = [s.value for s in unique if s in UGC_SIGNALS]
    if matched:
        return HeuristicResult(
            level=ActivityLevel.UGC,
            confidence=ConfidenceBucket.MEDIUM,
            reasons=matched,
        )

    matched = [s.value for s in unique if s in ACCOUNT_SIGNALS]
    if matched:
        return HeuristicResult(
            level=ActivityLevel.ACCOUNT,
            confidence=ConfidenceBucket.HIGH,
            reasons=matched,
        )

    return HeuristicResult(
        level=ActivityLevel.VIEW,
        confidence=ConfidenceBucket.HIGH,
        reasons=[SignalCode.PASSIVE.value],
    )
