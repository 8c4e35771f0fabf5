"""
PDTM Engine Models

Heuristic classifier and risk/state engine.
"""

from engine.models.classifier import ActivityClassifier
from engine.models.heuristics import evaluate_signals
from engine.models.risk import RiskStateEngine

__all__ = [
    "ActivityClassifier",
    "evaluate_signals",
    "RiskStateEngine",
]
