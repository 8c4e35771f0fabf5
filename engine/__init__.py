"""
PDTM Engine

Activity inference, session correlation and attention scoring.
"""

__version__ = "1.0.0"
