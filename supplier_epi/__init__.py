"""
Supplier EPI

Scoring, submission review and audit recalibration of supplier
performance evaluations.
"""

__version__ = "0.1.0"
