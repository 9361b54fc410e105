"""
GradeShield: grade authenticity verification.

Cross-validates self-reported grades against screenshots or a short
screen recording of the grade portal: two OCR engines, multi-engine and
temporal consensus, forensic tamper checks, a credibility cross-check
and a weighted trust score.
"""

__version__ = "1.0.0"
