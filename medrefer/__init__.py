"""
Local persistence layer for the clinical-referral app
"""
__version__ = "0.1.0"
