"""
Domain services used by the repositories
"""
from medrefer.services.tracking import generate_tracking_number, is_tracking_number
from medrefer.services.triage import assess_referral, needs_assessment

__all__ = [
    "generate_tracking_number",
    "is_tracking_number",
    "assess_referral",
    "needs_assessment",
]
