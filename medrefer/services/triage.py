"""
Referral triage

Simulated AI assessment applied to new referrals that have not been scored.
"""
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from medrefer.database.schemas import Referral

DEFAULT_CONFIDENCE = 0.85
SEVERE_CONFIDENCE = 0.95
SEVERE_KEYWORDS = ("severe", "emergency")


def needs_assessment(referral: "Referral") -> bool:
    return referral.ai_confidence == 0


def assess_referral(referral: "Referral") -> "Referral":
    """
    Score a referral and escalate obviously severe ones

    Returns a copy; the input is left untouched. Symptoms mentioning
    "severe" or "emergency" get 0.95 confidence and urgency "urgent",
    everything else gets 0.85.
    """
    symptoms = (referral.symptoms_description or "").lower()
    if any(keyword in symptoms for keyword in SEVERE_KEYWORDS):
        return referral.model_copy(update={"ai_confidence": SEVERE_CONFIDENCE, "urgency": "urgent"})
    return referral.model_copy(update={"ai_confidence": DEFAULT_CONFIDENCE})
