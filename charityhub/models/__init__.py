from __future__ import annotations

from charityhub.extensions import db
from charityhub.models.donation import Donation
from charityhub.models.impact_stats import STATS_ROW_ID, ImpactStats
from charityhub.models.newsletter import NewsletterSignup

__all__ = ["db", "Donation", "ImpactStats", "NewsletterSignup", "STATS_ROW_ID"]
