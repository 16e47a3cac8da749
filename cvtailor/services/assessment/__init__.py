"""Audit of accepted records and gap guidance derived from it."""

from .auditor import Auditor
from .domain_profiles import DOMAIN_PROFILES, DomainProfile, detect_domains, get_domain_profile
from .gap_generator import GapGenerator

__all__ = ["Auditor", "DOMAIN_PROFILES", "DomainProfile", "detect_domains", "get_domain_profile", "GapGenerator"]
