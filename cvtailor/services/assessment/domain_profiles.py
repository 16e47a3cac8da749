"""Domain-specific phrasing for gap guidance, and domain detection from source text."""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class DomainProfile:
    """Examples and guidance overrides for one career domain."""
    id: str
    name: str
    description: str
    examples: Dict[str, str] = field(default_factory=dict)
    guidance: Dict[str, str] = field(default_factory=dict)
    # Fields a domain refuses to let users skip
    mandatory_fields: FrozenSet[str] = frozenset()
    # Fields asked about first when this is the primary domain
    critical_fields: Tuple[str, ...] = ()
    detection_keywords: Tuple[str, ...] = ()


GENERAL = DomainProfile(
    id="general",
    name="General",
    description="Any profession",
    examples={
        "identity.summary": (
            "Results-driven professional with 5+ years of experience in project management "
            "and team leadership."
        ),
        "experience": "Increased team productivity by 30%; led the launch of 2 products",
    },
)

SOFTWARE_ENGINEERING = DomainProfile(
    id="software_engineering",
    name="Software Engineering",
    description="Software development, web, mobile, backend, frontend, DevOps",
    examples={
        "skills": "React, TypeScript, Node.js, PostgreSQL, AWS, Docker, Git",
        "projects": "Designed microservices architecture handling 1M+ requests/day",
        "identity.linkedin_url": "github.com/username, linkedin.com/in/username",
        "experience": "Backend Engineer at Tech Company (2020-Present): built payment APIs in Go",
    },
    guidance={
        "skills": "List programming languages, frameworks, tools and platforms you work with.",
        "projects": "Add notable projects or open-source contributions with the stack you used.",
    },
    critical_fields=("skills", "experience", "projects", "identity.summary"),
    detection_keywords=(
        "software", "developer", "engineer", "programming", "frontend", "backend",
        "fullstack", "full-stack", "devops", "api", "database", "react", "python",
        "javascript", "java", "typescript", "node.js", "aws", "docker", "kubernetes",
        "git", "ci/cd", "microservices", "web development", "mobile development", "saas",
    ),
)

DATA_SCIENCE = DomainProfile(
    id="data_science",
    name="Data Science",
    description="Data analysis, machine learning, deep learning, NLP, computer vision",
    examples={
        "skills": "TensorFlow 2.x, PyTorch, scikit-learn, pandas, Hugging Face Transformers",
        "projects": "Kaggle Expert with 2 gold medals; trained a transformer model for Farsi NLP",
        "education.field_of_study": "M.Sc. in Statistics",
    },
    guidance={
        "projects": "Add datasets you built, models you trained or competitions you entered.",
    },
    critical_fields=("skills", "projects", "education", "experience"),
    detection_keywords=(
        "data science", "data scientist", "machine learning", "deep learning",
        "artificial intelligence", "nlp", "computer vision", "tensorflow", "pytorch",
        "pandas", "statistics", "neural network", "kaggle", "data analysis", "big data",
        "spark", "feature engineering", "mlops", "jupyter", "numpy", "scikit-learn",
    ),
)

ACADEMIC = DomainProfile(
    id="academic",
    name="Academia & Research",
    description="University teaching, research, grants and academic service",
    examples={
        "identity.summary": "Associate professor in biochemistry focusing on protein folding; 25 journal articles.",
        "education": "Ph.D. in Biochemistry, University Name (2012-2016)",
        "education.field_of_study": "Biochemistry",
        "projects": "PI on NSF Grant ($250K, 2020-2023)",
        "certifications": "Fellow of the Higher Education Academy (FHEA)",
    },
    guidance={
        "projects": "Add research projects and grants, with your role and funding.",
    },
    critical_fields=("education", "identity.summary", "experience"),
    detection_keywords=(
        "professor", "researcher", "academic", "faculty", "publication", "publications",
        "journal", "conference", "thesis", "dissertation", "phd", "ph.d.", "postdoc",
        "grant", "h-index", "peer-review", "curriculum", "lecture", "seminar",
        "research group", "tenure",
    ),
)

HEALTHCARE = DomainProfile(
    id="healthcare",
    name="Healthcare & Medicine",
    description="Clinical practice, nursing, medical research",
    examples={
        "certifications": "Board Certified in Internal Medicine (ABIM); Medical License #12345 (Active)",
        "experience": "500+ hours ICU rotation; managed 30+ patients daily",
        "education": "M.D., Medical School Name (2010-2016)",
    },
    guidance={
        "certifications": "Add licenses and board certifications with their status.",
    },
    critical_fields=("certifications", "education", "experience"),
    detection_keywords=(
        "medical", "doctor", "physician", "nurse", "nursing", "clinical", "hospital",
        "patient", "patients", "diagnosis", "treatment", "surgery", "pharmacy",
        "pathology", "radiology", "residency", "board certified", "emt", "icu",
        "public health", "epidemiology", "biomedical", "m.d.",
    ),
)

DOMAIN_PROFILES: Dict[str, DomainProfile] = {
    profile.id: profile
    for profile in (GENERAL, SOFTWARE_ENGINEERING, DATA_SCIENCE, ACADEMIC, HEALTHCARE)
}


def get_domain_profile(domain_id: Optional[str]) -> DomainProfile:
    """Profile by id, falling back to ``general`` for unknown ids."""
    if domain_id and domain_id in DOMAIN_PROFILES:
        return DOMAIN_PROFILES[domain_id]
    if domain_id:
        LOGGER.warning(f"Unknown domain profile '{domain_id}', using general")
    return GENERAL


def resolve_profiles(domain_ids: Optional[Sequence[str]]) -> List[DomainProfile]:
    """Profiles for the given ids in order, always ending with ``general``."""
    profiles: List[DomainProfile] = []
    for domain_id in domain_ids or ():
        profile = get_domain_profile(domain_id)
        if profile not in profiles:
            profiles.append(profile)
    if GENERAL not in profiles:
        profiles.append(GENERAL)
    return profiles


def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<!\w){re.escape(keyword.casefold())}(?!\w)")


def score_domains(source_text: Optional[str], min_hits: int = 2) -> List[Tuple[str, int]]:
    """Score every profile with detection keywords against ``source_text``.

    A score (0-100) weighs keyword coverage at 60 points and keyword
    frequency, capped at twice the keyword count, at 40. Profiles matching
    fewer than ``min_hits`` distinct keywords are left out.

    Returns:
        (domain id, score) pairs, best first
    """
    text = (source_text or "").casefold()
    if not text.strip():
        return []

    scores: List[Tuple[str, int]] = []
    for profile in DOMAIN_PROFILES.values():
        keywords = profile.detection_keywords
        if not keywords:
            continue
        counts = [len(_keyword_pattern(keyword).findall(text)) for keyword in keywords]
        distinct = sum(1 for count in counts if count)
        if distinct < max(min_hits, 1):
            continue
        coverage = distinct / len(keywords)
        frequency = min(sum(counts) / len(keywords), 2.0)
        scores.append((profile.id, min(100, round(coverage * 60 + frequency * 20))))

    scores.sort(key=lambda pair: pair[1], reverse=True)
    return scores


def detect_domains(source_text: Optional[str], max_domains: int = 2, min_hits: int = 2) -> List[str]:
    """Best matching domain ids for a CV text, or ``["general"]`` when nothing matches."""
    detected = [domain_id for domain_id, _ in score_domains(source_text, min_hits)[:max_domains]]
    LOGGER.debug(f"Detected domains: {detected or ['general']}")
    return detected or [GENERAL.id]
