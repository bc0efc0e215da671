"""
Enumeration vs. narrative heuristics for description lines.

A line like "Python, Go, Docker, Kubernetes" is a skills list wearing a
bullet; it is dropped from the description and its tokens go to skills.
Narrative lines stay verbatim and are only scanned for soft-skill phrases.

Lossy: run it on freshly received content only, never on text the user
already edited.
"""
from __future__ import annotations
import os
import re
from typing import Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

from .patch import CanonicalPatch, ExperiencePatch, ExperienceRewrite, PatchOperation
from .reconcile import dedupe_keep_order
from .rules import canonical_skill, norm, norm_key

TECH_TOKEN = re.compile(r"^[A-Za-z0-9+.#\-]+$")
# Hebrew and Arabic blocks: prose in these scripts is never treated as a list
NARRATIVE_SCRIPT = re.compile(r"[֐-׿؀-ۿ]")
_CANDIDATE_SPLIT = re.compile(r"[,/|•;]+|\s{2,}")

SOFT_SKILLS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\b(led|leading|mentor(?:ed|ing)?|managed a team)\b", re.I), "Leadership"),
    (re.compile(r"\b(collaborat\w*|cross[- ]functional|teamwork)\b", re.I), "Collaboration"),
    (re.compile(r"\b(present(?:ed|ing)? to|stakeholder|communicat\w*)\b", re.I), "Communication"),
    (re.compile(r"\b(troubleshoot\w*|root[- ]cause|problem[- ]solving)\b", re.I), "Problem Solving"),
    (re.compile(r"\b(deadline|prioriti[sz]\w*|time management)\b", re.I), "Time Management"),
    (re.compile(r"מנהיג"), "מנהיגות"),
    (re.compile(r"ניהול זמן"), "ניהול זמן"),
    (re.compile(r"עבודה בצוות"), "עבודת צוות"),
    (re.compile(r"תקשורת"), "תקשורת בין אישית"),
    (re.compile(r"משמעת"), "משמעת עצמית"),
    (re.compile(r"אסרטיב"), "אסרטיביות"),
    (re.compile(r"שירותי"), "שירותיות"),
    (re.compile(r"עצמאי"), "עבודה עצמאית"),
    (re.compile(r"פתרון בעיות"), "פתרון בעיות"),
    (re.compile(r"עבודה תחת לחץ"), "עבודה בתנאי לחץ"),
)


class ClassifierConfig(BaseModel):
    token_ratio: float = 0.6
    min_tokens: int = 2
    min_token_length: int = 1
    max_token_length: int = 60
    max_avg_words: float = 1.2

    @classmethod
    def from_env(cls) -> "ClassifierConfig":
        return cls(
            token_ratio=float(os.getenv("CLASSIFIER_TOKEN_RATIO", "0.6")),
            min_tokens=int(os.getenv("CLASSIFIER_MIN_TOKENS", "2")),
            min_token_length=int(os.getenv("CLASSIFIER_MIN_TOKEN_LEN", "1")),
            max_token_length=int(os.getenv("CLASSIFIER_MAX_TOKEN_LEN", "60")),
            max_avg_words=float(os.getenv("CLASSIFIER_MAX_AVG_WORDS", "1.2")),
        )


DEFAULT_CONFIG = ClassifierConfig.from_env()


def candidate_tokens(line: str) -> List[str]:
    return [t.strip().rstrip(".").strip() for t in _CANDIDATE_SPLIT.split(line or "") if t.strip()]


def is_enumeration(line: str, config: ClassifierConfig = DEFAULT_CONFIG) -> bool:
    s = norm(line)
    if not s or NARRATIVE_SCRIPT.search(s):
        return False
    tokens = candidate_tokens(s)
    if len(tokens) < config.min_tokens:
        return False
    techy = sum(
        1
        for t in tokens
        if config.min_token_length <= len(t) <= config.max_token_length and TECH_TOKEN.match(t)
    )
    avg_words = sum(len(t.split()) for t in tokens) / len(tokens)
    return techy >= len(tokens) * config.token_ratio and avg_words <= config.max_avg_words


def classify_line(line: str, config: ClassifierConfig = DEFAULT_CONFIG) -> Literal["enumeration", "narrative"]:
    return "enumeration" if is_enumeration(line, config) else "narrative"


def infer_soft_skills(lines: Iterable[str]) -> List[str]:
    found: List[str] = []
    for line in lines:
        for pat, label in SOFT_SKILLS:
            if pat.search(line or ""):
                found.append(label)
    return dedupe_keep_order(found)


class Refined(BaseModel):
    description: List[str]
    skills: List[str]


def refine_descriptions(lines: Iterable[str], config: ClassifierConfig = DEFAULT_CONFIG) -> Refined:
    kept: List[str] = []
    skills: List[str] = []
    for raw in lines:
        line = norm(raw)
        if not line:
            continue
        if is_enumeration(line, config):
            skills.extend(canonical_skill(t) for t in candidate_tokens(line))
            continue
        kept.append(line)
    skills.extend(infer_soft_skills(kept))
    return Refined(description=kept, skills=dedupe_keep_order(skills))


def _refine_into(target, config: ClassifierConfig, bucket: List[str]) -> None:
    if target is None or not target.description:
        return
    res = refine_descriptions(target.description, config)
    if isinstance(target, (ExperiencePatch, ExperienceRewrite)):
        target.description = res.description or None
    else:
        target.description = res.description
    bucket.extend(res.skills)


# ops whose merge adds patch.skills to the record rather than replacing it
_ADDITIVE = {PatchOperation.PATCH, PatchOperation.ADD, PatchOperation.UPDATE, PatchOperation.REWRITE}
_REMOVING = {PatchOperation.REMOVE, PatchOperation.DELETE, PatchOperation.CLEAR, PatchOperation.RESET}


def refine_patch(patch: CanonicalPatch, config: Optional[ClassifierConfig] = None) -> CanonicalPatch:
    """Return a copy of `patch` with enumeration lines folded into its skills."""
    config = config or DEFAULT_CONFIG
    out = patch.model_copy(deep=True)

    if out.complete_resume is not None:
        found: List[str] = []
        for exp in out.complete_resume.experiences:
            _refine_into(exp, config, found)
        out.complete_resume.skills = dedupe_keep_order([*out.complete_resume.skills, *found])

    if out.operation in _REMOVING:
        return out
    # without a skills list of its own, a replace would wipe the record's skills
    if out.operation not in _ADDITIVE and out.skills is None:
        return out

    found = []
    for exp in ([out.experience] if out.experience else []) + (out.experiences or []):
        _refine_into(exp, config, found)
    for rw in out.rewrites:
        _refine_into(rw, config, found)
    for du in out.description_updates:
        _refine_into(du, config, found)
    if found:
        existing = {norm_key(s) for s in out.skills or []}
        out.skills = dedupe_keep_order([*(out.skills or []), *(s for s in found if norm_key(s) not in existing)])
    return out
