from __future__ import annotations
import os
import re
import unicodedata
from typing import Optional

import phonenumbers

PHONE_REGION = os.getenv("PHONE_REGION", "CA")

EMAIL = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
MONTHS = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|"
    r"Jul(?:y)?|Aug(?:ust)?|Sep(?:t|tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
YEAR = r"(?:19|20)\d{2}"
PRESENT = r"(?:Present|Current|Now|Today|Ongoing)"
PRESENT_RE = re.compile(rf"^\s*{PRESENT}\s*$", re.I)
# hyphen, en/em dash, minus, "to"
RANGE_SPLIT = re.compile(r"\s*(?:[-‐-―−]+|\bto\b)\s*", re.I)
BULLET = re.compile(r"^(\s*[-•‣∙·*]\s+)")

RANGE_DASH = " – "

_PLACEHOLDER_DURATIONS = {"n/a", "na", "none", "unknown", "not specified", "tbd", "-", "–", "null"}
_PLACEHOLDER_ENTRY = re.compile(r"^\s*(company name|job title|your company|position title)\s*$", re.I)
_PLACEHOLDER_LINE = re.compile(
    r"(add (?:a )?measurable|key responsibilit|describe your|lorem ipsum|\[.*?\])", re.I
)

# ------- Skills lexicon -------
# canonical name -> regex fragments (lowercase); matched against whole tokens
_SKILL_CANON = {
    "Python": [r"python"],
    "Java": [r"java"],
    "JavaScript": [r"javascript", r"js"],
    "TypeScript": [r"typescript", r"ts"],
    "C#": [r"c\#", r"c[-\s]?sharp"],
    "C++": [r"c\+\+", r"cpp"],
    "Go": [r"go", r"golang"],
    "Rust": [r"rust"],
    ".NET": [r"\.?net(?:\s*core)?"],
    "Node.js": [r"node(?:\.?js)?"],
    "React": [r"react(?:\.js|js)?"],
    "Next.js": [r"next\.?js"],
    "Vue": [r"vue(?:\.js|js)?"],
    "Angular": [r"angular(?:js)?"],
    "Django": [r"django"],
    "Flask": [r"flask"],
    "FastAPI": [r"fastapi"],
    "Spring": [r"spring(?:\s*boot)?"],
    "SQL": [r"sql"],
    "PostgreSQL": [r"postgres(?:ql)?"],
    "MySQL": [r"mysql"],
    "MongoDB": [r"mongo(?:db)?"],
    "Redis": [r"redis"],
    "Elasticsearch": [r"elastic(?:search)?"],
    "Kafka": [r"kafka"],
    "GraphQL": [r"graphql"],
    "REST": [r"rest(?:ful)?(?:\s*apis?)?"],
    "gRPC": [r"grpc"],
    "HTML": [r"html5?"],
    "CSS": [r"css3?"],
    "Git": [r"git"],
    "Linux": [r"linux"],
    "Docker": [r"docker"],
    "Kubernetes": [r"kubernetes", r"k8s"],
    "AWS": [r"aws", r"amazon web services"],
    "Azure": [r"azure"],
    "GCP": [r"gcp", r"google cloud"],
    "CI/CD": [r"ci/?cd"],
    "Terraform": [r"terraform"],
    "Ansible": [r"ansible"],
    "Pandas": [r"pandas"],
    "NumPy": [r"numpy"],
    "Scikit-learn": [r"scikit[- ]?learn", r"sklearn"],
    "PyTorch": [r"pytorch"],
    "TensorFlow": [r"tensorflow"],
    "Bash": [r"bash"],
    "PowerShell": [r"powershell"],
}

_SKILL_PATTERNS = [
    (canon, re.compile("|".join(frags), re.I)) for canon, frags in _SKILL_CANON.items()
]


def norm(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip())


def norm_key(s: str) -> str:
    """Comparison key: NFKC, casefold, trimmed, single spaces."""
    s = unicodedata.normalize("NFKC", s or "")
    return re.sub(r"\s+", " ", s.strip()).casefold()


def field_key(s: str) -> str:
    """Key used to match loose payload field names: 'Start_Date' == 'startdate'."""
    return re.sub(r"[\s_\-]+", "", s or "").casefold()


def strip_bullet(s: str) -> str:
    return norm(BULLET.sub("", s or ""))


def canonical_skill(token: str) -> str:
    """Map a token to its canonical spelling when the lexicon knows it, else return it trimmed."""
    t = norm(token)
    for canon, pat in _SKILL_PATTERNS:
        if pat.fullmatch(t):
            return canon
    return t


def split_on_separators(blob: str) -> list[str]:
    # commas, semicolons, pipes, slashes, bullets, or runs of 2+ spaces
    parts = re.split(r"[,;/|•·●◦•]+|\s{2,}", blob or "")
    return [norm(p) for p in parts if norm(p)]


def is_placeholder_duration(s: Optional[str]) -> bool:
    return norm_key(s or "") in _PLACEHOLDER_DURATIONS


def is_placeholder_entry(s: Optional[str]) -> bool:
    return bool(_PLACEHOLDER_ENTRY.match(s or ""))


def is_placeholder_line(s: Optional[str]) -> bool:
    return bool(_PLACEHOLDER_LINE.search(s or ""))


def format_range(start: Optional[str], end: Optional[str]) -> Optional[str]:
    """Join a start/end pair; an open end renders as 'start – Present'."""
    start, end = norm(start or ""), norm(end or "")
    if start and end:
        if PRESENT_RE.match(end):
            end = "Present"
        return f"{start}{RANGE_DASH}{end}"
    if start:
        return f"{start}{RANGE_DASH}Present"
    if end:
        return "Present" if PRESENT_RE.match(end) else end
    return None


def normalize_duration(raw) -> Optional[str]:
    """
    Canonical duration text, or None when there is nothing usable.

      - 'Jan 2020 - Present' -> 'Jan 2020 – Present'
      - '2019—2021'          -> '2019 – 2021'
      - 'N/A', 'unknown'     -> None
      - ''                   -> ''  (explicitly blanked)
    """
    if raw is None:
        return None
    s = norm(str(raw))
    if s == "":
        return ""
    if is_placeholder_duration(s):
        return None
    parts = [p for p in RANGE_SPLIT.split(s) if p]
    # only rewrite when both halves look like dates; free text stays as is
    if len(parts) == 2 and all(
        re.search(YEAR, p) or re.fullmatch(MONTHS, p, re.I) or PRESENT_RE.match(p)
        for p in parts
    ):
        return format_range(parts[0], parts[1])
    return s


def normalize_phone(raw: str, region: str = "") -> str:
    s = norm(raw)
    if not s:
        return ""
    try:
        num = phonenumbers.parse(s, region or PHONE_REGION)
    except phonenumbers.NumberParseException:
        return s
    if not phonenumbers.is_possible_number(num):
        return s
    return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
