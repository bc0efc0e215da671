# resume_tree/sections.py
from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

import phonenumbers

from .models import Contact, Experience, Node, Resume
from .reconcile import dedupe_keep_order
from .rules import (
    BULLET,
    EMAIL,
    MONTHS,
    PHONE_REGION,
    YEAR,
    norm,
    normalize_duration,
    split_on_separators,
    strip_bullet,
)
from .tree import build_node, new_uid

# Canonical (UPPERCASE) buckets, in the order they are tried
SECTION_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    (
        "SUMMARY",
        re.compile(r"(?i)^(summary|profile|professional\s+summary|about\s+me|objective)\b"),
    ),
    (
        "SKILLS",
        re.compile(r"(?i)^(skills|technical\s+skills|core\s+skills|key\s+skills)\b"),
    ),
    (
        "EXPERIENCE",
        # "projects" has its own bucket
        re.compile(
            r"(?i)^(work\s+experience|professional\s+experience|experience|employment|employment\s+history|career\s+history)\b"
        ),
    ),
    (
        "PROJECTS",
        re.compile(r"(?i)^(projects|selected\s+projects|personal\s+projects|side\s+projects)\b"),
    ),
    (
        "EDUCATION",
        re.compile(r"(?i)^(education|academic\s+background|academics)\b"),
    ),
    (
        "CERTS",
        re.compile(r"(?i)^(certifications|certificates|licenses)\b"),
    ),
    (
        "LANGUAGES",
        re.compile(r"(?i)^(languages|language)\b"),
    ),
)

HEADINGS: Dict[str, str] = {
    "SUMMARY": "Summary",
    "SKILLS": "Skills",
    "EXPERIENCE": "Experience",
    "PROJECTS": "Projects",
    "EDUCATION": "Education",
    "CERTS": "Certifications",
    "LANGUAGES": "Languages",
}

KEY_VALUE = re.compile(r"^(?P<key>[A-Za-z][\w .&/-]{0,30}):\s+(?P<value>.+)$")
DATES_IN_LINE = re.compile(
    rf"(?P<dates>(?:\b{MONTHS}\.?\s+)?\b{YEAR}\s*(?:[-–—]|to)\s*(?:(?:{MONTHS}\.?\s+)?{YEAR}|present|current|now))",
    re.I,
)
_AT_SPLIT = re.compile(r"\s+(?:at|@)\s+|\s+[|,]\s+|\s+[–—-]\s+", re.I)


def _match_heading(line: str, pat: re.Pattern) -> Optional[str]:
    """
    A line is a heading only if it matches at the start and the rest is
    empty or starts with a delimiter (: - – —).
    Returns the tail after the delimiter ('Skills: Python, SQL' -> 'Python, SQL'),
    "" when there is none, None when the line is not a heading.
    """
    m = pat.match(line)
    if not m:
        return None

    rest = line[m.end() :]
    if rest:
        if not re.match(r"^\s*[:\-–—]\s*", rest):
            return None
        rest = re.sub(r"^\s*[:\-–—]\s*", "", rest)

    return rest.strip()


def split_sections(text: str) -> Dict[str, List[str]]:
    """Split resume text into UPPERCASE buckets of non-empty lines; unmatched lines go to OTHER."""
    buckets: Dict[str, List[str]] = {k: [] for k, _ in SECTION_PATTERNS}
    buckets["OTHER"] = []

    current = "OTHER"

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        switched = False
        for key, pat in SECTION_PATTERNS:
            tail = _match_heading(line, pat)
            if tail is None:
                continue

            current = key
            switched = True
            if tail:
                buckets[current].append(tail)
            break

        if switched:
            continue

        buckets[current].append(line)

    return buckets


def _line_node(line: str) -> Node:
    if BULLET.match(line):
        return build_node("list-item", text=strip_bullet(line))
    kv = KEY_VALUE.match(line)
    if kv and len(kv.group("value")) < 120:
        return build_node("key-value", title=norm(kv.group("key")), text=norm(kv.group("value")))
    return build_node("paragraph", text=norm(line))


def build_tree_from_text(text: str) -> Tuple[List[Node], str]:
    """
    Rule-based structuring: the first line is the document title, every
    recognized section becomes a heading with its lines as children.
    Used when the structuring service is disabled or unavailable.
    """
    secs = split_sections(text)
    other = secs.get("OTHER") or []
    title = norm(other[0]) if other else ""

    tree: List[Node] = []
    header = [_line_node(ln) for ln in other[1:]]
    if header:
        tree.append(build_node("container", children=header, section="header"))

    for key, _ in SECTION_PATTERNS:
        lines = secs.get(key) or []
        if not lines:
            continue
        children = [_line_node(ln) for ln in lines]
        heading = build_node("heading", title=HEADINGS[key], children=children, section=key.lower())
        heading.style["level"] = 2
        tree.append(heading)
    return tree, title


def _contact_from_text(text: str, title_line: str) -> Contact:
    emails = EMAIL.findall(text) or []
    phone = ""
    for m in phonenumbers.PhoneNumberMatcher(text, PHONE_REGION):
        phone = phonenumbers.format_number(m.number, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
        break
    return Contact(full_name=title_line, email=emails[0] if emails else "", phone=phone)


def _experiences(lines: List[str]) -> List[Experience]:
    out: List[Experience] = []
    cur: Optional[Experience] = None
    for line in lines:
        if BULLET.match(line) and cur is not None:
            cur.description.append(strip_bullet(line))
            continue
        dm = DATES_IN_LINE.search(line)
        header = norm(DATES_IN_LINE.sub("", line)).strip(" |,–—-") if dm else norm(line)
        if dm or cur is None:
            parts = [p for p in _AT_SPLIT.split(header) if p]
            cur = Experience(
                id=new_uid(),
                title=parts[0] if parts else header,
                company=parts[1] if len(parts) > 1 else "",
                duration=normalize_duration(dm.group("dates")) if dm else None,
            )
            out.append(cur)
        else:
            cur.description.append(norm(line))
    return out


def resume_from_text(text: str) -> Resume:
    """Best-effort Resume Record from plain text, so chat patches have something to merge into."""
    secs = split_sections(text)
    other = secs.get("OTHER") or []
    skills: List[str] = []
    for ln in secs.get("SKILLS") or []:
        skills.extend(split_on_separators(strip_bullet(ln)))
    return Resume(
        experiences=_experiences(secs.get("EXPERIENCE") or []),
        skills=dedupe_keep_order(skills),
        summary=" ".join(norm(ln) for ln in secs.get("SUMMARY") or []),
        contact=_contact_from_text(text, norm(other[0]) if other else ""),
    )


def tree_from_resume(resume: Resume) -> Tuple[List[Node], str]:
    """Render a Resume Record as a fresh tree (new uids). Used for blank and regenerated documents."""
    c = resume.contact
    tree: List[Node] = []
    header = [
        build_node("key-value", title=label, text=value)
        for label, value in (("Email", c.email), ("Phone", c.phone), ("Location", c.location))
        if value
    ]
    if c.title:
        header.insert(0, build_node("paragraph", text=c.title))
    if header:
        tree.append(build_node("container", children=header, section="header"))
    if resume.summary:
        tree.append(
            build_node("heading", title="Summary", section="summary",
                       children=[build_node("paragraph", text=resume.summary)])
        )
    if resume.experiences:
        jobs = []
        for e in resume.experiences:
            bullets = [build_node("list-item", text=ln) for ln in e.description]
            jobs.append(
                build_node(
                    "container",
                    title=" at ".join(p for p in (e.title, e.company) if p),
                    text=e.duration or None,
                    children=bullets,
                    company=e.company,
                    experience_id=e.id,
                )
            )
        tree.append(build_node("heading", title="Experience", section="experience", children=jobs))
    if resume.education:
        items = [
            build_node("paragraph", title=e.degree or None, text=" | ".join(p for p in (e.institution, e.duration or "") if p))
            for e in resume.education
        ]
        tree.append(build_node("heading", title="Education", section="education", children=items))
    if resume.skills:
        tree.append(
            build_node("heading", title="Skills", section="skills",
                       children=[build_node("paragraph", text=", ".join(resume.skills))])
        )
    return tree, c.full_name
