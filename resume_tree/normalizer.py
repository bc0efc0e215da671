"""
Turn whatever the chat service sends back into one CanonicalPatch.

Input is either a dict (already parsed, field names all over the place) or
raw text that may hold a [RESUME_DATA] region, a ``` fence, bare JSON-ish
text, or plain English. Nothing here raises on bad input: the caller gets a
PatchParseError value instead.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from .errors import PatchParseError
from .models import Contact, Education, Experience, Resume
from .patch import (
    SECTIONS,
    CanonicalPatch,
    ContactPatch,
    DescriptionUpdate,
    EducationFieldEdit,
    EducationKey,
    EducationPatch,
    ExperienceKey,
    ExperiencePatch,
    ExperienceRewrite,
    FieldEdit,
    LineAddition,
    LineEdit,
    LineRemoval,
    PatchOperation,
    Reorganize,
    SkillEdit,
    SummaryEdit,
)
from .reconcile import dedupe_keep_order
from .rules import (
    field_key,
    format_range,
    is_placeholder_line,
    norm,
    normalize_duration,
    normalize_phone,
    split_on_separators,
    strip_bullet,
)

logger = logging.getLogger(__name__)

DELIMITED_RE = re.compile(r"\[RESUME_DATA\](.*?)(?:\[/RESUME_DATA\]|$)", re.S | re.I)
FENCE_RE = re.compile(r"```[ \t]*(?:json|json5|javascript|js)?[ \t]*\n?(.*?)```", re.S | re.I)
_STRING_RE = re.compile(r'("(?:\\.|[^"\\])*")')
_SINGLE_QUOTED = re.compile(r"'((?:\\.|[^'\\])*)'")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$\-]*)\s*:")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_SMART = str.maketrans({"\u201c": '"', "\u201d": '"', "\u201e": '"', "\u2018": "'", "\u2019": "'", "\u00a0": " "})
_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}
_SKILL_SPLIT = re.compile(r"[,;|•\n]+")

ParseResult = Union[CanonicalPatch, PatchParseError]


# ---------------------------------------------------------------------------
# text -> dict
# ---------------------------------------------------------------------------


def _region(text: str) -> Tuple[Optional[str], bool]:
    m = DELIMITED_RE.search(text)
    if m:
        inner = m.group(1)
        fence = FENCE_RE.search(inner)
        return (fence.group(1) if fence else inner).strip(), True
    m = FENCE_RE.search(text)
    if m:
        return m.group(1).strip(), True
    return None, False


def _outside_strings(s: str, fn: Callable[[str], str]) -> str:
    # odd indices are double-quoted literals, left alone
    parts = _STRING_RE.split(s)
    return "".join(p if i % 2 else fn(p) for i, p in enumerate(parts))


def repair_json(s: str) -> str:
    s = s.translate(_SMART)
    s = re.sub(r"\s+", " ", s).strip()
    s = _outside_strings(s, lambda seg: _SINGLE_QUOTED.sub(lambda m: json.dumps(m.group(1)), seg))

    def fix(seg: str) -> str:
        seg = _BARE_KEY.sub(lambda m: f'{m.group(1)}"{m.group(2)}":', seg)
        seg = _TRAILING_COMMA.sub(r"\1", seg)
        return re.sub(r"\b(True|False|None)\b", lambda m: _PY_LITERALS[m.group(1)], seg)

    return _outside_strings(s, fix)


def extract_balanced(s: str) -> Optional[str]:
    """First {...} block with balanced braces, string-aware. None if it never closes."""
    start = s.find("{")
    if start < 0:
        return None
    depth, in_str, esc = 0, False, False
    for i in range(start, len(s)):
        ch = s[i]
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return s[start : i + 1]
    return None


def _loads(s: str) -> Optional[Any]:
    try:
        return json.loads(s)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def parse_structured(region: str) -> Optional[Any]:
    """strict -> repaired -> brace-balanced (strict, then repaired)."""
    data = _loads(region)
    if data is not None:
        return data
    data = _loads(repair_json(region))
    if data is not None:
        logger.info("Patch payload recovered by repair pass")
        return data
    block = extract_balanced(region) or extract_balanced(region.translate(_SMART))
    if block:
        data = _loads(block)
        if data is None:
            data = _loads(repair_json(block))
        if data is not None:
            logger.info("Patch payload recovered by brace extraction")
            return data
    return None


# ---------------------------------------------------------------------------
# natural language fallback
# ---------------------------------------------------------------------------

_NL_REMOVE_SKILLS = re.compile(
    r"\b(?:remove|delete|drop)\s+(?:the\s+|my\s+)?skills?\s*[:\-]?\s+(?P<v>[^.!\n]+)", re.I
)
_NL_REMOVE_EXP = re.compile(
    r"\b(?:remove|delete|drop)\s+(?:the\s+|my\s+)?(?:experience|job|role|position|work)\s+"
    r"(?:at|with|from|in)\s+(?P<v>[^.!,\n]+)",
    re.I,
)
_NL_CLEAR = re.compile(
    r"\b(?:clear|empty|wipe)\s+(?:out\s+)?(?:the\s+|my\s+)?"
    r"(?P<v>experiences?|work experience|education|skills|summary|contact)\b",
    re.I,
)
_NL_ADD_SKILLS = re.compile(r"\badd\s+(?:the\s+)?skills?\s*[:\-]?\s+(?P<v>[^.!\n]+)", re.I)
_NL_SUMMARY = re.compile(
    r"\b(?:set|change|update|replace)\s+(?:my\s+|the\s+)?summary\s+(?:to|with)\s*[:\-]?\s*(?P<v>.+)",
    re.I | re.S,
)


def _list_phrase(s: str) -> List[str]:
    items: List[str] = []
    for part in split_on_separators(s):
        items.extend(p for p in re.split(r"\s+(?:and|&)\s+", part) if p)
    return [norm(i.strip(" '\"")) for i in items if norm(i.strip(" '\""))]


def intents_from_text(text: str) -> Optional[CanonicalPatch]:
    remove_skills: List[str] = []
    remove_exps: List[ExperienceKey] = []
    clears: List[str] = []
    add_skills: List[str] = []
    summary: Optional[SummaryEdit] = None

    for m in _NL_REMOVE_SKILLS.finditer(text):
        remove_skills.extend(_list_phrase(m.group("v")))
    for m in _NL_REMOVE_EXP.finditer(text):
        remove_exps.append(ExperienceKey(company=norm(m.group("v").strip(" '\""))))
    for m in _NL_CLEAR.finditer(text):
        sec = _section_name(m.group("v"))
        if sec:
            clears.append(sec)
    for m in _NL_ADD_SKILLS.finditer(text):
        add_skills.extend(_list_phrase(m.group("v")))
    m = _NL_SUMMARY.search(text)
    if m:
        summary = SummaryEdit(text=norm(m.group("v")).strip("'\""))

    if not (remove_skills or remove_exps or clears or add_skills or summary):
        return None
    if add_skills or summary:
        op = PatchOperation.PATCH
    elif clears and not (remove_skills or remove_exps):
        op = PatchOperation.CLEAR
    else:
        op = PatchOperation.REMOVE
    return CanonicalPatch(
        operation=op,
        remove_skills=dedupe_keep_order(remove_skills),
        remove_experiences=remove_exps,
        clear_sections=dedupe_keep_order(clears),
        skills=dedupe_keep_order(add_skills) or None,
        summary=summary,
    )


# ---------------------------------------------------------------------------
# dict -> CanonicalPatch
# ---------------------------------------------------------------------------

_OPERATIONS = {
    "patch": PatchOperation.PATCH,
    "upsert": PatchOperation.PATCH,
    "edit": PatchOperation.PATCH,
    "add": PatchOperation.ADD,
    "update": PatchOperation.UPDATE,
    "replace": PatchOperation.REPLACE,
    "replacecomplete": PatchOperation.REPLACE,
    "redesign": PatchOperation.REDESIGN,
    "reset": PatchOperation.RESET,
    "remove": PatchOperation.REMOVE,
    "delete": PatchOperation.DELETE,
    "clear": PatchOperation.CLEAR,
    "clearsection": PatchOperation.CLEAR,
    "clearsections": PatchOperation.CLEAR,
    "rewrite": PatchOperation.REWRITE,
    "reorganize": PatchOperation.REORGANIZE,
    "reorganise": PatchOperation.REORGANIZE,
    "reorder": PatchOperation.REORGANIZE,
}

_SECTION_ALIASES = {
    "experience": "experiences",
    "experiences": "experiences",
    "workexperience": "experiences",
    "work": "experiences",
    "jobs": "experiences",
    "education": "education",
    "educations": "education",
    "skills": "skills",
    "skill": "skills",
    "summary": "summary",
    "profile": "summary",
    "contact": "contact",
    "contactinfo": "contact",
}

_OP_KEYS = ("operation", "op", "action", "type", "mode")
_WRAPPERS = ("changes", "updates", "data", "patch", "payload")

_EXPERIENCE_KEYS = ("experience", "job", "role", "position", "work")
_EXPERIENCES_KEYS = ("experiences", "jobs", "workexperience", "workexperiences", "workhistory")
_EDUCATION_KEYS = ("education", "school", "degree")
_EDUCATIONS_KEYS = ("educations", "schools", "educationhistory")
_SKILLS_KEYS = ("skills", "currentskills", "technologies", "techstack", "skillset")
_SUMMARY_KEYS = ("summary", "professionalsummary", "profile", "about", "objective")
_CONTACT_KEYS = ("contact", "contactinfo", "personalinfo", "personal")
_COMPLETE_KEYS = ("completeresume", "resume", "fullresume")

_COMPANY = ("company", "companyname", "employer", "organization", "organisation", "org")
_TITLE = ("title", "position", "role", "jobtitle")
_INSTITUTION = ("institution", "school", "university", "college")
_DEGREE = ("degree", "qualification", "program", "programme", "field")
_DESCRIPTION = (
    "description", "descriptions", "bullets", "responsibilities",
    "achievements", "details", "highlights",
)
_COMBINED = ("duration", "daterange", "dates")
_SYNONYMS = ("period", "years", "date", "timeframe", "tenure")
_START = ("startdate", "start", "from", "since")
_END = ("enddate", "end", "to", "until")

_CONTACT_FIELDS = {
    "fullname": "full_name",
    "name": "full_name",
    "email": "email",
    "phone": "phone",
    "mobile": "phone",
    "phonenumber": "phone",
    "location": "location",
    "city": "location",
    "address": "location",
    "title": "title",
    "headline": "title",
}
_EXP_FIELDS = {
    "company": "company", "companyname": "company", "employer": "company",
    "title": "title", "position": "title", "role": "title", "jobtitle": "title",
    "duration": "duration", "dates": "duration", "period": "duration", "daterange": "duration",
}
_EDU_FIELDS = {
    "institution": "institution", "school": "institution", "university": "institution",
    "degree": "degree", "qualification": "degree",
    "duration": "duration", "dates": "duration", "period": "duration",
}


class _Fields:
    """Case/underscore-insensitive view over a payload dict that remembers what was read."""

    def __init__(self, data: dict):
        self.data = {field_key(str(k)): v for k, v in data.items()}
        self.original = {field_key(str(k)): str(k) for k in data}
        self.used: set[str] = set()

    def get(self, *names: str, kind: type | tuple | None = None) -> Tuple[bool, Any]:
        for name in names:
            if name in self.data:
                value = self.data[name]
                if kind is not None and not isinstance(value, kind):
                    continue
                self.used.add(name)
                return True, value
        return False, None

    def value(self, *names: str, kind: type | tuple | None = None) -> Any:
        return self.get(*names, kind=kind)[1]

    def unused(self) -> List[str]:
        return [self.original[k] for k in self.data if k not in self.used]


def _text(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        return norm(v)
    return None


def _lines(v: Any) -> List[str]:
    """Description value -> clean lines. Strings are split on newlines, then sentences."""
    if v is None:
        return []
    if isinstance(v, str):
        raw = [ln for ln in v.splitlines() if ln.strip()]
        if len(raw) == 1:
            raw = re.split(r"(?<=[.!?])\s+(?=[A-Z֐-׿])", raw[0])
    elif isinstance(v, list):
        raw = []
        for it in v:
            if isinstance(it, dict):
                it = _Fields(it).value("text", "line", "description", "value", kind=str)
            if isinstance(it, str):
                raw.append(it)
    else:
        return []
    out = [strip_bullet(ln) for ln in raw]
    return [ln for ln in out if ln and not is_placeholder_line(ln)]


def _skills(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return dedupe_keep_order(norm(p) for p in _SKILL_SPLIT.split(v) if norm(p))
    if isinstance(v, list):
        out = []
        for it in v:
            if isinstance(it, dict):
                it = _Fields(it).value("name", "skill", "value", kind=str)
            if isinstance(it, str) and norm(it):
                out.append(it)
        return dedupe_keep_order(out)
    return []


def _duration(f: _Fields) -> Tuple[bool, Optional[str]]:
    """
    combined field > alias synonyms > start/end pair > single-ended.
    (False, None) when nothing usable is present.
    """
    for name in _COMBINED + _SYNONYMS:
        found, v = f.get(name)
        if not found or v is None:
            continue
        if isinstance(v, dict):
            sub = _Fields(v)
            rng = format_range(_text(sub.value(*_START)), _text(sub.value(*_END)))
            if rng is not None:
                return True, rng
            continue
        if isinstance(v, (str, int)):
            d = normalize_duration(v)
            if d is not None:
                return True, d
    start, end = _text(f.value(*_START)), _text(f.value(*_END))
    rng = format_range(start, end)
    if rng is not None:
        return True, normalize_duration(rng)
    return False, None


def _experience(v: Any) -> Optional[ExperiencePatch]:
    if not isinstance(v, dict):
        return None
    f = _Fields(v)
    data: dict = {}
    for name, keys in (("id", ("id",)), ("company", _COMPANY), ("title", _TITLE)):
        found, val = f.get(*keys)
        if found and _text(val) is not None:
            data[name] = _text(val)
    found, val = f.get(*_DESCRIPTION)
    if found:
        data["description"] = _lines(val)
    has_dur, dur = _duration(f)
    if has_dur:
        data["duration"] = dur
    if not (data.get("id") or data.get("company") or data.get("title")):
        return None
    return ExperiencePatch(**data)


def _education(v: Any) -> Optional[EducationPatch]:
    if not isinstance(v, dict):
        return None
    f = _Fields(v)
    data: dict = {}
    for name, keys in (("id", ("id",)), ("institution", _INSTITUTION), ("degree", _DEGREE)):
        found, val = f.get(*keys)
        if found and _text(val) is not None:
            data[name] = _text(val)
    found, val = f.get(*_DESCRIPTION)
    if found:
        data["description"] = _lines(val)
    has_dur, dur = _duration(f)
    if has_dur:
        data["duration"] = dur
    if not (data.get("id") or data.get("institution") or data.get("degree")):
        return None
    return EducationPatch(**data)


def _many(v: Any, one: Callable[[Any], Optional[BaseModel]], label: str, warnings: List[str]) -> list:
    items = v if isinstance(v, list) else [v]
    out = []
    for it in items:
        parsed = one(it)
        if parsed is None:
            warnings.append(f"Dropped {label} entry without identity")
        else:
            out.append(parsed)
    return out


def _order_items(items: Iterable[Any]) -> list:
    """Reorganize order entries: company names stay strings, objects become ExperiencePatch."""
    out: list = []
    for it in items:
        if isinstance(it, str) and norm(it):
            out.append(norm(it))
        elif (exp := _experience(it)) is not None:
            out.append(exp)
    return out


def _contact(v: Any) -> Optional[ContactPatch]:
    if not isinstance(v, dict):
        return None
    data = {}
    for k, val in v.items():
        target = _CONTACT_FIELDS.get(field_key(str(k)))
        if target and _text(val) is not None:
            data[target] = _text(val)
    if "phone" in data:
        data["phone"] = normalize_phone(data["phone"])
    return ContactPatch(**data) if data else None


def _section_name(v: Any) -> Optional[str]:
    return _SECTION_ALIASES.get(field_key(str(v or "")))


def _sections(v: Any) -> List[str]:
    items = v if isinstance(v, list) else split_on_separators(str(v or ""))
    if any(field_key(str(i)) == "all" for i in items):
        return list(SECTIONS)
    return dedupe_keep_order(s for s in (_section_name(i) for i in items) if s)


def _complete_resume(v: Any, warnings: List[str]) -> Optional[Resume]:
    if not isinstance(v, dict):
        return None
    f = _Fields(v)
    experiences = []
    for e in _many(f.value(*_EXPERIENCES_KEYS, *_EXPERIENCE_KEYS, kind=(list, dict)) or [], _experience, "experience", warnings):
        experiences.append(Experience(**e.model_dump(exclude_unset=True, exclude_none=True)))
    education = []
    for e in _many(f.value(*_EDUCATIONS_KEYS, *_EDUCATION_KEYS, kind=(list, dict)) or [], _education, "education", warnings):
        education.append(Education(**e.model_dump(exclude_unset=True, exclude_none=True)))
    summary = f.value(*_SUMMARY_KEYS)
    if isinstance(summary, dict):
        summary = _Fields(summary).value("text", kind=str)
    contact_src = dict(f.value(*_CONTACT_KEYS, kind=dict) or {})
    for k in ("fullname", "name", "email", "phone", "location", "title", "headline"):
        found, val = f.get(k)
        if found and isinstance(val, str):
            contact_src.setdefault(k, val)
    contact = _contact(contact_src)
    return Resume(
        experiences=experiences,
        education=education,
        skills=_skills(f.value(*_SKILLS_KEYS)),
        summary=_text(summary) or "",
        contact=Contact(**contact.model_dump(exclude_none=True)) if contact else Contact(),
    )


def _block(model: type[BaseModel], v: Any, label: str, warnings: List[str], remap: Optional[dict] = None) -> list:
    """Validate one granular edit block (or a list of them); bad ones become warnings."""
    out = []
    for it in v if isinstance(v, list) else [v]:
        if not isinstance(it, dict):
            warnings.append(f"Dropped invalid {label} block")
            continue
        data = {}
        for k, val in it.items():
            key = field_key(str(k))
            data[(remap or {}).get(key, k)] = val
        try:
            out.append(model.model_validate(data))
        except ValidationError as e:
            logger.warning("Dropped invalid %s block: %s", label, e.errors()[0].get("msg"))
            warnings.append(f"Dropped invalid {label} block")
    return out


def _field_edit_remap(fields: dict) -> Callable[[dict], dict]:
    def fix(data: dict) -> dict:
        f = field_key(str(data.get("field", "")))
        if f in fields:
            data["field"] = fields[f]
        return data

    return fix


_LINE_REMAP = {
    "companyname": "company", "employer": "company",
    "index": "index", "lineindex": "index", "line": "index", "position": "position",
    "oldtext": "old_text", "old": "old_text", "oldline": "old_text",
    "newtext": "new_text", "new": "new_text", "newline": "new_text", "value": "new_text",
}
_ADD_REMAP = {"companyname": "company", "employer": "company", "line": "text", "description": "text", "newline": "text"}
_REMOVE_LINE_REMAP = {
    "companyname": "company", "employer": "company", "lineindex": "index",
    "line": "text", "description": "text",
}
_SKILL_REMAP = {
    "old": "old", "oldskill": "old", "from": "old", "skill": "old",
    "new": "new", "newskill": "new", "to": "new", "value": "new",
}
_SUMMARY_REMAP = {"newtext": "text", "newsummary": "text", "type": "mode", "action": "mode", "operation": "mode"}
_REWRITE_REMAP = {
    "companyname": "company", "oldcompany": "company", "newcompany": "new_company",
    "position": "title", "role": "title", "newtitle": "title", "newduration": "duration",
    "dates": "duration", "newdescriptions": "description", "newdescription": "description",
    "descriptions": "description", "bullets": "description",
}


def normalize_payload(data: Any) -> CanonicalPatch:
    """Map a loosely-shaped dict onto CanonicalPatch. Unknown keys are reported, not fatal."""
    warnings: List[str] = []
    if isinstance(data, list):
        data = {"experiences": data}
    if not isinstance(data, dict):
        raise TypeError("patch payload must be an object")

    f = _Fields(data)
    op_raw = f.value(*_OP_KEYS, kind=str)
    # {"operation": "update", "changes": {...}}
    for w in _WRAPPERS:
        found, inner = f.get(w, kind=dict)
        if found:
            merged = {k: v for k, v in data.items() if field_key(str(k)) != w}
            merged.update(inner)
            f = _Fields(merged)
            break

    op = PatchOperation.PATCH
    if op_raw:
        mapped = _OPERATIONS.get(field_key(op_raw))
        if mapped is None:
            warnings.append(f"Unknown operation {op_raw!r}, treated as patch")
        else:
            op = mapped

    out: dict = {"operation": op}

    # single + bulk entities
    found, v = f.get(*_EXPERIENCE_KEYS, kind=dict)
    if found:
        exp = _experience(v)
        if exp is None:
            warnings.append("Dropped experience entry without identity")
        else:
            out["experience"] = exp
    found, v = f.get(*_EXPERIENCES_KEYS, kind=(list, dict))
    if found:
        if op == PatchOperation.REORGANIZE and isinstance(v, list):
            out["reorganize"] = Reorganize(experiences=_order_items(v))
        else:
            out["experiences"] = _many(v, _experience, "experience", warnings)

    found, v = f.get(*_EDUCATION_KEYS, kind=dict)
    if found:
        edu = _education(v)
        if edu is None:
            warnings.append("Dropped education entry without identity")
        else:
            out["education"] = edu
    found, v = f.get("education", *_EDUCATIONS_KEYS, kind=list)
    if found:
        out["educations"] = _many(v, _education, "education", warnings)

    # skills: list / string / {add, remove, replace}
    found, v = f.get(*_SKILLS_KEYS)
    if found and v is not None:
        if isinstance(v, dict):
            sf = _Fields(v)
            if sf.get("replace")[0]:
                out["skills"] = _skills(sf.value("replace"))
                out.setdefault("clear_sections", []).append("skills")
            elif sf.get("add")[0]:
                out["skills"] = _skills(sf.value("add"))
            out["remove_skills"] = _skills(sf.value("remove", "delete"))
        else:
            out["skills"] = _skills(v)
    found, v = f.get("replaceskills")
    if found and v is not None:
        out["skills"] = _skills(v)
        out.setdefault("clear_sections", []).append("skills")
    removals: List[str] = list(out.get("remove_skills", []))
    for key in ("removeskills", "removeskill", "deleteskill", "deleteskills"):
        found, v = f.get(key)
        if found:
            removals.extend(_skills([v] if isinstance(v, str) else v))
    if removals:
        out["remove_skills"] = dedupe_keep_order(removals)

    # summary in all its spellings
    found, v = f.get(*_SUMMARY_KEYS)
    if found and v is not None:
        if isinstance(v, str):
            out["summary"] = SummaryEdit(text=norm(v))
        elif isinstance(v, dict):
            blocks = _block(SummaryEdit, v, "summary", warnings, _SUMMARY_REMAP)
            if blocks:
                out["summary"] = blocks[0]
    found, v = f.get("editsummary", kind=dict)
    if found:
        blocks = _block(SummaryEdit, v, "editSummary", warnings, _SUMMARY_REMAP)
        if blocks:
            out["summary"] = blocks[0]
    for key, mode in (("appendtosummary", "append"), ("prependtosummary", "prepend")):
        found, v = f.get(key, kind=str)
        if found and norm(v):
            out["summary"] = SummaryEdit(text=norm(v), mode=mode)

    # contact: nested block, top-level fields, editContactField
    contact_src = dict(f.value(*_CONTACT_KEYS, kind=dict) or {})
    for k in ("fullname", "name", "email", "phone", "mobile", "location"):
        found, val = f.get(k, kind=str)
        if found:
            contact_src.setdefault(k, val)
    found, v = f.get("editcontactfield")
    for it in (v if isinstance(v, list) else [v]) if found else []:
        if isinstance(it, dict) and "field" in it:
            contact_src[str(it["field"])] = it.get("value", it.get("newValue", ""))
        else:
            warnings.append("Dropped invalid editContactField block")
    if contact_src:
        contact = _contact(contact_src)
        if contact is not None:
            out["contact"] = contact

    found, v = f.get(*_COMPLETE_KEYS, kind=dict)
    if found:
        out["complete_resume"] = _complete_resume(v, warnings)

    # removals of entities and whole sections
    exp_keys: List[ExperienceKey] = []
    for key in ("removeexperiences", "removeexperience", "deletecompany", "deleteexperience"):
        found, v = f.get(key)
        for it in (v if isinstance(v, list) else [v]) if found else []:
            if isinstance(it, str) and norm(it):
                exp_keys.append(ExperienceKey(company=norm(it)))
            elif isinstance(it, dict):
                exp_keys.extend(_block(ExperienceKey, it, key, warnings, {"companyname": "company", "position": "title"}))
    found, v = f.get("deleteexperiencebyid", "removeexperiencebyid")
    for it in (v if isinstance(v, list) else [v]) if found else []:
        if it is not None:
            exp_keys.append(ExperienceKey(id=str(it)))
    if exp_keys:
        out["remove_experiences"] = exp_keys

    edu_keys: List[EducationKey] = []
    for key in ("removeeducation", "deleteeducation"):
        found, v = f.get(key)
        for it in (v if isinstance(v, list) else [v]) if found else []:
            if isinstance(it, str) and norm(it):
                edu_keys.append(EducationKey(institution=norm(it)))
            elif isinstance(it, dict):
                edu_keys.extend(_block(EducationKey, it, key, warnings, {"school": "institution"}))
    if edu_keys:
        out["remove_education"] = edu_keys

    clears = list(out.get("clear_sections", []))
    found, v = f.get("clearsections", "clearsection", "sections", "section")
    if found:
        clears.extend(_sections(v))
    if clears:
        out["clear_sections"] = dedupe_keep_order(clears)

    # granular edits
    found, v = f.get("editexperiencefield")
    if found:
        items = [_field_edit_remap(_EXP_FIELDS)(dict(it)) if isinstance(it, dict) else it for it in (v if isinstance(v, list) else [v])]
        out["field_edits"] = _block(FieldEdit, items, "editExperienceField", warnings, {"companyname": "company", "newvalue": "value"})
    found, v = f.get("editeducationfield")
    if found:
        items = [_field_edit_remap(_EDU_FIELDS)(dict(it)) if isinstance(it, dict) else it for it in (v if isinstance(v, list) else [v])]
        out["education_field_edits"] = _block(EducationFieldEdit, items, "editEducationField", warnings, {"school": "institution", "newvalue": "value"})
    found, v = f.get("editdescriptionline")
    if found:
        out["line_edits"] = _block(LineEdit, v, "editDescriptionLine", warnings, _LINE_REMAP)
    removals_l: list = []
    for key in ("removedescriptionline", "removedescriptionfromexperience"):
        found, v = f.get(key)
        if found:
            removals_l.extend(_block(LineRemoval, v, key, warnings, _REMOVE_LINE_REMAP))
    found, v = f.get("removedescriptionsfromexperience")
    for it in (v if isinstance(v, list) else [v]) if found else []:
        if not isinstance(it, dict):
            warnings.append("Dropped invalid removeDescriptionsFromExperience block")
            continue
        sub = _Fields(it)
        company = _text(sub.value(*_COMPANY))
        texts = _lines(sub.value("descriptions", "description", "lines"))
        if not company or not texts:
            warnings.append("Dropped invalid removeDescriptionsFromExperience block")
            continue
        removals_l.extend(LineRemoval(company=company, text=t) for t in texts)
    if removals_l:
        out["line_removals"] = removals_l
    found, v = f.get("adddescriptionline", "adddescriptionlines")
    if found:
        out["line_additions"] = _block(LineAddition, v, "addDescriptionLine", warnings, _ADD_REMAP)
    found, v = f.get("editskill", "renameskill")
    if found:
        out["skill_edits"] = _block(SkillEdit, v, "editSkill", warnings, _SKILL_REMAP)
    found, v = f.get("updateexperiencedescription")
    if found:
        items = []
        for it in v if isinstance(v, list) else [v]:
            if isinstance(it, dict):
                sub = _Fields(it)
                items.append({"company": _text(sub.value(*_COMPANY)), "description": _lines(sub.value(*_DESCRIPTION))})
            else:
                items.append(it)
        out["description_updates"] = _block(DescriptionUpdate, items, "updateExperienceDescription", warnings)
    found, v = f.get("rewriteexperience", "rewrite")
    if found:
        items = []
        for it in v if isinstance(v, list) else [v]:
            if isinstance(it, dict):
                it = dict(it)
                sub = _Fields(it)
                for key in ("description", "descriptions", "newdescriptions", "newdescription", "bullets"):
                    ok, lines = sub.get(key)
                    if ok:
                        it = {k: val for k, val in it.items() if field_key(str(k)) != key}
                        it["description"] = _lines(lines)
                        break
                ok, dur = sub.get("duration", "newduration", "dates")
                if ok and isinstance(dur, str):
                    it = {k: val for k, val in it.items() if field_key(str(k)) not in ("duration", "newduration", "dates")}
                    it["duration"] = normalize_duration(dur)
            items.append(it)
        out["rewrites"] = _block(ExperienceRewrite, items, "rewriteExperience", warnings, _REWRITE_REMAP)
    found, v = f.get("reorganize", kind=dict)
    if found:
        sub = _Fields(v)
        exps = sub.value(*_EXPERIENCES_KEYS, kind=list) or []
        summary = sub.value(*_SUMMARY_KEYS, kind=str)
        out["reorganize"] = Reorganize(
            experiences=_order_items(exps),
            skills=_skills(sub.value(*_SKILLS_KEYS)) if sub.get(*_SKILLS_KEYS)[0] else None,
            summary=norm(summary) if summary is not None else None,
            contact=_contact(sub.value(*_CONTACT_KEYS, kind=dict)),
        )

    for key in f.unused():
        if field_key(key) not in _OP_KEYS:
            warnings.append(f"Ignored unknown field {key!r}")

    out["warnings"] = warnings
    for w in warnings:
        logger.warning("Patch normalizer: %s", w)
    return CanonicalPatch(**out)


def parse_patch(raw: Union[str, dict, list, None]) -> ParseResult:
    """
    Ordered fallback chain:

      1. strict JSON of the delimited / fenced region (or the whole text)
      2. repair pass (bare keys, smart quotes, trailing commas, whitespace)
      3. brace-balanced substring
      4. only when no delimited region exists: natural-language intents

    Never raises for bad input; returns PatchParseError carrying the raw text.
    """
    if isinstance(raw, (dict, list)):
        try:
            return normalize_payload(raw)
        except (TypeError, ValidationError) as e:
            return PatchParseError(raw=json.dumps(raw, default=str), reason="invalid payload", detail=str(e))
    text = raw or ""
    if not text.strip():
        return PatchParseError(raw=text, reason="empty payload")

    region, delimited = _region(text)
    data = parse_structured(region if delimited else text)
    if isinstance(data, (dict, list)):
        try:
            return normalize_payload(data)
        except (TypeError, ValidationError) as e:
            return PatchParseError(raw=text, reason="invalid payload", detail=str(e))

    if delimited:
        return PatchParseError(raw=text, reason="delimited payload could not be parsed")

    patch = intents_from_text(text)
    if patch is not None:
        logger.info("Patch synthesized from natural-language intents (%s)", patch.operation.value)
        return patch
    return PatchParseError(raw=text, reason="no structured payload or recognizable intent")
