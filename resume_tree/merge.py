from __future__ import annotations
import logging
import re
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .models import Contact, Education, Experience, Resume
from .patch import (
    CanonicalPatch,
    ContactPatch,
    EducationPatch,
    ExperiencePatch,
    ExperienceRewrite,
    PatchOperation,
    Reorganize,
    SummaryEdit,
)
from .reconcile import (
    dedupe_keep_order,
    find_by_identity,
    match_company,
    match_line,
    merge_lines,
    removal_matches,
    same_education,
    same_experience,
)
from .rules import is_placeholder_entry, is_placeholder_line, norm, norm_key, normalize_duration
from .tree import new_uid

logger = logging.getLogger(__name__)

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


class MergeResult(BaseModel):
    resume: Resume
    notes: List[str] = Field(default_factory=list)
    changed: bool = False


def _clean_lines(lines: Optional[Iterable[str]]) -> List[str]:
    return dedupe_keep_order(ln for ln in (lines or []) if not is_placeholder_line(ln))


def _has(model: BaseModel, name: str) -> bool:
    return name in model.model_fields_set


# ---------------------------------------------------------------------------
# experiences / education
# ---------------------------------------------------------------------------


def _find_experience(items: Sequence[Experience], inc) -> int:
    idx = find_by_identity(items, inc, same_experience)
    if idx < 0 and inc.company and not inc.title:
        # company-only reference: fine as long as it's unambiguous
        hits = [i for i, e in enumerate(items) if norm_key(e.company) == norm_key(inc.company)]
        if len(hits) == 1:
            idx = hits[0]
    return idx


def upsert_experience(items: List[Experience], inc: ExperiencePatch, notes: List[str]) -> None:
    if is_placeholder_entry(inc.company) or is_placeholder_entry(inc.title):
        notes.append("Skipped placeholder experience entry")
        return
    idx = _find_experience(items, inc)
    if idx >= 0:
        cur = items[idx]
        if _has(inc, "company") and inc.company:
            cur.company = inc.company
        if _has(inc, "title") and inc.title:
            cur.title = inc.title
        if _has(inc, "duration"):
            cur.duration = inc.duration
        if inc.description:
            cur.description = merge_lines(cur.description, _clean_lines(inc.description))
        return
    if not (inc.company or inc.title):
        notes.append(f"Experience {inc.id} not found, nothing changed")
        return
    items.append(
        Experience(
            id=inc.id or new_uid(),
            company=inc.company or "",
            title=inc.title or "",
            duration=inc.duration,
            description=_clean_lines(inc.description),
        )
    )
    notes.append(f"Added experience {inc.company or inc.title}")


def upsert_education(items: List[Education], inc: EducationPatch, notes: List[str]) -> None:
    idx = find_by_identity(items, inc, same_education)
    if idx < 0 and inc.institution and not inc.degree:
        hits = [i for i, e in enumerate(items) if norm_key(e.institution) == norm_key(inc.institution)]
        if len(hits) == 1:
            idx = hits[0]
    if idx >= 0:
        cur = items[idx]
        if _has(inc, "institution") and inc.institution:
            cur.institution = inc.institution
        if _has(inc, "degree") and inc.degree:
            cur.degree = inc.degree
        if _has(inc, "duration"):
            cur.duration = inc.duration
        if inc.description:
            cur.description = merge_lines(cur.description, _clean_lines(inc.description))
        return
    if not (inc.institution or inc.degree):
        notes.append(f"Education {inc.id} not found, nothing changed")
        return
    items.append(
        Education(
            id=inc.id or new_uid(),
            institution=inc.institution or "",
            degree=inc.degree or "",
            duration=inc.duration,
            description=_clean_lines(inc.description),
        )
    )


def _experience_from(inc: ExperiencePatch) -> Experience:
    return Experience(
        id=inc.id or new_uid(),
        company=inc.company or "",
        title=inc.title or "",
        duration=inc.duration,
        description=_clean_lines(inc.description),
    )


def _valid_experience(e: Experience) -> bool:
    if not (e.company or e.title):
        return False
    return not (is_placeholder_entry(e.company) or is_placeholder_entry(e.title))


def remove_experience(items: List[Experience], key, notes: List[str]) -> List[Experience]:
    if key.id:
        kept = [e for e in items if e.id != key.id]
    elif key.company and key.title:
        kept = [e for e in items if not same_experience(e, Experience(company=key.company, title=key.title))]
    elif key.company:
        drop = set(removal_matches(items, key.company))
        kept = [e for i, e in enumerate(items) if i not in drop]
    else:
        want = norm_key(key.title or "")
        kept = [e for e in items if not (want and norm_key(e.title) == want)]
    if len(kept) == len(items):
        notes.append(f"Experience {key.id or key.company or key.title} not found, nothing changed")
    return kept


def remove_education(items: List[Education], key, notes: List[str]) -> List[Education]:
    if key.id:
        kept = [e for e in items if e.id != key.id]
    else:
        want = norm_key(key.institution)
        kept = [
            e
            for e in items
            if not (
                (want and want in norm_key(e.institution))
                and (not key.degree or norm_key(key.degree) == norm_key(e.degree))
            )
        ]
    if len(kept) == len(items):
        notes.append(f"Education {key.id or key.institution} not found, nothing changed")
    return kept


def rewrite_experience(items: List[Experience], rw: ExperienceRewrite, notes: List[str]) -> None:
    idx = -1
    if rw.id:
        idx = next((i for i, e in enumerate(items) if e.id == rw.id), -1)
    if idx < 0 and rw.company:
        idx = match_company(items, rw.company)
    if idx < 0:
        notes.append(f"Experience at {rw.company or rw.id} not found, nothing changed")
        return
    cur = items[idx]
    if rw.new_company:
        cur.company = rw.new_company
    if rw.title:
        cur.title = rw.title
    if _has(rw, "duration") and rw.duration is not None:
        cur.duration = rw.duration
    if rw.description is not None:
        cur.description = _clean_lines(rw.description)


def _locate(items: Sequence[Experience], company: str, notes: List[str]) -> Optional[Experience]:
    idx = match_company(items, company)
    if idx < 0:
        notes.append(f"Experience at {company} not found, nothing changed")
        return None
    return items[idx]


# ---------------------------------------------------------------------------
# skills / summary / contact
# ---------------------------------------------------------------------------


def add_skills(skills: List[str], new: Iterable[str]) -> List[str]:
    return dedupe_keep_order([*skills, *new])


def remove_skills(skills: List[str], names: Iterable[str], notes: List[str]) -> List[str]:
    drop = {norm_key(n) for n in names}
    kept = [s for s in skills if norm_key(s) not in drop]
    missing = drop - {norm_key(s) for s in skills}
    for m in sorted(missing):
        notes.append(f"Skill {m} not found, nothing changed")
    return kept


def _sentence_keys(text: str) -> List[str]:
    return [k for k in (norm_key(s).rstrip(".!?") for s in SENTENCE_SPLIT.split(text or "")) if k]


def edit_summary(summary: str, edit: SummaryEdit) -> str:
    text = norm(edit.text)
    if edit.mode == "replace":
        return text
    # repeated appends of the same sentences are a no-op
    have = set(_sentence_keys(summary))
    want = _sentence_keys(text)
    if want and all(k in have for k in want):
        return summary
    if not summary:
        return text
    return f"{summary} {text}" if edit.mode == "append" else f"{text} {summary}"


def merge_contact(contact: Contact, inc: ContactPatch) -> Contact:
    updates = {k: v for k, v in inc.model_dump(exclude_none=True).items() if k in inc.model_fields_set}
    return contact.model_copy(update=updates)


def clear_sections(resume: Resume, sections: Iterable[str], notes: List[str]) -> None:
    for sec in sections:
        match sec:
            case "experiences":
                resume.experiences = []
            case "education":
                resume.education = []
            case "skills":
                resume.skills = []
            case "summary":
                resume.summary = ""
            case "contact":
                resume.contact = Contact()
        notes.append(f"Cleared {sec}")


# ---------------------------------------------------------------------------
# operations
# ---------------------------------------------------------------------------


def _sanitized(resume: Resume, notes: List[str]) -> Resume:
    exps = []
    for e in resume.experiences:
        if not _valid_experience(e):
            notes.append("Skipped placeholder experience entry")
            continue
        exps.append(e.model_copy(update={
            "id": e.id or new_uid(),
            "duration": normalize_duration(e.duration),
            "description": _clean_lines(e.description),
        }))
    edus = [
        e.model_copy(update={"id": e.id or new_uid(), "description": _clean_lines(e.description)})
        for e in resume.education
        if e.institution or e.degree
    ]
    return Resume(
        experiences=exps,
        education=edus,
        skills=dedupe_keep_order(resume.skills),
        summary=norm(resume.summary),
        contact=resume.contact.model_copy(),
    )


def _replace(work: Resume, patch: CanonicalPatch, notes: List[str]) -> Resume:
    if patch.complete_resume is not None:
        notes.append("Replaced the whole resume")
        return _sanitized(patch.complete_resume, notes)
    if patch.experiences is not None:
        work.experiences = [e for e in map(_experience_from, patch.experiences) if _valid_experience(e)]
    if patch.educations is not None:
        work.education = []
        for inc in patch.educations:
            upsert_education(work.education, inc, notes)
    if patch.skills is not None:
        work.skills = dedupe_keep_order(patch.skills)
    if patch.summary is not None:
        work.summary = norm(patch.summary.text)
    if patch.contact is not None:
        work.contact = Contact(**patch.contact.model_dump(exclude_none=True))
    if patch.experience is not None:
        upsert_experience(work.experiences, patch.experience, notes)
    if patch.education is not None:
        upsert_education(work.education, patch.education, notes)
    return work


def _upsert(work: Resume, patch: CanonicalPatch, notes: List[str]) -> None:
    if patch.complete_resume is not None:
        src = patch.complete_resume
        for e in src.experiences:
            upsert_experience(work.experiences, ExperiencePatch(**e.model_dump(exclude_none=True)), notes)
        for e in src.education:
            upsert_education(work.education, EducationPatch(**e.model_dump(exclude_none=True)), notes)
        work.skills = add_skills(work.skills, src.skills)
        if src.summary:
            work.summary = norm(src.summary)
        work.contact = merge_contact(
            work.contact,
            ContactPatch(**{k: v for k, v in src.contact.model_dump().items() if v}),
        )
    for inc in ([patch.experience] if patch.experience else []) + (patch.experiences or []):
        upsert_experience(work.experiences, inc, notes)
    for inc in ([patch.education] if patch.education else []) + (patch.educations or []):
        upsert_education(work.education, inc, notes)
    if patch.skills:
        work.skills = add_skills(work.skills, patch.skills)
    if patch.summary is not None:
        work.summary = edit_summary(work.summary, patch.summary)
    if patch.contact is not None:
        work.contact = merge_contact(work.contact, patch.contact)


def _remove(work: Resume, patch: CanonicalPatch, notes: List[str]) -> None:
    for inc in ([patch.experience] if patch.experience else []) + (patch.experiences or []):
        work.experiences = remove_experience(work.experiences, inc, notes)
    for inc in ([patch.education] if patch.education else []) + (patch.educations or []):
        work.education = remove_education(work.education, inc, notes)
    if patch.skills:
        work.skills = remove_skills(work.skills, patch.skills, notes)


def _reorganize(work: Resume, plan: Reorganize, notes: List[str]) -> None:
    if plan.experiences:
        pool = list(work.experiences)
        ordered: List[Experience] = []
        for item in plan.experiences:
            if isinstance(item, str):
                idx = match_company(pool, item)
                if idx < 0:
                    notes.append(f"Experience at {item} not found, nothing changed")
                    continue
                ordered.append(pool.pop(idx))
            else:
                idx = _find_experience(pool, item)
                if idx >= 0:
                    found = [pool.pop(idx)]
                    upsert_experience(found, item, notes)
                    ordered.extend(found)
                else:
                    e = _experience_from(item)
                    if _valid_experience(e):
                        ordered.append(e)
        if all(isinstance(i, str) for i in plan.experiences):
            # pure reorder: entries not named keep their relative order at the end
            ordered.extend(pool)
        work.experiences = ordered
    if plan.skills is not None:
        work.skills = dedupe_keep_order(plan.skills)
    if plan.summary is not None:
        work.summary = norm(plan.summary)
    if plan.contact is not None:
        work.contact = merge_contact(work.contact, plan.contact)


def _granular(work: Resume, patch: CanonicalPatch, notes: List[str]) -> None:
    for key in patch.remove_experiences:
        work.experiences = remove_experience(work.experiences, key, notes)
    for key in patch.remove_education:
        work.education = remove_education(work.education, key, notes)
    if patch.remove_skills:
        work.skills = remove_skills(work.skills, patch.remove_skills, notes)

    for rw in patch.rewrites:
        rewrite_experience(work.experiences, rw, notes)

    for fe in patch.field_edits:
        exp = _locate(work.experiences, fe.company, notes)
        if exp is None:
            continue
        if fe.field == "duration":
            exp.duration = normalize_duration(fe.value)
        elif fe.value:
            setattr(exp, fe.field, norm(fe.value))

    for fe in patch.education_field_edits:
        idx = next(
            (i for i, e in enumerate(work.education) if norm_key(fe.institution) in norm_key(e.institution)),
            -1,
        )
        if idx < 0:
            notes.append(f"Education at {fe.institution} not found, nothing changed")
            continue
        edu = work.education[idx]
        if fe.field == "duration":
            edu.duration = normalize_duration(fe.value)
        elif fe.value:
            setattr(edu, fe.field, norm(fe.value))

    for du in patch.description_updates:
        exp = _locate(work.experiences, du.company, notes)
        if exp is not None:
            exp.description = _clean_lines(du.description)

    for le in patch.line_edits:
        exp = _locate(work.experiences, le.company, notes)
        if exp is None:
            continue
        idx = le.index if le.index is not None else match_line(exp.description, le.old_text or "")
        if idx is None or not 0 <= idx < len(exp.description):
            notes.append(f"Description line {le.index if le.index is not None else le.old_text!r} at {le.company} not found, nothing changed")
            continue
        others = [ln for i, ln in enumerate(exp.description) if i != idx]
        if norm_key(le.new_text) in {norm_key(o) for o in others}:
            exp.description = others
        else:
            exp.description[idx] = norm(le.new_text)

    for lr in patch.line_removals:
        exp = _locate(work.experiences, lr.company, notes)
        if exp is None:
            continue
        idx = lr.index if lr.index is not None else match_line(exp.description, lr.text or "")
        if idx is None or not 0 <= idx < len(exp.description):
            notes.append(f"Description line at {lr.company} not found, nothing changed")
            continue
        del exp.description[idx]

    for la in patch.line_additions:
        exp = _locate(work.experiences, la.company, notes)
        if exp is None or is_placeholder_line(la.text):
            continue
        merged = merge_lines(exp.description, [la.text])
        if len(merged) == len(exp.description):
            continue
        line = merged.pop()
        pos = len(merged) if la.position is None else max(0, min(la.position, len(merged)))
        merged.insert(pos, line)
        exp.description = merged

    for se in patch.skill_edits:
        keys = [norm_key(s) for s in work.skills]
        if norm_key(se.old) not in keys:
            notes.append(f"Skill {se.old} not found, nothing changed")
            continue
        work.skills[keys.index(norm_key(se.old))] = norm(se.new)

    if patch.reorganize is not None:
        _reorganize(work, patch.reorganize, notes)


def apply_patch(resume: Resume, patch: CanonicalPatch) -> MergeResult:
    """
    Apply a canonical patch to a resume record. Pure: `resume` is not touched.

    Missing targets are reported in `notes`, never raised. Applying the same
    patch-mode payload twice leaves the record as it was after the first time.
    """
    work = resume.model_copy(deep=True)
    notes: List[str] = []
    op = patch.operation

    if op != PatchOperation.RESET and patch.clear_sections:
        clear_sections(work, patch.clear_sections, notes)

    match op:
        case PatchOperation.RESET:
            work = Resume()
            notes.append("Resume reset")
        case PatchOperation.REPLACE | PatchOperation.REDESIGN:
            work = _replace(work, patch, notes)
        case PatchOperation.CLEAR:
            pass
        case PatchOperation.REMOVE | PatchOperation.DELETE:
            _remove(work, patch, notes)
        case PatchOperation.REWRITE:
            if patch.experience is not None:
                exp = patch.experience
                rewrite_experience(
                    work.experiences,
                    ExperienceRewrite(
                        id=exp.id,
                        company=exp.company,
                        title=exp.title,
                        description=exp.description,
                        **({"duration": exp.duration} if _has(exp, "duration") else {}),
                    ),
                    notes,
                )
            if patch.skills:
                work.skills = add_skills(work.skills, patch.skills)
        case PatchOperation.REORGANIZE:
            if patch.skills is not None or patch.summary is not None or patch.contact is not None:
                _reorganize(
                    work,
                    Reorganize(
                        skills=patch.skills,
                        summary=patch.summary.text if patch.summary else None,
                        contact=patch.contact,
                    ),
                    notes,
                )
        case PatchOperation.PATCH | PatchOperation.ADD | PatchOperation.UPDATE:
            _upsert(work, patch, notes)
        case _:
            raise ValueError(f"Unhandled patch operation: {op}")

    if op != PatchOperation.RESET:
        _granular(work, patch, notes)
    work.skills = dedupe_keep_order(work.skills)

    changed = work.model_dump() != resume.model_dump()
    logger.info("Patch %s applied (changed=%s, notes=%d)", op.value, changed, len(notes))
    return MergeResult(resume=work, notes=notes, changed=changed)
