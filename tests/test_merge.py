import pytest

from resume_tree.merge import apply_patch, edit_summary
from resume_tree.models import Experience, Resume
from resume_tree.normalizer import normalize_payload, parse_patch
from resume_tree.patch import CanonicalPatch, PatchOperation, SummaryEdit


def _apply(resume, payload):
    return apply_patch(resume, normalize_payload(payload))


def test_upsert_by_identity_merges_descriptions(sample_resume):
    res = _apply(sample_resume, {
        "experience": {"id": "e1", "company": "Acme", "title": "Eng", "description": ["Led migration to Go"]},
    })
    assert res.changed
    exps = res.resume.experiences
    assert len(exps) == 2
    assert exps[0].description == [
        "Built the billing service",
        "Cut deploy time by 40%",
        "Led migration to Go",
    ]
    # input untouched
    assert len(sample_resume.experiences[0].description) == 2


def test_patch_is_idempotent(sample_resume):
    payload = {
        "experience": {"company": "Acme", "title": "Eng", "description": ["Led migration to Go"]},
        "skills": ["Go", "python"],
        "appendToSummary": "Enjoys mentoring.",
    }
    once = _apply(sample_resume, payload).resume
    twice = _apply(once, payload)
    assert not twice.changed
    assert twice.resume.model_dump() == once.model_dump()
    assert once.skills == ["Python", "SQL", "Go"]


def test_explicit_duration_overrides_and_absent_keeps(sample_resume):
    res = _apply(sample_resume, {"experience": {"company": "Acme", "title": "Eng", "duration": "2020-2024"}})
    assert res.resume.experiences[0].duration == "2020 – 2024"
    res = _apply(sample_resume, {"experience": {"company": "Acme", "title": "Eng", "description": ["x y z"]}})
    assert res.resume.experiences[0].duration == "2020 – 2022"


def test_new_experience_gets_an_id(sample_resume):
    res = _apply(sample_resume, {"experience": {"company": "Globex", "title": "Lead"}})
    new = res.resume.experiences[-1]
    assert new.company == "Globex" and new.id
    assert "Added experience Globex" in res.notes


def test_placeholder_entries_are_skipped(sample_resume):
    res = _apply(sample_resume, {"experience": {"company": "Company Name", "title": "Job Title"}})
    assert not res.changed
    assert len(res.resume.experiences) == 2


def test_placeholder_lines_are_not_merged(sample_resume):
    res = _apply(sample_resume, {"experience": {"id": "e2", "description": ["Add measurable results here"]}})
    assert res.resume.experiences[1].description == ["Wrote tests"]


def test_remove_operation(sample_resume):
    res = _apply(sample_resume, {"operation": "remove", "skills": ["sql", "Haskell"], "experience": {"company": "Initech"}})
    assert res.resume.skills == ["Python"]
    assert [e.company for e in res.resume.experiences] == ["Acme"]
    assert any("haskell" in n for n in res.notes)


def test_missing_targets_become_notes_not_errors(sample_resume):
    res = _apply(sample_resume, {
        "deleteCompany": "Umbrella",
        "editExperienceField": {"company": "Umbrella", "field": "title", "value": "CTO"},
    })
    assert not res.changed
    assert len(res.notes) == 2


def test_clear_sections_then_add(sample_resume):
    res = _apply(sample_resume, {"replaceSkills": ["Go", "Rust"]})
    assert res.resume.skills == ["Go", "Rust"]


def test_reset_empties_everything(sample_resume):
    res = _apply(sample_resume, {"operation": "reset", "skills": ["Go"]})
    assert res.resume == Resume()


def test_replace_with_complete_resume(sample_resume):
    res = _apply(sample_resume, {
        "operation": "replace",
        "resume": {
            "experiences": [
                {"company": "Globex", "title": "Lead", "duration": "N/A"},
                {"company": "Company Name", "title": "Job Title"},
            ],
            "skills": "Go, Go, Rust",
            "summary": "New me.",
        },
    })
    r = res.resume
    assert [e.company for e in r.experiences] == ["Globex"]
    assert r.experiences[0].duration is None
    assert r.skills == ["Go", "Rust"]
    assert r.summary == "New me."


def test_rewrite_replaces_content_in_place(sample_resume):
    res = _apply(sample_resume, {
        "rewriteExperience": {
            "company": "acme",
            "newCompany": "Acme Corp",
            "newDescriptions": ["Owned payments"],
        },
    })
    e = res.resume.experiences[0]
    assert e.id == "e1"
    assert e.company == "Acme Corp"
    assert e.title == "Eng"
    assert e.description == ["Owned payments"]


def test_reorganize_pure_order_keeps_unnamed_entries(sample_resume):
    res = _apply(sample_resume, {"operation": "reorganize", "experiences": ["Initech"]})
    assert [e.id for e in res.resume.experiences] == ["e2", "e1"]


def test_granular_line_edits(sample_resume):
    res = _apply(sample_resume, {
        "editDescriptionLine": {"company": "Acme", "oldText": "billing service", "newText": "Built billing v2"},
        "addDescriptionLine": {"company": "Acme", "text": "Hired 3 engineers", "position": 0},
        "removeDescriptionLine": {"company": "Initech", "index": 0},
        "editSkill": {"oldSkill": "SQL", "newSkill": "PostgreSQL"},
        "editExperienceField": {"company": "Acme", "field": "dates", "value": "2019 - present"},
    })
    acme, initech = res.resume.experiences
    assert acme.description == ["Hired 3 engineers", "Built billing v2", "Cut deploy time by 40%"]
    assert acme.duration == "2019 – Present"
    assert initech.description == []
    assert res.resume.skills == ["Python", "PostgreSQL"]


def test_company_matching_is_fuzzy(sample_resume):
    res = _apply(sample_resume, {"updateExperienceDescription": {"company": "ACME Inc.", "description": ["Only line"]}})
    assert res.resume.experiences[0].description == ["Only line"]


def test_contact_merge_only_touches_given_fields(sample_resume):
    res = _apply(sample_resume, {"contact": {"location": "Montreal"}})
    c = res.resume.contact
    assert c.location == "Montreal"
    assert c.full_name == "Jane Doe"
    assert c.email == "jane@example.com"


@pytest.mark.parametrize(
    "summary, edit, expected",
    [
        ("A.", SummaryEdit(text="B."), "B."),
        ("A.", SummaryEdit(text="B.", mode="append"), "A. B."),
        ("A.", SummaryEdit(text="B.", mode="prepend"), "B. A."),
        ("A. B.", SummaryEdit(text="B.", mode="append"), "A. B."),
        ("", SummaryEdit(text="B.", mode="append"), "B."),
    ],
)
def test_edit_summary(summary, edit, expected):
    assert edit_summary(summary, edit) == expected


def test_non_latin_names_compare_case_insensitively():
    r = Resume(experiences=[Experience(id="x", company="ΑΛΦΑ", title="Μηχανικός")])
    res = apply_patch(r, CanonicalPatch(operation=PatchOperation.REMOVE, remove_experiences=[{"company": "αλφα"}]))
    assert res.resume.experiences == []


def test_remove_by_company_never_picks_a_near_miss():
    r = Resume(experiences=[Experience(company="Acme", title="Eng"), Experience(company="Acme Labs", title="Lead")])
    res = _apply(r, {"deleteCompany": "Acme Lab"})
    assert [e.company for e in res.resume.experiences] == ["Acme"]
    res = _apply(r, {"deleteCompany": "acme"})
    assert [e.company for e in res.resume.experiences] == ["Acme Labs"]


def test_short_name_does_not_remove_longer_company():
    r = Resume(experiences=[Experience(company="Google", title="SWE")])
    res = apply_patch(r, parse_patch("remove the experience at Go"))
    assert [e.company for e in res.resume.experiences] == ["Google"]
    assert not res.changed
    assert any("not found" in n for n in res.notes)


def test_remove_by_title_alone_needs_exact_title(sample_resume):
    res = _apply(sample_resume, {"operation": "remove", "experience": {"title": "Intern"}})
    assert [e.company for e in res.resume.experiences] == ["Acme"]
    res = _apply(sample_resume, {"operation": "remove", "experience": {"title": "Inter"}})
    assert len(res.resume.experiences) == 2


def test_null_skills_on_replace_keep_existing_skills(sample_resume):
    res = _apply(sample_resume, {"operation": "replace", "summary": "New", "skills": None})
    assert res.resume.summary == "New"
    assert res.resume.skills == ["Python", "SQL"]


def test_summary_append_compares_whole_sentences():
    assert edit_summary("I enjoy teamwork.", SummaryEdit(text="team", mode="append")) == "I enjoy teamwork. team"
    assert edit_summary("I enjoy teamwork. Go fan!", SummaryEdit(text="go fan", mode="append")) == "I enjoy teamwork. Go fan!"
