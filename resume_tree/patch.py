from __future__ import annotations
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Resume

Section = Literal["experiences", "education", "skills", "summary", "contact"]
SECTIONS: tuple[str, ...] = ("experiences", "education", "skills", "summary", "contact")


class PatchOperation(str, Enum):
    PATCH = "patch"
    ADD = "add"
    UPDATE = "update"
    REPLACE = "replace"
    REDESIGN = "redesign"
    RESET = "reset"
    REMOVE = "remove"
    DELETE = "delete"
    CLEAR = "clear"
    REWRITE = "rewrite"
    REORGANIZE = "reorganize"


class _PatchModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class ExperiencePatch(_PatchModel):
    """Only fields that are set (see `model_fields_set`) take part in a merge."""

    id: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[List[str]] = None


class EducationPatch(_PatchModel):
    id: Optional[str] = None
    institution: Optional[str] = None
    degree: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[List[str]] = None


class ContactPatch(_PatchModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    title: Optional[str] = None


class ExperienceKey(_PatchModel):
    id: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None


class EducationKey(_PatchModel):
    id: Optional[str] = None
    institution: Optional[str] = None
    degree: Optional[str] = None


class SummaryEdit(_PatchModel):
    text: str
    mode: Literal["replace", "append", "prepend"] = "replace"


class FieldEdit(_PatchModel):
    company: str
    field: Literal["company", "title", "duration"]
    value: Optional[str] = ""


class EducationFieldEdit(_PatchModel):
    institution: str
    field: Literal["institution", "degree", "duration"]
    value: Optional[str] = ""


class LineEdit(_PatchModel):
    company: str
    index: Optional[int] = None
    old_text: Optional[str] = None
    new_text: str


class LineRemoval(_PatchModel):
    """Remove one description line, by index or by (fuzzy) text."""

    company: str
    index: Optional[int] = None
    text: Optional[str] = None


class LineAddition(_PatchModel):
    company: str
    text: str
    position: Optional[int] = None


class SkillEdit(_PatchModel):
    old: str
    new: str


class DescriptionUpdate(_PatchModel):
    company: str
    description: List[str]


class ExperienceRewrite(_PatchModel):
    """Replace an experience's content in place; `company` locates it, `new_company` renames it."""

    company: Optional[str] = None
    id: Optional[str] = None
    new_company: Optional[str] = None
    title: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[List[str]] = None


class Reorganize(_PatchModel):
    experiences: List[Union[str, ExperiencePatch]] = Field(default_factory=list)
    skills: Optional[List[str]] = None
    summary: Optional[str] = None
    contact: Optional[ContactPatch] = None


class CanonicalPatch(_PatchModel):
    operation: PatchOperation = PatchOperation.PATCH

    experience: Optional[ExperiencePatch] = None
    experiences: Optional[List[ExperiencePatch]] = None
    education: Optional[EducationPatch] = None
    educations: Optional[List[EducationPatch]] = None
    skills: Optional[List[str]] = None
    summary: Optional[SummaryEdit] = None
    contact: Optional[ContactPatch] = None
    complete_resume: Optional[Resume] = None

    remove_experiences: List[ExperienceKey] = Field(default_factory=list)
    remove_education: List[EducationKey] = Field(default_factory=list)
    remove_skills: List[str] = Field(default_factory=list)
    clear_sections: List[Section] = Field(default_factory=list)

    field_edits: List[FieldEdit] = Field(default_factory=list)
    education_field_edits: List[EducationFieldEdit] = Field(default_factory=list)
    line_edits: List[LineEdit] = Field(default_factory=list)
    line_removals: List[LineRemoval] = Field(default_factory=list)
    line_additions: List[LineAddition] = Field(default_factory=list)
    skill_edits: List[SkillEdit] = Field(default_factory=list)
    description_updates: List[DescriptionUpdate] = Field(default_factory=list)
    rewrites: List[ExperienceRewrite] = Field(default_factory=list)
    reorganize: Optional[Reorganize] = None

    # soft problems met while normalizing (dropped blocks, unknown keys)
    warnings: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        payload = self.model_dump(exclude={"operation", "warnings"}, exclude_defaults=True)
        return not payload
