from __future__ import annotations
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Layout = Literal["heading", "paragraph", "list-item", "key-value", "container", "grid"]


class Node(BaseModel):
    """One content unit of the presentation tree. Addresses are derived, never stored."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    uid: str
    layout: Layout = "paragraph"
    title: Optional[str] = None
    text: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    style: dict[str, Any] = Field(default_factory=dict)
    children: List["Node"] = Field(default_factory=list)


class NodeSpec(BaseModel):
    """Content of a node that does not exist yet (no uid, no children)."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    layout: Layout = "paragraph"
    title: Optional[str] = None
    text: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    style: dict[str, Any] = Field(default_factory=dict)


class Experience(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: Optional[str] = None
    company: str = ""
    title: str = ""
    # None means "no duration known"; "" means explicitly blanked
    duration: Optional[str] = None
    description: List[str] = Field(default_factory=list)


class Education(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: Optional[str] = None
    institution: str = ""
    degree: str = ""
    duration: Optional[str] = None
    description: List[str] = Field(default_factory=list)


class Contact(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    full_name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    title: str = ""


class Resume(BaseModel):
    """Flat domain record the merge engine works on."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    experiences: List[Experience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    summary: str = ""
    contact: Contact = Field(default_factory=Contact)


class ValidationResult(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
