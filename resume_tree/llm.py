from __future__ import annotations
import json
import logging
import os
from html import escape
from typing import Any, List, Optional, Tuple

import requests
from pydantic import ValidationError

from .errors import ServiceError
from .models import Node
from .sections import build_tree_from_text
from .tree import new_uid

logger = logging.getLogger(__name__)

USE_LLM = os.getenv("USE_LLM", "0") == "1"
OPENAI_URL = "https://api.openai.com/v1/responses"
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "45"))

NODE_SCHEMA = {
    "type": "object",
    "properties": {
        "layout": {
            "type": "string",
            "enum": ["heading", "paragraph", "list-item", "key-value", "container", "grid"],
        },
        "title": {"type": ["string", "null"]},
        "text": {"type": ["string", "null"]},
        "children": {"type": "array", "items": {"$ref": "#"}},
    },
    "required": ["layout"],
}


def llm_enabled() -> bool:
    return USE_LLM and bool(os.getenv("OPENAI_API_KEY"))


def _output_text(data: dict) -> str:
    # Responses API (preferred)
    try:
        return data["output"][0]["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        # Chat-style fallback
        return data.get("choices", [{}])[0].get("message", {}).get("content", "") or ""


def _call(prompt: str, *, schema: Optional[dict] = None, max_tokens: int = 2000) -> str:
    """One round trip to the model. Any transport or HTTP failure becomes ServiceError."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ServiceError("OPENAI_API_KEY is not set")
    body: dict[str, Any] = {
        "model": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        "input": prompt,
        "max_output_tokens": max_tokens,
    }
    if schema is not None:
        body["response_format"] = {"type": "json_schema", "json_schema": schema}
    try:
        r = requests.post(
            OPENAI_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json=body,
            timeout=LLM_TIMEOUT,
        )
        r.raise_for_status()
        data = r.json()
    except requests.Timeout as e:
        raise ServiceError(f"Model call timed out after {LLM_TIMEOUT:g}s") from e
    except (requests.RequestException, ValueError) as e:
        raise ServiceError(f"Model call failed: {type(e).__name__}") from e
    return _output_text(data)


def _to_nodes(items: Any) -> List[Node]:
    out: List[Node] = []
    for it in items or []:
        if not isinstance(it, dict):
            continue
        out.append(
            Node(
                uid=new_uid(),
                layout=it.get("layout") or "paragraph",
                title=it.get("title"),
                text=it.get("text"),
                meta=it.get("meta") or {},
                style=it.get("style") or {},
                children=_to_nodes(it.get("children")),
            )
        )
    return out


def structure_resume(text: str) -> Tuple[List[Node], str]:
    """
    Text -> (tree, title). Falls back to the rule-based section splitter when
    the model is disabled. Ids are always assigned here, never taken from the model.
    """
    if not llm_enabled():
        return build_tree_from_text(text)

    schema = {
        "name": "resume_tree",
        "schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "tree": {"type": "array", "items": NODE_SCHEMA},
            },
            "required": ["title", "tree"],
        },
        "strict": False,
    }
    prompt = f"""Structure this resume as a tree of content nodes.
Each node has a layout (heading, paragraph, list-item, key-value, container, grid),
optional title/text and optional children. Return JSON {{"title": ..., "tree": [...]}}.
Text:
{text}
"""
    out_text = _call(prompt, schema=schema, max_tokens=4000)
    try:
        data = json.loads(out_text) if out_text else {}
        tree = _to_nodes(data.get("tree"))
    except (json.JSONDecodeError, AttributeError, ValidationError) as e:
        raise ServiceError("Structuring service returned an unusable tree") from e
    if not tree:
        raise ServiceError("Structuring service returned an empty tree")
    return tree, str(data.get("title") or "")


def propose_patch(message: str, context: str) -> str:
    """Chat turn: the reply is raw text for the patch normalizer, never parsed here."""
    prompt = f"""You edit a resume together with its owner.
When the resume should change, include the change as JSON between [RESUME_DATA] and [/RESUME_DATA].
Use keys like operation, experience, skills, summary, contact, removeSkills,
editExperienceField, addDescriptionLine, removeDescriptionLine.
Current resume:
{context}

User: {message}
"""
    return _call(prompt, max_tokens=1500)


_TAGS = {"heading": "h2", "paragraph": "p", "list-item": "li", "key-value": "p", "container": "section", "grid": "div"}
BASIC_CSS = "body{font-family:sans-serif;max-width:48em;margin:auto}h2{border-bottom:1px solid #ccc}"


def _render_basic(nodes: List[Node]) -> str:
    parts = []
    for n in nodes:
        tag = _TAGS.get(n.layout, "div")
        inner = ""
        if n.layout == "key-value":
            inner = f"<strong>{escape(n.title or '')}:</strong> {escape(n.text or '')}"
        else:
            if n.title:
                inner += escape(n.title) if n.layout == "heading" else f"<strong>{escape(n.title)}</strong>"
            if n.text:
                inner += (" " if inner else "") + escape(n.text)
        kids = _render_basic(n.children)
        if n.children and all(c.layout == "list-item" for c in n.children):
            kids = f"<ul>{kids}</ul>"
        if n.layout == "heading":
            parts.append(f"<h2>{inner}</h2>{kids}")
        else:
            parts.append(f"<{tag}>{inner}{kids}</{tag}>")
    return "".join(parts)


def render_design(tree: List[Node], title: str, template: str) -> dict:
    """Presentation artifact for the current tree: {"html": ..., "css": ...}."""
    if not llm_enabled():
        html = f"<h1>{escape(title)}</h1>{_render_basic(tree)}"
        return {"html": html, "css": BASIC_CSS}
    payload = json.dumps([n.model_dump(exclude={"uid"}) for n in tree], ensure_ascii=False)
    schema = {
        "name": "design",
        "schema": {
            "type": "object",
            "properties": {"html": {"type": "string"}, "css": {"type": "string"}},
            "required": ["html", "css"],
        },
        "strict": True,
    }
    prompt = f"""Render this resume tree as HTML and CSS using the "{template}" template.
Title: {title}
Tree:
{payload}
"""
    out_text = _call(prompt, schema=schema, max_tokens=6000)
    try:
        data = json.loads(out_text)
        return {"html": str(data["html"]), "css": str(data.get("css") or "")}
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ServiceError("Design service returned an unusable artifact") from e
