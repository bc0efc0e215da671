from __future__ import annotations
import os
from typing import Iterable, List, Optional, Sequence

from rapidfuzz import fuzz

from .models import Education, Experience
from .rules import norm, norm_key

FUZZY_MATCH_THRESHOLD = int(os.getenv("FUZZY_MATCH_THRESHOLD", "85"))
DESCRIPTION_SIMILARITY = int(os.getenv("DESCRIPTION_SIMILARITY", "95"))


def dedupe_keep_order(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for s in items:
        key = norm_key(s)
        if key and key not in seen:
            seen.add(key)
            out.append(norm(s))
    return out


def _near_duplicate(line: str, existing: Sequence[str]) -> bool:
    key = norm_key(line)
    for e in existing:
        ek = norm_key(e)
        if ek == key or fuzz.ratio(ek, key) >= DESCRIPTION_SIMILARITY:
            return True
    return False


def merge_lines(current: Sequence[str], incoming: Iterable[str]) -> List[str]:
    """Append-only union: existing order kept, genuinely new lines added at the end."""
    out = dedupe_keep_order(current)
    for line in incoming:
        if norm(line) and not _near_duplicate(line, out):
            out.append(norm(line))
    return out


def same_experience(a: Experience, b: Experience) -> bool:
    if a.id and b.id and a.id == b.id:
        return True
    return norm_key(a.company) == norm_key(b.company) and norm_key(a.title) == norm_key(b.title)


def same_education(a: Education, b: Education) -> bool:
    if a.id and b.id and a.id == b.id:
        return True
    return norm_key(a.institution) == norm_key(b.institution) and norm_key(a.degree) == norm_key(
        b.degree
    )


def find_by_identity(items: Sequence, incoming, same) -> int:
    """Index of the entry `incoming` identifies: id first, then its natural key."""
    if incoming.id:
        for i, it in enumerate(items):
            if it.id == incoming.id:
                return i
    for i, it in enumerate(items):
        if same(it, incoming):
            return i
    return -1


def match_company(experiences: Sequence[Experience], company: str) -> int:
    """
    Resolve a loosely written company name to an experience index.

    Exact (normalized) match wins, then containment either way, then the best
    token_set_ratio above FUZZY_MATCH_THRESHOLD. -1 when nothing qualifies.
    """
    want = norm_key(company)
    if not want:
        return -1
    keys = [norm_key(e.company) for e in experiences]
    for i, k in enumerate(keys):
        if k == want:
            return i
    for i, k in enumerate(keys):
        if k and (want in k or k in want):
            return i
    best_i, best = -1, 0.0
    for i, k in enumerate(keys):
        if not k:
            continue
        score = fuzz.token_set_ratio(want, k)
        if score > best:
            best_i, best = i, score
    return best_i if best >= FUZZY_MATCH_THRESHOLD else -1


def removal_matches(experiences: Sequence[Experience], company: str) -> List[int]:
    """
    Indexes a removal by company name targets.

    Exact (normalized) matches first. Otherwise the single entry whose whole-name
    ratio clears FUZZY_MATCH_THRESHOLD; several near misses match nothing.
    """
    want = norm_key(company)
    if not want:
        return []
    keys = [norm_key(e.company) for e in experiences]
    exact = [i for i, k in enumerate(keys) if k == want]
    if exact:
        return exact
    near = [i for i, k in enumerate(keys) if k and fuzz.ratio(want, k) >= FUZZY_MATCH_THRESHOLD]
    return near if len(near) == 1 else []


def match_line(lines: Sequence[str], text: str) -> Optional[int]:
    """Description line a fuzzy reference points at (containment, then ratio)."""
    want = norm_key(text)
    if not want:
        return None
    for i, ln in enumerate(lines):
        if want in norm_key(ln):
            return i
    best_i, best = None, 0.0
    for i, ln in enumerate(lines):
        score = fuzz.partial_ratio(want, norm_key(ln))
        if score > best:
            best_i, best = i, score
    return best_i if best >= FUZZY_MATCH_THRESHOLD else None
