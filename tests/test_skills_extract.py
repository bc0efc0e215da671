import pytest

from resume_tree.rules import canonical_skill, split_on_separators
from resume_tree.sections import resume_from_text


def test_skills_section_dedupes():
    r = resume_from_text("Jane\nSkills\nPython, SQL, Flask, python\nDocker | Git")
    assert r.skills == ["Python", "SQL", "Flask", "Docker", "Git"]


@pytest.mark.parametrize(
    "token, canon",
    [
        ("golang", "Go"),
        ("k8s", "Kubernetes"),
        ("postgres", "PostgreSQL"),
        ("ReactJS", "React"),
        ("node", "Node.js"),
        ("FooBarTech", "FooBarTech"),
        ("  java  ", "Java"),
    ],
)
def test_canonical_skill(token, canon):
    assert canonical_skill(token) == canon


def test_split_on_separators():
    assert split_on_separators("Python, SQL;Go / Rust | C++  Bash") == ["Python", "SQL", "Go", "Rust", "C++", "Bash"]
    assert split_on_separators("") == []
