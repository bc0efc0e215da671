import pytest

from resume_tree.models import Contact, Experience, Node, Resume


def _n(uid, layout="paragraph", title=None, text=None, children=None):
    return Node(uid=uid, layout=layout, title=title, text=text, children=children or [])


@pytest.fixture
def sample_tree():
    """
    0   header (container)
    0.0   name
    0.1   email
    1   Experience (heading)
    1.0   job-a (container)
    1.0.0   a-1
    1.0.1   a-2
    1.1   job-b
    1.1.0   b-1
    2   Skills (heading)
    2.0   skills-p
    """
    return [
        _n("header", "container", children=[
            _n("name", text="Jane Doe"),
            _n("email", "key-value", title="Email", text="jane@example.com"),
        ]),
        _n("exp", "heading", title="Experience", children=[
            _n("job-a", "container", title="Engineer at Acme", children=[
                _n("a-1", "list-item", text="Built the billing service"),
                _n("a-2", "list-item", text="Cut deploy time by 40%"),
            ]),
            _n("job-b", "container", title="Intern at Initech", children=[
                _n("b-1", "list-item", text="Wrote tests"),
            ]),
        ]),
        _n("skills", "heading", title="Skills", children=[_n("skills-p", text="Python, SQL")]),
    ]


@pytest.fixture
def sample_resume():
    return Resume(
        experiences=[
            Experience(
                id="e1",
                company="Acme",
                title="Eng",
                duration="2020 – 2022",
                description=["Built the billing service", "Cut deploy time by 40%"],
            ),
            Experience(id="e2", company="Initech", title="Intern", description=["Wrote tests"]),
        ],
        skills=["Python", "SQL"],
        summary="Backend engineer.",
        contact=Contact(full_name="Jane Doe", email="jane@example.com"),
    )
