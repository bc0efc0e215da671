from resume_tree.rules import normalize_phone
from resume_tree.sections import resume_from_text


def test_contact_happy_path():
    text = """
Tim Nguyen
Montreal, QC
tim@example.com
(514) 555-1234
"""
    c = resume_from_text(text).contact
    assert c.email == "tim@example.com"
    assert c.phone and "+1" in c.phone
    assert c.full_name == "Tim Nguyen"


def test_no_contacts_is_safe():
    c = resume_from_text("Just some text with no email and no phone.").contact
    assert c.email == ""
    assert c.phone == ""


def test_normalize_phone():
    assert normalize_phone("514.555.1234").startswith("+1 514")
    assert normalize_phone("+44 20 7946 0958", region="US").startswith("+44")
    # unparseable input is kept verbatim
    assert normalize_phone("call me") == "call me"
    assert normalize_phone("  ") == ""
