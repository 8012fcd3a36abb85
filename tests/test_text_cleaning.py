import re

from councilwatch.text_cleaning import ELLIPSIS, cap_content, normalize_spaces, strip_noise, title_case_heading


def test_normalize_spaces():
    assert normalize_spaces("  Lazo\n Road \t rezoning ") == "Lazo Road rezoning"
    assert normalize_spaces(None) == ""


def test_cap_content_marks_the_cut():
    assert cap_content("  short  ", 10) == "short"
    capped = cap_content("a" * 30, 10)
    assert capped == "a" * 10 + ELLIPSIS
    assert cap_content("", 10) == ""


def test_strip_noise_removes_footers_and_form_feeds():
    footer = re.compile(r"Page \d+ of \d+")
    text = "STAFF REPORT\fSUBJECT: Budget\nPage 3 of 9\n\n\n\nPURPOSE"

    cleaned = strip_noise(text, [footer])

    assert "Page 3" not in cleaned
    assert "\f" not in cleaned
    assert "\n\n\n" not in cleaned
    assert cleaned.startswith("STAFF REPORT\nSUBJECT: Budget")


def test_title_case_heading():
    assert title_case_heading("REGIONAL GROWTH STRATEGY AMENDMENT BYLAW NO. 512") == (
        "Regional Growth Strategy Amendment Bylaw No. 512"
    )
    assert title_case_heading("RECOMMENDATION for OCP AMENDMENT OF THE PLAN") == "OCP Amendment of the Plan"
    assert title_case_heading("“CVRD PARKS AND TRAILS”") == "“CVRD Parks and Trails”"
