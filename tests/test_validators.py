from __future__ import annotations

from site_copilot.validators import (
    check_page_sections,
    find_policy_violations,
    validate_section_content,
    validate_site_plan,
)


def test_valid_content_drops_empty_optionals():
    result = validate_section_content("heroEditorial", {"headline": "Brand systems for calm teams", "subhead": None})

    assert result.ok
    assert result.value == {"headline": "Brand systems for calm teams"}


def test_unknown_fields_are_rejected():
    result = validate_section_content("ctaPrimary", {"headline": "Talk to us", "action_label": "Book", "color": "red"})

    assert result.errors == ["color: Extra inputs are not permitted"]


def test_list_bounds_are_enforced():
    result = validate_section_content("valueProps", {"items": [{"title": "Calm", "description": "Quiet work."}]})

    assert not result.ok
    assert result.errors[0].startswith("items: List should have at least 3 items")


def test_blank_text_is_rejected():
    result = validate_section_content("heroMinimal", {"headline": "   "})

    assert result.errors == ["headline: Value error, must not be empty"]


def test_policy_tags():
    assert find_policy_violations("heroEditorial", {"headline": "Our innovative studio"}) == ["banned_words"]
    assert find_policy_violations("heroEditorial", {"headline": "The very best studio"}) == ["banned_patterns"]
    assert find_policy_violations("heroEditorial", {"headline": "See www.example.com"}) == ["links"]
    assert find_policy_violations("heroEditorial", {"headline": "Read [this](/about)"}) == ["markdown"]


def test_bullets_are_only_banned_in_long_bios():
    body = "We care about:\n• calm process\n• clear outcomes"

    assert find_policy_violations("bioLong", {"body": body}) == ["bullets"]
    assert find_policy_violations("contactForm", {"headline": "Say hello", "description": body}) == []


def test_policy_violation_rejects_whole_object():
    result = validate_section_content("ctaPrimary", {"headline": "Book a call", "action_label": "Unlock growth"})

    assert result.errors == ["Content policy violation: banned_words"]


def test_plan_rules():
    assert check_page_sections("home", ["valueProps", "heroEditorial", "ctaPrimary"]) == [
        "home hero must be the first section."
    ]
    assert check_page_sections("home", ["heroEditorial", "ctaPrimary", "valueProps"]) == [
        "home ctaPrimary must be the last section."
    ]
    assert check_page_sections("contact", ["heroMinimal", "blogIndex"]) == [
        "contact contains invalid sections: blogIndex",
        "contact cannot contain blog sections.",
    ]
    assert check_page_sections("about", []) == ["about requires at least one section."]


def test_plan_fields_and_blog_answer():
    plan = {
        "pages": {
            "home": {"goal": "conversion", "sections": ["heroEditorial", "ctaPrimary"], "headline": "Hi"},
            "blog": {"goal": "education", "sections": ["heroMinimal", "blogIndex"]},
        }
    }

    result = validate_site_plan(plan, blog_presence="no")

    assert result.errors == ["Disallowed fields: headline", "Blog page not allowed when blog is 'no'."]


def test_plan_goals_and_pages():
    result = validate_site_plan(
        {"pages": {"home": {"goal": "vibes", "sections": ["heroEditorial"]}, "shop": {"goal": "conversion", "sections": []}}}
    )

    assert result.errors == ["home has an invalid goal: vibes", "Unknown page: shop"]
    assert validate_site_plan({"pages": {}}).errors == ["At least one page is required."]


def test_valid_plan():
    result = validate_site_plan({"pages": {"contact": {"goal": "conversion", "sections": ["heroMinimal", "contactForm"]}}})

    assert result.ok
    assert result.value.pages["contact"].sections == ["heroMinimal", "contactForm"]
