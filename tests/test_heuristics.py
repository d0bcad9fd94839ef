from page_agent.core.actions import ActionType
from page_agent.core.heuristics import (
    COMMENT_TEMPLATES,
    extract_site_token,
    heuristic_plan,
    looks_like_domain,
    normalize_url,
    query_implies_choice,
    Query,
)


def test_enter_domain_yields_navigate_and_ready_wait_only():
    plan = heuristic_plan("enter reddit.com")
    assert plan is not None
    assert [a.type for a in plan] == [ActionType.NAVIGATE, ActionType.WAIT_FOR]
    assert plan[0].url == "https://reddit.com"
    assert plan[1].direction == "ready"


def test_search_without_site_types_into_textbox():
    plan = heuristic_plan("search for cats")
    assert plan is not None
    assert [a.type for a in plan] == [ActionType.WAIT_FOR, ActionType.TYPE_TEXT, ActionType.WAIT_FOR]
    typed = plan[1]
    assert typed.locator.role == "textbox"
    assert typed.text == "cats"
    assert typed.submit is True
    assert plan[0].is_ready_wait and plan[2].is_ready_wait


def test_navigation_with_search_term_and_comment():
    plan = heuristic_plan('go to youtube and search for lofi, then open the first post and comment "nice mix"')
    assert plan is not None
    types = [a.type for a in plan]
    assert types[:4] == [ActionType.NAVIGATE, ActionType.WAIT_FOR, ActionType.TYPE_TEXT, ActionType.WAIT_FOR]
    assert plan[0].url == "https://youtube.com"
    assert plan[2].text == "lofi"
    assert ActionType.CLICK in types
    assert plan[-1].type == ActionType.TYPE_TEXT
    assert plan[-1].text == "nice mix"
    assert plan[-1].submit is False


def test_comment_without_quotes_uses_template():
    plan = heuristic_plan("open reddit.com and comment on the funniest post")
    assert plan is not None
    assert plan[-1].text in COMMENT_TEMPLATES
    click = next(a for a in plan if a.type == ActionType.CLICK)
    assert click.locator.role == "article"
    assert click.locator.text == "funny"


def test_non_domain_navigation_has_no_plan():
    assert heuristic_plan("open the settings menu") is None


def test_unrecognized_instruction_has_no_plan():
    assert heuristic_plan("summarize this page") is None


def test_site_token_keeps_domain_dots():
    assert extract_site_token(Query("navigate to news.ycombinator.com then read")) == "news.ycombinator.com"


def test_domain_helpers():
    assert looks_like_domain("github")
    assert looks_like_domain("www.example")
    assert not looks_like_domain("settings")
    assert normalize_url("github") == "https://github.com"
    assert normalize_url("http://a.b") == "http://a.b"


def test_query_implies_choice():
    assert query_implies_choice("Pick the best article")
    assert not query_implies_choice("read the article")
