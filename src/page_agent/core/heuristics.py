"""Deterministic fallback planning.

Rules are ``(trigger, extractor, template)`` triples evaluated in priority
order. The first rule whose trigger matches and whose extractor yields a
match decides the plan; a rule that triggers but does not extract ends
planning with no plan.
"""
from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from page_agent.core.actions import Action, ActionType, Locator, ready_wait


NAVIGATION_PREFIXES = ("navigate to ", "go to ", "enter ", "open ")
SEARCH_PREFIXES = ("search for ", "search ", "look up ", "find ")
KNOWN_SITES = frozenset(
    {
        "reddit", "youtube", "google", "github", "twitter", "x", "facebook",
        "instagram", "amazon", "apple", "medium", "wikipedia", "bing",
        "netflix", "linkedin", "figma", "notion", "webflow", "vercel", "linear",
    }
)
CHOICE_TRIGGERS = ("pick", "choose", "funniest", "funny", "best", "top", "most upvoted", "most popular")
CONTENT_TRIGGERS = ("post", "article", "funn", "click", "enter it", "open it", "comment")
COMMENT_TEMPLATES = (
    "😂 This cracked me up, thanks for sharing!",
    "🤣 Can't stop laughing, this is gold.",
    "😄 This made my day!",
    "😂 Peak comedy right here.",
)

_SITE_STOPS = re.compile(r",|;|\.(?:\s|$)|\s+then\b|\s+and\b|\s+so\b|\s+to\s", re.IGNORECASE)
_TERM_STOPS = re.compile(r",|;|\.(?:\s|$)|\s+then\b|\s+and\b|\s+on\s|\s+in\s", re.IGNORECASE)
_DOMAIN_CHARS = re.compile(r"^[a-z0-9.\-:/]+")
_QUOTED = re.compile(r"[\"“']([^\"”']{2,200})[\"”']")


@dataclass(frozen=True)
class Query:
    raw: str

    @property
    def lower(self) -> str:
        return self.raw.lower()

    def has_any(self, words: tuple[str, ...]) -> bool:
        return any(w in self.lower for w in words)


@dataclass(frozen=True)
class HeuristicRule:
    name: str
    trigger: Callable[[Query], bool]
    extractor: Callable[[Query], Optional[str]]
    template: Callable[[Query, str], List[Action]]


def _cut(text: str, stops: re.Pattern[str]) -> str:
    match = stops.search(text)
    return (text[: match.start()] if match else text).strip()


def _after_prefix(query: Query, prefixes: tuple[str, ...]) -> Optional[str]:
    for prefix in prefixes:
        if query.lower.startswith(prefix):
            return query.raw.strip()[len(prefix):]
    return None


def looks_like_domain(token: str) -> bool:
    if token.startswith("http") or token.startswith("www."):
        return True
    if "." in token:
        parts = [p for p in token.split(".") if p]
        if len(parts) >= 2 and len(parts[-1]) >= 2:
            return True
    return token in KNOWN_SITES


def normalize_url(token: str) -> str:
    url = token
    if "." not in url:
        url += ".com"
    if not url.startswith("http"):
        url = "https://" + url
    return url


def extract_site_token(query: Query) -> Optional[str]:
    remainder = _after_prefix(query, NAVIGATION_PREFIXES)
    if not remainder:
        return None
    slice_ = _cut(remainder, _SITE_STOPS).lower()
    match = _DOMAIN_CHARS.match(slice_)
    if not match:
        return None
    token = match.group(0).rstrip(".")
    return token if looks_like_domain(token) else None


def extract_search_term(query: Query) -> Optional[str]:
    lower = query.lower
    for pattern in SEARCH_PREFIXES:
        idx = lower.find(pattern)
        if idx < 0:
            continue
        term = _cut(query.raw.strip()[idx + len(pattern):], _TERM_STOPS)
        return term or None
    return None


def infer_comment_text(query: Query) -> Optional[str]:
    if "comment" not in query.lower:
        return None
    quoted = _QUOTED.search(query.raw)
    if quoted:
        return quoted.group(1).strip()
    return random.choice(COMMENT_TEMPLATES)


def query_implies_choice(instruction: str) -> bool:
    return Query(instruction).has_any(CHOICE_TRIGGERS)


def _textbox() -> Locator:
    return Locator(role="textbox")


def _navigation_template(query: Query, token: str) -> List[Action]:
    actions = [
        Action(type=ActionType.NAVIGATE, url=normalize_url(token), new_tab=False),
        ready_wait(10000),
    ]
    term = extract_search_term(query)
    if term:
        actions.append(Action(type=ActionType.TYPE_TEXT, locator=_textbox(), text=term, submit=True))
        actions.append(ready_wait(10000))
    if query.has_any(CONTENT_TRIGGERS):
        article = Locator(role="article", text="funny" if query.has_any(("funniest", "funny")) else None)
        actions.append(Action(type=ActionType.CLICK, locator=article))
        actions.append(ready_wait(10000))
    comment = infer_comment_text(query)
    if comment:
        actions.append(Action(type=ActionType.TYPE_TEXT, locator=_textbox(), text=comment, submit=False))
    return actions


def _search_template(query: Query, term: str) -> List[Action]:
    actions = [
        ready_wait(8000),
        Action(type=ActionType.TYPE_TEXT, locator=_textbox(), text=term, submit=True),
        ready_wait(8000),
    ]
    comment = infer_comment_text(query)
    if comment:
        actions.append(Action(type=ActionType.TYPE_TEXT, locator=_textbox(), text=comment, submit=False))
    return actions


RULES: tuple[HeuristicRule, ...] = (
    HeuristicRule(
        name="navigate",
        trigger=lambda q: _after_prefix(q, NAVIGATION_PREFIXES) is not None,
        extractor=extract_site_token,
        template=_navigation_template,
    ),
    HeuristicRule(
        name="search",
        trigger=lambda q: _after_prefix(q, SEARCH_PREFIXES) is not None,
        extractor=lambda q: _cut(_after_prefix(q, SEARCH_PREFIXES) or "", _TERM_STOPS) or None,
        template=_search_template,
    ),
)


def heuristic_plan(instruction: str) -> Optional[List[Action]]:
    query = Query(instruction.strip())
    for rule in RULES:
        if not rule.trigger(query):
            continue
        match = rule.extractor(query)
        if match is None:
            return None
        return rule.template(query, match)
    return None
