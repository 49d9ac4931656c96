"""Concrete field matchers."""

import re
from typing import Any

from quotesourcing.extractors.base import FieldMatcher


class CssTextMatcher(FieldMatcher):
    """Text content of the first element matching a CSS selector."""

    NAME = "css-text"

    def __init__(self, selector: str):
        self.selector = selector

    async def match(self, scope: Any) -> str | None:
        element = await scope.query_selector(self.selector)
        if element is None:
            return None
        text = await element.text_content()
        return text.strip() if text else None

    def describe(self) -> str:
        return f"{self.NAME}({self.selector})"


class CssAttributeMatcher(FieldMatcher):
    """Attribute value of the first element matching a CSS selector."""

    NAME = "css-attr"

    def __init__(self, selector: str, attribute: str):
        self.selector = selector
        self.attribute = attribute

    async def match(self, scope: Any) -> str | None:
        element = await scope.query_selector(self.selector)
        if element is None:
            return None
        value = await element.get_attribute(self.attribute)
        return value.strip() if value else None

    def describe(self) -> str:
        return f"{self.NAME}({self.selector}@{self.attribute})"


class RegexTextMatcher(FieldMatcher):
    """First regex match in the scope's visible text.

    Returns group 1 when the pattern has a group, else the whole match.
    """

    NAME = "regex"

    def __init__(self, pattern: str, flags: int = re.IGNORECASE):
        self.pattern = re.compile(pattern, flags)

    async def match(self, scope: Any) -> str | None:
        text = await scope.inner_text()
        if not text:
            return None
        found = self.pattern.search(text)
        if not found:
            return None
        value = found.group(1) if self.pattern.groups else found.group(0)
        return value.strip()

    def describe(self) -> str:
        return f"{self.NAME}({self.pattern.pattern})"


def css(*selectors: str) -> list[FieldMatcher]:
    """Shorthand: one CssTextMatcher per selector, in order."""
    return [CssTextMatcher(s) for s in selectors]
