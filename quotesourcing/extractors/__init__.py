"""Field extractors for scraped vendor pages."""

from quotesourcing.extractors.base import FieldExtractor, FieldMatcher, RecordExtractor
from quotesourcing.extractors.matchers import CssAttributeMatcher, CssTextMatcher, RegexTextMatcher, css
from quotesourcing.extractors.parsing import parse_days, parse_hours, parse_price

__all__ = [
    "FieldMatcher",
    "FieldExtractor",
    "RecordExtractor",
    "CssTextMatcher",
    "CssAttributeMatcher",
    "RegexTextMatcher",
    "css",
    "parse_price",
    "parse_hours",
    "parse_days",
]
