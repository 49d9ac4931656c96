"""Declarative field extraction over unstable page markup."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from quotesourcing.errors import AdapterError, AdapterFailureReason

logger = logging.getLogger(__name__)


class FieldMatcher(ABC):
    """One strategy for locating a field value inside a page or element."""

    NAME: str = ""

    @abstractmethod
    async def match(self, scope: Any) -> str | None:
        """Try to resolve the field.

        Args:
            scope: Playwright Page or ElementHandle to search within.

        Returns:
            Stripped text value, or None if this strategy did not resolve.
        """
        ...

    def describe(self) -> str:
        return self.NAME


@dataclass
class FieldExtractor:
    """Ordered list of matchers for one field; first match wins."""

    field: str
    matchers: list[FieldMatcher]
    required: bool = False
    resolved_by: str | None = field(default=None, init=False, compare=False)

    async def extract(self, scope: Any) -> str | None:
        """Run matchers in order and return the first resolved value.

        The matcher that resolved is recorded in resolved_by.

        Raises:
            AdapterError: FIELD_NOT_FOUND if the field is required and no
                matcher resolved.
        """
        self.resolved_by = None
        for matcher in self.matchers:
            try:
                value = await matcher.match(scope)
            except Exception as e:
                logger.debug(f"Matcher {matcher.describe()} failed for '{self.field}': {e}")
                continue
            if value:
                self.resolved_by = matcher.describe()
                logger.debug(f"Resolved '{self.field}' with {matcher.describe()}")
                return value

        if self.required:
            raise AdapterError(
                AdapterFailureReason.FIELD_NOT_FOUND,
                f"No selector resolved required field '{self.field}'",
            )
        return None


@dataclass
class RecordExtractor:
    """Set of field extractors applied to one result element."""

    fields: list[FieldExtractor] = field(default_factory=list)

    async def extract(self, scope: Any) -> dict[str, str | None]:
        """Extract every field. Missing optional fields come back as None.

        Raises:
            AdapterError: FIELD_NOT_FOUND when a required field is missing.
        """
        record: dict[str, str | None] = {}
        for extractor in self.fields:
            record[extractor.field] = await extractor.extract(scope)
        return record
