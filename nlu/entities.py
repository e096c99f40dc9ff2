"""Lexicon and regex based entity extraction."""

import re
from typing import Dict, List, Optional

from rapidfuzz import fuzz, process

from .patterns import contains_keyword


DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b"),
    re.compile(
        r"\b\d{1,2}\s+(?:january|february|march|april|may|june|july|august|"
        r"september|october|november|december)\s+\d{2,4}\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:today|tomorrow|yesterday|next week|this week|next month)\b", re.IGNORECASE),
]
TIME_PATTERN = re.compile(r"\b\d{1,2}:\d{2}(?:\s*(?:AM|PM))?", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
PHONE_PATTERN = re.compile(r"(?:\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")
NUMBER_PATTERN = re.compile(r"\b\d+(?:[.,]\d+)?\b")
NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
WORD_PATTERN = re.compile(r"[a-zA-Z]+")

DEFAULT_LEXICON: Dict[str, List[str]] = {
    "locations": ["jakarta", "bandung", "surabaya", "medan", "office", "store", "mall", "hotel"],
    "products": ["product", "item", "service", "package", "plan"],
    "services": ["service", "support", "help", "consultation", "booking"],
}

ENTITY_CATEGORIES = [
    "names", "dates", "times", "numbers", "emails", "phones",
    "locations", "products", "services",
]


def _unique(values: List[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class EntityExtractor:
    """Extracts dates, times, numbers, contacts, names and known terms."""

    FUZZY_MIN_LENGTH = 5
    FUZZY_CUTOFF = 85

    def __init__(self, lexicon: Optional[Dict[str, List[str]]] = None):
        """
        Initialize entity extractor.

        Args:
            lexicon: Known terms per category (locations, products, services)
        """
        self.lexicon = {k: [t.lower() for t in v] for k, v in (lexicon or DEFAULT_LEXICON).items()}

    def extract(self, text: str) -> Dict[str, List[str]]:
        """
        Extract entities from text.

        Returns:
            Map of category to matches; every category is present
        """
        emails = EMAIL_PATTERN.findall(text)
        # Strip emails first so their digits are not reported as phones
        without_emails = EMAIL_PATTERN.sub(" ", text)

        dates = []
        for pattern in DATE_PATTERNS:
            dates.extend(pattern.findall(without_emails))
        times = TIME_PATTERN.findall(without_emails)
        phones = [m.strip() for m in PHONE_PATTERN.findall(without_emails)]

        # Digits inside dates, times and phones are not standalone numbers
        remainder = without_emails
        for pattern in [PHONE_PATTERN, TIME_PATTERN] + DATE_PATTERNS:
            remainder = pattern.sub(" ", remainder)

        entities = {
            "names": _unique(NAME_PATTERN.findall(text)),
            "dates": _unique(dates),
            "times": _unique(times),
            "numbers": _unique(NUMBER_PATTERN.findall(remainder)),
            "emails": _unique(emails),
            "phones": _unique(phones),
        }

        for category in ("locations", "products", "services"):
            entities[category] = self.match_terms(text, self.lexicon.get(category, []))

        return entities

    def match_terms(self, text: str, terms: List[str]) -> List[str]:
        """Known terms found in text, exactly or as close misspellings."""
        if not terms:
            return []

        found = [term for term in terms if contains_keyword(text, term)]

        for word in WORD_PATTERN.findall(text.lower()):
            if len(word) < self.FUZZY_MIN_LENGTH:
                continue
            match = process.extractOne(
                word, terms, scorer=fuzz.ratio, score_cutoff=self.FUZZY_CUTOFF
            )
            if match and match[0] not in found:
                found.append(match[0])

        return found
