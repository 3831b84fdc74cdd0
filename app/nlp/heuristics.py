"""
Regex heuristics over raw feedback text.

Rules are kept as ordered lists of small objects so the rule sets can be
extended or swapped without touching the matcher:

- PhraseRule / PhraseLibrary: key phrase extraction used by the text fallback
  matcher. A rule either emits the matched text or a normalized tag.
- VerdictRule / RuleBattery: ordered boolean checks, first hit wins. Used for
  the user-specific predicate.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern

from config.config import DEFAULT_P0_KEYWORDS


@dataclass(frozen=True)
class PhraseRule:
    """Extract phrases matching `pattern`.

    With a `tag`, the rule emits that tag instead of the matched text, and only
    when `requires` (if given) also matches somewhere in the text.
    """
    pattern: Pattern
    tag: Optional[str] = None
    requires: Optional[Pattern] = None

    def extract(self, text: str) -> set[str]:
        if self.requires is not None and not self.requires.search(text):
            return set()
        if self.tag is not None:
            return {self.tag} if self.pattern.search(text) else set()
        return {match.group(0).strip() for match in self.pattern.finditer(text)}


class PhraseLibrary:
    """Ordered collection of phrase rules."""

    def __init__(self, rules: Iterable[PhraseRule]):
        self.rules = list(rules)

    def extract(self, text: str) -> set[str]:
        lower = (text or '').lower()
        phrases: set[str] = set()
        for rule in self.rules:
            phrases |= rule.extract(lower)
        return phrases

    def extend(self, rules: Iterable[PhraseRule]) -> 'PhraseLibrary':
        return PhraseLibrary(self.rules + list(rules))


def _phrase(pattern: str) -> PhraseRule:
    return PhraseRule(re.compile(pattern))


DEFAULT_PHRASE_RULES = [
    _phrase(r'login\s+\w+'),
    _phrase(r'billing\s+\w+'),
    _phrase(r'payment\s+\w+'),
    _phrase(r'crash\w*'),
    _phrase(r'error\s+\d+'),
    _phrase(r"\b(?:can't|cannot|won't)\s+\w+"),
    _phrase(r'dark\s+mode'),
    _phrase(r'rate\s+limit'),
    _phrase(r'\d+\s+error'),
    _phrase(r'login\s+crash'),
    _phrase(r'login\s+bug'),
    _phrase(r'billing\s+page'),
    _phrase(r'payment\s+failed'),
    # theme / toggle
    _phrase(r'theme\s+\w+'),
    _phrase(r'toggle\s+\w+'),
    _phrase(r'dark\s+mode\s+\w*'),
    # resume / background crash
    _phrase(r'resume\s+crash'),
    _phrase(r'background\s+\w+'),
    _phrase(r'foreground\s+\w+'),
    _phrase(r'force\s+close'),
    # double login
    _phrase(r'double\s+login'),
    _phrase(r'login\s+twice'),
    _phrase(r'second\s+login'),
    _phrase(r'first\s+login'),
    _phrase(r'2\s+attempts'),
    # normalized tags: every theme failure and every resume crash collapse together
    PhraseRule(
        re.compile(r"theme|dark mode|toggle"),
        tag='theme_bug',
        requires=re.compile(r"broken|not working|doesn't|fails|no change"),
    ),
    PhraseRule(
        re.compile(r'resume|background|foreground|recents'),
        tag='resume_crash',
        requires=re.compile(r'crash'),
    ),
]

DEFAULT_PHRASE_LIBRARY = PhraseLibrary(DEFAULT_PHRASE_RULES)


def extract_key_phrases(text: str, library: PhraseLibrary = DEFAULT_PHRASE_LIBRARY) -> set[str]:
    return library.extract(text)


STOP_WORDS = frozenset([
    'the', 'this', 'that', 'with', 'from', 'when', 'will', 'need', 'very', 'can', 'cant',
    'not', 'and', 'are', 'for', 'has', 'have', 'was', 'were', 'all', 'but', 'get', 'got',
])


def significant_words(text: str) -> set[str]:
    """Words longer than two characters that are not stop words."""
    return {
        word for word in re.split(r'\W+', (text or '').lower())
        if len(word) > 2 and word not in STOP_WORDS
    }


@dataclass(frozen=True)
class VerdictRule:
    pattern: Pattern
    verdict: bool

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


class RuleBattery:
    """Evaluate rules in order; the first matching rule decides."""

    def __init__(self, rules: Iterable[VerdictRule], default: bool = False):
        self.rules = list(rules)
        self.default = default

    def __call__(self, text: str) -> bool:
        lower = (text or '').lower()
        for rule in self.rules:
            if rule.matches(lower):
                return rule.verdict
        return self.default


_ACCOUNT_NOUNS = r'(?:account|subscription|billing|payment|profile|data)'

# Personal account/billing/profile state. Checked first.
USER_SPECIFIC_PATTERNS = [
    r'\bmy\s+(?:subscription|account|billing|payment|data|profile|settings)\b',
    r'\bi\s+(?:am|was|have|had|see|saw|got|received|paid|charged)\b.*\b' + _ACCOUNT_NOUNS + r'\b',
    r'\bmy\s+(?:user|account)\s+(?:id|number|email)\b',
    r'\b(?:account|subscription|order)\s+(?:id|number|#)\s*[:\-]?\s*\w+',
    r'\b(?:user|customer)\s+(?:id|number)\s*[:\-]?\s*\w+',
    r'\b(?:my|i)\s+(?:subscription|account)\s+(?:expired|cancelled|renewed|charged)',
    r"\bi\s+(?:can't|cannot|unable)\s+to\s+(?:access|see|view)\s+my",
    r'\bmy\s+(?:subscription|account)\s+(?:got|was)\s+(?:cancelled|expired|charged)',
    r'\b(?:seeing|showing|displaying)\s+(?:wrong|incorrect|different)\s+(?:data|information|details)',
    r'\bmy\s+(?:data|information|details)\s+(?:is|are|shows|showing)',
    r'\bi\s+(?:was|got)\s+(?:charged|billed|refunded)\s+',
    r'\bmy\s+(?:payment|charge|billing)\s+(?:failed|succeeded|processed)',
]

# Shared failures that should keep clustering.
SYSTEMIC_PATTERNS = [
    r'\b(?:app|application|system)\s+(?:crashes|crash|crashing)',
    r'\b(?:when|while)\s+(?:going|switching|changing|opening|closing)',
    r"\b(?:theme|dark\s+mode|feature)\s+(?:not\s+working|broken|doesn't\s+work)",
    r"\b(?:all|every|many|users|people)\s+(?:are|can't|cannot)",
    r'\b(?:affecting|affects)\s+(?:all|every|many|users)',
]

PERSONAL_CATCH_ALL = r'\b(?:my|i)\s+.*\b(?:subscription|account|billing|payment|data)\b'


def build_user_specific_battery(
    user_patterns: Iterable[str] = USER_SPECIFIC_PATTERNS,
    systemic_patterns: Iterable[str] = SYSTEMIC_PATTERNS,
    catch_all: str = PERSONAL_CATCH_ALL,
) -> RuleBattery:
    rules = [VerdictRule(re.compile(p), True) for p in user_patterns]
    rules += [VerdictRule(re.compile(p), False) for p in systemic_patterns]
    rules.append(VerdictRule(re.compile(catch_all), True))
    return RuleBattery(rules, default=False)


is_user_specific = build_user_specific_battery()


POSITIVE_PHRASES = (
    'great', 'love', 'thanks', 'appreciated', 'good work', 'excellent', 'improved significantly',
)


def is_positive_feedback(text: str, phrases: Iterable[str] = POSITIVE_PHRASES) -> bool:
    lower = (text or '').lower()
    return any(phrase in lower for phrase in phrases)


def match_p0_keywords(text: str, keywords: Iterable[str] = DEFAULT_P0_KEYWORDS) -> list[str]:
    """Return the instant-alert keywords present in `text`."""
    lower = (text or '').lower()
    return [keyword for keyword in keywords if keyword.lower() in lower]
