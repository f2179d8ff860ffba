"""Fuzzy matching of free-text staff names to known sales associates.

Matching rules (in order):
1. Exact match after normalization (confidence 100)
2. Nickname variant, e.g. "Bob" for "Robert" (confidence 95)
3. Levenshtein similarity, accepted at or above the threshold
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional


DEFAULT_THRESHOLD = 85.0
EXACT_CONFIDENCE = 100.0
NICKNAME_CONFIDENCE = 95.0

PLACEHOLDER_NAME = "Unknown"
BUCKET_MARKER = "***"

NAME_VARIATIONS: dict[str, tuple[str, ...]] = {
    "robert": ("bob", "rob", "bobby"),
    "michael": ("mike", "mick", "mickey"),
    "william": ("will", "bill", "billy"),
    "elizabeth": ("liz", "beth", "betty", "eliza"),
    "margaret": ("maggie", "meg", "peggy"),
    "richard": ("rick", "dick", "rich"),
    "christopher": ("chris", "kit"),
    "jennifer": ("jen", "jenny"),
    "patricia": ("pat", "patty", "trish"),
    "james": ("jim", "jimmy", "jamie"),
    "john": ("jack", "johnny"),
    "joseph": ("joe", "joey"),
    "thomas": ("tom", "tommy"),
    "charles": ("charlie", "chuck"),
    "daniel": ("dan", "danny"),
    "matthew": ("matt", "matty"),
    "anthony": ("tony",),
    "donald": ("don", "donnie"),
    "kenneth": ("ken", "kenny"),
    "steven": ("steve",),
    "edward": ("ed", "eddie"),
    "brian": ("bri",),
    "ronald": ("ron", "ronnie"),
    "timothy": ("tim", "timmy"),
    "jason": ("jay",),
    "jeffrey": ("jeff",),
    "ryan": ("ry",),
    "jacob": ("jake",),
    "nicholas": ("nick", "nicky"),
    "jonathan": ("jon", "johnny"),
    "joshua": ("josh",),
    "andrew": ("andy", "drew"),
    "alexander": ("alex", "al"),
    "russell": ("russ",),
}

_TOKEN_SPLIT = re.compile(r"[^a-z0-9']+")


@dataclass(frozen=True)
class NameMatch:
    """A resolved staff name."""

    match: str
    confidence: float
    rule: str


def normalize_name(name: Optional[str]) -> str:
    if not name:
        return ""
    return " ".join(name.strip().lower().split())


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost edit distance (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current

    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity as a percentage (two empty strings -> 100)."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return (max_len - levenshtein_distance(a, b)) / max_len * 100


def is_name_variation(a: str, b: str) -> bool:
    """True when one normalized name is the canonical form of the other."""
    if a in NAME_VARIATIONS and b in NAME_VARIATIONS[a]:
        return True
    if b in NAME_VARIATIONS and a in NAME_VARIATIONS[b]:
        return True
    return False


def _tokens(name: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split(name) if token]


def _is_nickname_match(a: str, b: str) -> bool:
    if is_name_variation(a, b):
        return True

    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if len(tokens_a) < 2 or len(tokens_b) < 2:
        return False
    if not is_name_variation(tokens_a[0], tokens_b[0]):
        return False

    rest_a = set(tokens_a[1:])
    rest_b = set(tokens_b[1:])
    return rest_a <= rest_b or rest_b <= rest_a


def find_best_match(
    name: Optional[str],
    known_names: Iterable[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[NameMatch]:
    """Resolve a free-text name against known staff names.

    Args:
        name: Name typed into the sign-up tool
        known_names: Canonical staff display names
        threshold: Minimum fuzzy similarity (0-100) to accept

    Returns:
        NameMatch, or None when nothing is close enough
    """
    normalized_input = normalize_name(name)
    if not normalized_input:
        return None

    candidates = [
        (candidate, normalize_name(candidate))
        for candidate in known_names
        if candidate and candidate != PLACEHOLDER_NAME and BUCKET_MARKER not in candidate
    ]

    # Exact beats nickname beats fuzzy across all candidates
    for candidate, normalized_candidate in candidates:
        if normalized_input == normalized_candidate:
            return NameMatch(candidate, EXACT_CONFIDENCE, "EXACT")

    for candidate, normalized_candidate in candidates:
        if _is_nickname_match(normalized_input, normalized_candidate):
            return NameMatch(candidate, NICKNAME_CONFIDENCE, "NICKNAME")

    best_match: Optional[str] = None
    best_score = 0.0

    for candidate, normalized_candidate in candidates:
        score = similarity(normalized_input, normalized_candidate)
        if score > best_score:
            best_score = score
            best_match = candidate

    if best_match is not None and best_score >= threshold:
        return NameMatch(best_match, best_score, "FUZZY")

    return None
