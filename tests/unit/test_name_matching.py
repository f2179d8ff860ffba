"""Unit tests for staff name matching."""
import pytest

from capture_core.metrics.name_matching import (
    find_best_match,
    is_name_variation,
    levenshtein_distance,
    normalize_name,
    similarity,
)


STAFF = ["Robert Smith", "Jennifer Lopez", "Alice Cooper", "Unknown"]


def test_normalize_name_collapses_whitespace():
    """Test normalization trims, lowercases and collapses whitespace."""
    assert normalize_name("  Alice   COOPER ") == "alice cooper"
    assert normalize_name(None) == ""
    assert normalize_name("   ") == ""


def test_levenshtein_distance_known_values():
    """Test edit distance on classic examples."""
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_similarity_of_two_empty_strings():
    """Test two empty strings are identical."""
    assert similarity("", "") == 100.0


def test_exact_match_ignores_case_and_spacing():
    """Test exact normalized equality returns confidence 100."""
    result = find_best_match("  robert   SMITH ", STAFF)

    assert result is not None
    assert result.match == "Robert Smith"
    assert result.confidence == 100.0
    assert result.rule == "EXACT"


def test_nickname_with_decorated_surname():
    """Test "Bob Smith-ish" resolves to "Robert Smith" via the nickname table."""
    result = find_best_match("Bob Smith-ish", STAFF)

    assert result is not None
    assert result.match == "Robert Smith"
    assert result.confidence == 95.0
    assert result.rule == "NICKNAME"


def test_nickname_whole_name_pair():
    """Test whole-name canonical/variant pairs match in either direction."""
    assert find_best_match("jen", ["Jennifer"]).match == "Jennifer"
    assert find_best_match("Jennifer", ["Jen"]).match == "Jen"


def test_is_name_variation_is_symmetric():
    """Test variation lookup works canonical->variant and variant->canonical."""
    assert is_name_variation("robert", "bob")
    assert is_name_variation("bob", "robert")
    assert not is_name_variation("bob", "alice")


def test_fuzzy_match_above_threshold():
    """Test a one-letter typo is accepted by similarity."""
    result = find_best_match("Alice Coper", STAFF)

    assert result is not None
    assert result.match == "Alice Cooper"
    assert result.rule == "FUZZY"
    assert result.confidence >= 85.0


def test_fuzzy_match_below_threshold_returns_none():
    """Test an unrelated name is rejected."""
    assert find_best_match("Zachary Quinto", STAFF) is None


def test_threshold_is_respected():
    """Test raising the threshold rejects an otherwise accepted typo."""
    assert find_best_match("Alice Coper", STAFF, threshold=99.0) is None


def test_empty_input_and_empty_candidates():
    """Test empty name or empty known-name list never matches."""
    assert find_best_match("", STAFF) is None
    assert find_best_match("   ", STAFF) is None
    assert find_best_match("Robert Smith", []) is None


@pytest.mark.parametrize("candidate", ["Unknown", "*** Store Account ***"])
def test_placeholder_and_marked_candidates_are_skipped(candidate):
    """Test "Unknown" and "***" bucket names are never match targets."""
    assert find_best_match(candidate, [candidate]) is None


def test_best_fuzzy_candidate_wins():
    """Test the closest candidate is returned when several pass."""
    result = find_best_match("Jon Smyth", ["Jan Smythe", "Jon Smith"])

    assert result is not None
    assert result.match == "Jon Smith"


def test_exact_match_preferred_over_earlier_nickname():
    """Test an exact candidate wins even when a nickname candidate comes first."""
    result = find_best_match("Bob Smith", ["Robert Smith", "Bob Smith"])

    assert result is not None
    assert result.match == "Bob Smith"
    assert result.confidence == 100.0
    assert result.rule == "EXACT"


def test_nickname_preferred_over_earlier_fuzzy():
    """Test a nickname candidate wins over a closer-looking fuzzy candidate."""
    result = find_best_match("Bob Smith", ["Bo Smith", "Robert Smith"])

    assert result is not None
    assert result.match == "Robert Smith"
    assert result.rule == "NICKNAME"
