"""
Tests for mood sanitization and graph bounding.
"""

from symbiosis.core.graph import MAX_BRANCHES, MAX_LEAVES, MAX_ROOTS, normalize_roots, sanitize_mood, single_word
from symbiosis.models.responses import GenerationPayload


def roots_from(data):
    return GenerationPayload.model_validate({"roots": data}).roots


class TestSanitizeMood:
    def test_upper_and_trim(self):
        assert sanitize_mood("  happy ") == "HAPPY"

    def test_missing(self):
        assert sanitize_mood(None) == "NEUTRAL"
        assert sanitize_mood("   ") == "NEUTRAL"


class TestSingleWord:
    def test_first_word(self):
        assert single_word("family trip") == "FAMILY"

    def test_numeric_tokens_dropped(self):
        assert single_word("2019 Lisbon") == "LISBON"
        assert single_word("42") == ""

    def test_punctuation_stripped(self):
        assert single_word("'Grandma!'") == "GRANDMA"

    def test_none(self):
        assert single_word(None) == ""


class TestNormalizeRoots:
    def test_bounds(self):
        leaves = [{"text": f"leaf{chr(97 + i)}", "mood": "calm"} for i in range(8)]
        branches = [{"label": f"branch {i}", "leaves": leaves} for i in range(8)]
        roots = roots_from([{"label": f"root {i}", "branches": branches} for i in range(6)])

        clean = normalize_roots(roots)

        assert len(clean) == MAX_ROOTS
        assert all(len(r.branches) == MAX_BRANCHES for r in clean)
        assert all(len(b.leaves) == MAX_LEAVES for r in clean for b in r.branches)

    def test_labels_and_moods(self):
        roots = roots_from(
            [
                {
                    "label": "family ties",
                    "mood": " happy",
                    "branches": [
                        {"label": "sister Priya", "leaves": [{"text": "Pune 2020", "mood": None}]},
                    ],
                }
            ]
        )

        clean = normalize_roots(roots)

        assert clean[0].label == "FAMILY"
        assert clean[0].mood == "HAPPY"
        branch = clean[0].branches[0]
        assert branch.label == "SISTER"
        assert branch.mood == "NEUTRAL"
        assert branch.leaves[0].text == "PUNE"
        assert branch.leaves[0].mood == "NEUTRAL"

    def test_numeric_only_labels_dropped(self):
        roots = roots_from([{"label": 2024, "branches": []}, {"label": "work"}])

        clean = normalize_roots(roots)

        assert [r.label for r in clean] == ["WORK"]

    def test_non_object_nodes_ignored(self):
        roots = roots_from([{"label": "home", "branches": ["oops", {"label": "garden", "leaves": [7]}]}, "x"])

        clean = normalize_roots(roots)

        assert clean[0].branches[0].label == "GARDEN"
        assert clean[0].branches[0].leaves == []

    def test_empty(self):
        assert normalize_roots(None) == []
        assert normalize_roots([]) == []
