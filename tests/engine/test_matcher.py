"""
Tests for the pattern stage.
"""

from cmdengine.core.types import IntentSource
from cmdengine.engine.matcher import PATTERN_CONFIDENCE, PatternMatcher, PatternRule

PRODUCT_RULE = PatternRule(
    r"(?:create|add)\s+product\s+(.+)\s+for\s+(\d+)",
    "shop.create_product",
    params=("name", "price"),
)


class TestPatternRule:
    """Tests for a single rule."""

    def test_params_map_groups(self):
        assert PRODUCT_RULE.match("create product Foo for 10") == {"name": "Foo", "price": "10"}

    def test_case_insensitive(self):
        assert PRODUCT_RULE.match("CREATE PRODUCT Foo FOR 10") is not None

    def test_anchored_at_start(self):
        assert PRODUCT_RULE.match("please create product Foo for 10") is None

    def test_optional_group_omitted(self):
        rule = PatternRule(r"list\s+posts(?:\s+by\s+(\w+))?", "post.list", params=("author",))
        assert rule.match("list posts") == {}
        assert rule.match("list posts by sam") == {"author": "sam"}

    def test_extractor(self):
        rule = PatternRule(
            r"double\s+(\d+)",
            "math.double",
            extract=lambda m: {"value": int(m.group(1)) * 2},
        )
        assert rule.match("double 21") == {"value": 42}


class TestPatternMatcher:
    """Tests for PatternMatcher.match."""

    def test_match_builds_intent(self):
        matcher = PatternMatcher([PRODUCT_RULE])
        intent = matcher.match("  create product Foo for 10  ", ["shop.create_product"])

        assert intent.action == "shop.create_product"
        assert intent.payload == {"name": "Foo", "price": "10"}
        assert intent.source == IntentSource.PATTERN
        assert intent.confidence == PATTERN_CONFIDENCE
        assert intent.raw_text == "create product Foo for 10"

    def test_first_registered_rule_wins(self):
        matcher = PatternMatcher()
        matcher.add_rule(PatternRule(r"list\s+(\w+)", "first.list", params=("what",)))
        matcher.add_rule(PatternRule(r"list\s+posts", "post.list"))

        intent = matcher.match("list posts", ["first.list", "post.list"])
        assert intent.action == "first.list"

    def test_skips_rules_for_non_candidates(self):
        matcher = PatternMatcher()
        matcher.add_rules([
            PatternRule(r"list\s+(\w+)", "first.list", params=("what",)),
            PatternRule(r"list\s+posts", "post.list"),
        ])

        intent = matcher.match("list posts", ["post.list"])
        assert intent.action == "post.list"

    def test_no_candidates_no_match(self):
        assert PatternMatcher([PRODUCT_RULE]).match("create product Foo for 10", []) is None

    def test_no_rule_matches(self):
        assert PatternMatcher([PRODUCT_RULE]).match("make me a sandwich", ["shop.create_product"]) is None

    def test_failing_extractor_is_skipped(self):
        def broken(match):
            raise ValueError("bad number")

        matcher = PatternMatcher([
            PatternRule(r"count\s+(\w+)", "count.words", extract=broken),
            PatternRule(r"count\s+(\w+)", "count.any", params=("word",)),
        ])

        intent = matcher.match("count sheep", ["count.words", "count.any"])
        assert intent.action == "count.any"

    def test_deterministic(self):
        matcher = PatternMatcher([PRODUCT_RULE])
        first = matcher.match("add product Lamp for 30", ["shop.create_product"])
        second = matcher.match("add product Lamp for 30", ["shop.create_product"])
        assert first == second

    def test_rules_copy_and_len(self):
        matcher = PatternMatcher([PRODUCT_RULE])
        matcher.rules.clear()
        assert len(matcher) == 1
