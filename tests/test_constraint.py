"""Tests for constraint parsing and matching."""

import logging

import pytest

from versioning.constraint import (
    is_legacy_sentinel,
    is_open_ended,
    is_well_formed,
    matches,
    parse_constraint,
    satisfied_by,
)
from versioning.models import ConstraintKind
from versioning.parser import parse_version


class TestUniversalConstraints:
    """Empty, wildcard and legacy sentinel text match everything."""

    @pytest.mark.parametrize("text", ["", None, "   ", "*", "x", "0.0.0", "v0.0.0"])
    def test_universal(self, text):
        parsed = parse_constraint(text)
        assert parsed.is_any
        assert parsed.kind is ConstraintKind.ANY
        for version in ("0.0.1", "1.0.0", "99.0.0", "1.0.0-beta"):
            assert matches(parsed, version)

    def test_legacy_sentinel_is_not_exact(self):
        assert matches("0.0.0", "3.9.0")

    def test_is_legacy_sentinel(self):
        assert is_legacy_sentinel("0.0.0")
        assert is_legacy_sentinel("=0.0.0")
        assert not is_legacy_sentinel("0.0.1")
        assert not is_legacy_sentinel(None)


class TestExactAndComparison:
    """Tests for exact and comparison operators."""

    def test_exact(self):
        assert matches("1.2.3", "1.2.3")
        assert matches("=1.2.3", "v1.2.3")
        assert matches("==1.2.3", "1.2.3")
        assert not matches("1.2.3", "1.2.4")
        assert parse_constraint("1.2.3").kind is ConstraintKind.EXACT

    def test_greater_and_less(self):
        assert matches(">1.2.3", "1.2.4")
        assert not matches(">1.2.3", "1.2.3")
        assert matches(">=1.2.3", "1.2.3")
        assert matches("<2.0.0", "1.99.0")
        assert not matches("<2.0.0", "2.0.0")
        assert matches("<=2.0.0", "2.0.0")

    def test_partial_comparisons(self):
        assert not matches(">1.2", "1.2.9")
        assert matches(">1.2", "1.3.0")
        assert matches("<=1.2", "1.2.9")
        assert not matches("<=1.2", "1.3.0")

    def test_not_equal(self):
        assert not matches("!=1.2.3", "1.2.3")
        assert matches("!=1.2.3", "1.2.4")
        assert not matches("!=1.2", "1.2.5")

    def test_operator_followed_by_space(self):
        assert matches(">= 1.0", "1.5.0")
        assert not matches(">= 1.0", "0.9.0")

    def test_compound_and(self):
        parsed = parse_constraint(">=1.0.0 <2.0.0")
        assert parsed.kind is ConstraintKind.COMPOUND
        assert matches(parsed, "1.5.0")
        assert not matches(parsed, "2.0.0")
        assert matches(">=1.0.0, <2.0.0", "1.5.0")


class TestCaretAndTilde:
    """Tests for caret and tilde ranges."""

    def test_caret_major(self):
        assert matches("^1.2.3", "1.2.3")
        assert matches("^1.2.3", "1.9.0")
        assert not matches("^1.2.3", "2.0.0")
        assert not matches("^1.2.3", "1.2.2")

    def test_caret_zero_major(self):
        assert matches("^0.2.3", "0.2.9")
        assert not matches("^0.2.3", "0.3.0")

    def test_caret_zero_minor(self):
        assert matches("^0.0.3", "0.0.3")
        assert not matches("^0.0.3", "0.0.4")

    def test_caret_partial(self):
        assert matches("^1", "1.9.9")
        assert not matches("^1", "2.0.0")
        assert not matches("^0.0", "0.1.0")

    def test_tilde(self):
        assert matches("~1.2.3", "1.2.9")
        assert not matches("~1.2.3", "1.3.0")
        assert matches("~1.2", "1.2.0")
        assert not matches("~1.2", "1.3.0")
        assert matches("~1", "1.9.0")
        assert not matches("~1", "2.0.0")

    def test_tilde_arrow_alias(self):
        assert matches("~>1.2", "1.2.5")
        assert not matches("~>1.2", "1.3.0")
        assert parse_constraint("~>1.2").kind is ConstraintKind.TILDE


class TestWildcardUnionAndHyphen:
    """Tests for wildcards, alternatives and hyphen ranges."""

    def test_wildcards(self):
        assert matches("1.x", "1.4.2")
        assert not matches("1.x", "2.0.0")
        assert matches("1.2.*", "1.2.7")
        assert not matches("1.2.*", "1.3.0")
        assert parse_constraint("1.x").kind is ConstraintKind.WILDCARD

    def test_union(self):
        parsed = parse_constraint("^1.0.0 || ^3.0.0")
        assert parsed.kind is ConstraintKind.UNION
        assert matches(parsed, "1.5.0")
        assert matches(parsed, "3.1.0")
        assert not matches(parsed, "2.0.0")

    def test_union_with_universal_branch(self):
        assert parse_constraint("^1.0.0 || *").is_any

    def test_union_with_legacy_sentinel_branch(self):
        parsed = parse_constraint("0.0.0 || >=2")
        assert parsed.is_any
        assert matches(parsed, "1.0.0")
        assert matches(" >=2 ||  v0.0.0 ", "0.5.0")

    def test_sentinel_inside_a_branch_is_still_exact(self):
        assert not matches("0.0.0 - 1.0.0 || >=3", "2.0.0")

    def test_hyphen_range(self):
        assert matches("1.0.0 - 2.0.0", "2.0.0")
        assert matches("1.0.0 - 2.0.0", "1.0.0")
        assert not matches("1.0.0 - 2.0.0", "2.0.1")

    def test_hyphen_range_partial_upper(self):
        assert matches("1.0 - 2", "2.9.9")
        assert not matches("1.0 - 2", "3.0.0")


class TestPrerelease:
    """Pre-releases are opt-in."""

    def test_prerelease_excluded_by_default(self):
        assert not matches(">=1.0.0", "2.0.0-beta")
        assert not matches("^1.0.0", "1.5.0-rc.1")

    def test_prerelease_admitted_with_labelled_target(self):
        assert matches(">=1.0.0-beta", "1.0.0-beta.2")
        assert matches("^1.0.0-rc.1", "1.0.0-rc.2")

    def test_prerelease_admitted_by_universal(self):
        assert matches("", "1.0.0-alpha")
        assert matches("*", "1.0.0-alpha")


class TestDegradedParsing:
    """Unparseable input never raises."""

    def test_unparseable_token_is_dropped(self):
        parsed = parse_constraint(">=1.0.0 banana")
        assert parsed.degraded
        assert matches(parsed, "5.0.0")
        assert not matches(parsed, "0.5.0")

    def test_fully_unparseable_text_is_universal(self):
        parsed = parse_constraint("whatever works")
        assert parsed.degraded
        assert parsed.is_any
        assert matches(parsed, "1.0.0")

    def test_raw_text_is_kept(self):
        assert str(parse_constraint("^1.2")) == "^1.2"


class TestOpenEnded:
    """Upper-edge detection used by the pin policy."""

    def test_unbounded_constraints(self):
        latest = parse_version("3.10.0")
        assert is_open_ended("", latest)
        assert is_open_ended(">=3.9.0", latest)
        assert is_open_ended("!=3.9.0", latest)

    def test_upper_edge_above_latest_is_open(self):
        assert is_open_ended("^3.9.0", parse_version("3.10.0"))

    def test_upper_edge_at_or_below_latest_is_closed(self):
        assert not is_open_ended("~3.9.0", parse_version("3.10.0"))
        assert not is_open_ended("3.9.0", parse_version("3.10.0"))
        assert not is_open_ended("<=3.10.0", parse_version("3.10.0"))

    def test_union_is_open_when_any_branch_is(self):
        latest = parse_version("3.10.0")
        assert is_open_ended("~3.8.0 || >=3.9.0", latest)
        assert not is_open_ended("~3.8.0 || ~3.9.0", latest)

    def test_no_known_release_is_open(self):
        assert is_open_ended("3.9.0", None)

    def test_upper_edge_values(self):
        assert parse_constraint("^1.2.3").upper_edge == parse_version("2.0.0")
        assert parse_constraint(">=1.0.0 <1.5.0").upper_edge == parse_version("1.5.0")
        assert parse_constraint(">=1.0.0").upper_edge is None


class TestHelpers:
    """Tests for satisfied_by and is_well_formed."""

    def test_satisfied_by_keeps_order(self):
        versions = ["3.9.0", "3.8.0", "3.9.5", "3.10.0"]
        assert satisfied_by(versions, "~3.9.0") == ["3.9.0", "3.9.5"]

    @pytest.mark.parametrize("text", ["", "0.0.0", "^1.2.3", "~1.2.3", ">=1.0.0 <2.0.0", "1.0.0 - 2.0.0"])
    def test_well_formed(self, text):
        assert is_well_formed(text)

    @pytest.mark.parametrize("text", ["banana", ">=1.0.0 banana", ">>1.0"])
    def test_not_well_formed(self, text):
        assert not is_well_formed(text)


def test_degraded_parse_is_logged_at_debug(caplog):
    with caplog.at_level(logging.DEBUG, logger="versioning.constraint"):
        parse_constraint("^1.0.0 nonsense")
    assert any(record.getMessage() == "Constraint degraded" for record in caplog.records)
