"""版本范围匹配与排序测试"""

from __future__ import annotations

import pytest

from pkgrepo.core.version import SemverOracle, max_version, parse_version, sort_versions


@pytest.fixture()
def oracle() -> SemverOracle:
    return SemverOracle()


class TestSatisfies:
    @pytest.mark.parametrize("version,pattern,expected", [
        ("1.2.0", "^1.0.0", True),
        ("1.3.0", "^1.0.0", True),
        ("2.0.0", "^1.0.0", False),
        ("0.9.9", "^1.0.0", False),
        ("0.2.5", "^0.2.0", True),
        ("0.3.0", "^0.2.0", False),
        ("0.0.3", "^0.0.3", True),
        ("0.0.4", "^0.0.3", False),
        ("1.2.9", "~1.2.0", True),
        ("1.3.0", "~1.2.0", False),
        ("1.2.3", "1.2.3", True),
        ("1.2.4", "1.2.3", False),
        ("1.2.3", "=1.2.3", True),
        ("1.2.3", "v1.2.3", True),
        ("v1.2.3", "1.2.3", True),
    ])
    def test_caret_tilde_exact(
        self, oracle: SemverOracle, version: str, pattern: str, expected: bool,
    ) -> None:
        assert oracle.satisfies(version, pattern) is expected

    @pytest.mark.parametrize("version,pattern,expected", [
        ("1.5.0", ">=1.0.0 <2.0.0", True),
        ("2.0.0", ">=1.0.0 <2.0.0", False),
        ("1.5.0", ">= 1.0.0, < 2.0.0", True),
        ("1.0.0", ">1.0.0", False),
        ("1.0.1", ">1.0.0", True),
        ("1.0.0", "<=1.0.0", True),
        ("1.9.0", "<=1", True),
        ("2.0.0", "<=1", False),
        ("1.0.1", "!=1.0.0", True),
        ("1.0.0", "!=1.0.0", False),
    ])
    def test_comparators(
        self, oracle: SemverOracle, version: str, pattern: str, expected: bool,
    ) -> None:
        assert oracle.satisfies(version, pattern) is expected

    @pytest.mark.parametrize("version,pattern,expected", [
        ("1.4.2", "1.x", True),
        ("2.0.0", "1.x", False),
        ("1.2.7", "1.2.*", True),
        ("1.3.0", "1.2.*", False),
        ("9.9.9", "*", True),
        ("1.5.0", "1.0.0 - 2.0.0", True),
        ("2.0.0", "1.0.0 - 2.0.0", True),
        ("2.0.1", "1.0.0 - 2.0.0", False),
        ("2.0.9", "1.0.0 - 2.0", True),
        ("2.1.0", "^1.0.0 || ^2.0.0", True),
        ("3.0.0", "^1.0.0 || ^2.0.0", False),
    ])
    def test_wildcards_ranges_alternatives(
        self, oracle: SemverOracle, version: str, pattern: str, expected: bool,
    ) -> None:
        assert oracle.satisfies(version, pattern) is expected

    def test_prerelease_excluded_unless_requested(self, oracle: SemverOracle) -> None:
        assert oracle.satisfies("2.0.0-beta.1", "^1.0.0 || >=2.0.0") is False
        assert oracle.satisfies("2.0.0-beta.1", ">=2.0.0-beta.1") is True

    def test_invalid_version_never_matches(self, oracle: SemverOracle) -> None:
        assert oracle.satisfies("nightly", "*") is False
        assert oracle.satisfies("last", "^1.0.0") is False

    def test_invalid_pattern_never_matches(self, oracle: SemverOracle) -> None:
        assert oracle.satisfies("1.0.0", "garbage") is False
        assert oracle.satisfies("1.0.0", "^^1") is False


class TestOrdering:
    def test_compare(self, oracle: SemverOracle) -> None:
        assert oracle.compare("1.2.0", "1.10.0") == -1
        assert oracle.compare("2.0.0", "1.99.99") == 1
        assert oracle.compare("1.0.0", "1.0.0") == 0

    def test_invalid_sorts_first(self, oracle: SemverOracle) -> None:
        assert oracle.compare("nightly", "0.0.1") == -1
        assert oracle.compare("0.0.1", "nightly") == 1

    def test_total_order_for_equivalent_strings(self, oracle: SemverOracle) -> None:
        """1.0 与 1.0.0 语义相等，但仍按字符串区分"""
        assert oracle.compare("1.0", "1.0.0") == -1
        assert oracle.compare("1.0.0", "1.0") == 1

    def test_sort_and_max(self) -> None:
        versions = ["1.10.0", "1.2.0", "nightly", "1.9.3", "0.1.0"]
        assert sort_versions(versions) == ["nightly", "0.1.0", "1.2.0", "1.9.3", "1.10.0"]
        assert max_version(versions) == "1.10.0"
        assert max_version([]) is None

    def test_parse_version(self) -> None:
        assert parse_version("v1.2.3") is not None
        assert parse_version("not-a-version") is None
