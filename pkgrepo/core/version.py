"""版本范围匹配与排序

SemverOracle 接受 npm 风格的范围写法，翻译为 packaging 的 SpecifierSet 后判断:

    1.2.3 / =1.2.3 / v1.2.3     精确版本
    ^1.2.3                       >=1.2.3,<2.0.0   (0.x 按次版本号收紧)
    ~1.2.3                       >=1.2.3,<1.3.0
    1.x / 1.2.* / *              通配
    >=1.0.0 <2.0.0               比较符，空格或逗号连接表示"且"
    1.0.0 - 2.0.0                闭区间
    ^1.0.0 || ^2.0.0             任一满足

无法解析的版本号永远不满足任何范围，排序时排在所有合法版本之前。
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Iterable

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from pkgrepo.core.protocols import VersionOracle

logger = logging.getLogger(__name__)

_WILDCARDS = frozenset(("x", "X", "*"))

_TOKEN_RE = re.compile(
    r"^(?P<op>\^|~>?|>=|<=|>|<|!=|==|=)?\s*v?"
    r"(?P<major>\d+|[xX*])?"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?P<rest>[-+.]?[0-9A-Za-z.+-]*)$"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OP_SPACE_RE = re.compile(r"(\^|~>?|>=|<=|!=|==|>|<|=)\s+")


def parse_version(version: str) -> Version | None:
    """解析版本号，允许前缀 v / =，失败返回 None"""
    try:
        return Version(version.strip().lstrip("=vV"))
    except InvalidVersion:
        return None


def _numeric_parts(m: re.Match[str]) -> list[int]:
    nums: list[int] = []
    for key in ("major", "minor", "patch"):
        part = m.group(key)
        if part is None or part in _WILDCARDS:
            break
        nums.append(int(part))
    return nums


def _fill(nums: list[int], rest: str = "") -> str:
    padded = (nums + [0, 0, 0])[:3]
    return ".".join(str(n) for n in padded) + rest


def _bump(nums: list[int]) -> str:
    """部分版本号的上界: 1 -> 2.0.0, 1.2 -> 1.3.0, 1.2.3 -> 1.2.4"""
    bumped = list(nums)
    bumped[-1] += 1
    return _fill(bumped)


def _caret_upper(nums: list[int]) -> str:
    major, minor, patch = (nums + [0, 0, 0])[:3]
    if major > 0 or len(nums) == 1:
        return f"{major + 1}.0.0"
    if minor > 0 or len(nums) == 2:
        return f"0.{minor + 1}.0"
    return f"0.0.{patch + 1}"


def _token_specifiers(token: str) -> list[str]:
    """把单个比较项翻译为 PEP 440 specifier 列表，空列表表示不限"""
    m = _TOKEN_RE.match(token)
    if m is None:
        raise InvalidSpecifier(token)
    op = m.group("op") or "="
    nums = _numeric_parts(m)
    rest = m.group("rest") or ""
    full = len(nums) == 3
    if not nums and m.group("major") is None:
        raise InvalidSpecifier(token)
    if not nums:
        if op in ("<", "!="):
            raise InvalidSpecifier(token)
        return []

    exact = _fill(nums, rest)
    if op in ("=", "=="):
        return [f"=={exact}"] if full else [f"=={'.'.join(map(str, nums))}.*"]
    if op == "^":
        return [f">={exact}", f"<{_caret_upper(nums)}"]
    if op in ("~", "~>"):
        upper = _bump(nums[:2]) if len(nums) >= 2 else _bump(nums[:1])
        return [f">={exact}", f"<{upper}"]
    if op == ">=":
        return [f">={exact}"]
    if op == ">":
        return [f">{exact}"] if full else [f">={_bump(nums)}"]
    if op == "<":
        return [f"<{exact}"]
    if op == "<=":
        return [f"<={exact}"] if full else [f"<{_bump(nums)}"]
    # !=
    return [f"!={exact}"] if full else [f"!={'.'.join(map(str, nums))}.*"]


def range_to_specifiers(pattern: str) -> list[SpecifierSet]:
    """把范围表达式翻译为若干 SpecifierSet（之间为"或"关系）

    Raises:
        InvalidSpecifier: 表达式无法识别
    """
    alternatives: list[SpecifierSet] = []
    for alt in pattern.split("||"):
        alt = alt.strip()
        hyphen = _HYPHEN_RE.match(alt)
        if hyphen:
            low, high = hyphen.groups()
            # 上界为部分版本时 (1.0.0 - 2.0) 取 <2.1.0
            specs = _token_specifiers(f">={low}") + _token_specifiers(f"<={high}")
        else:
            alt = _OP_SPACE_RE.sub(r"\1", alt)
            specs = []
            for token in re.split(r"[\s,]+", alt):
                if token:
                    specs += _token_specifiers(token)
        alternatives.append(SpecifierSet(",".join(specs)))
    return alternatives


class SemverOracle:
    """基于 packaging 的版本判定器，满足 VersionOracle 协议"""

    def satisfies(self, version: str, pattern: str) -> bool:
        parsed = parse_version(version)
        if parsed is None:
            return False
        try:
            alternatives = range_to_specifiers(pattern)
        except InvalidSpecifier:
            logger.debug("无法识别的版本范围: %r", pattern)
            return False
        return any(spec.contains(parsed) for spec in alternatives)

    def compare(self, a: str, b: str) -> int:
        pa, pb = parse_version(a), parse_version(b)
        if pa is not None and pb is not None and pa != pb:
            return -1 if pa < pb else 1
        if pa is None and pb is not None:
            return -1
        if pa is not None and pb is None:
            return 1
        # 语义相等（如 1.0 与 1.0.0）或都无法解析时按字符串比较，保证全序
        return (a > b) - (a < b)


def sort_versions(versions: Iterable[str], oracle: VersionOracle | None = None) -> list[str]:
    """按版本顺序从低到高排序"""
    oracle = oracle or SemverOracle()
    return sorted(versions, key=functools.cmp_to_key(oracle.compare))


def max_version(versions: Iterable[str], oracle: VersionOracle | None = None) -> str | None:
    """返回最高版本，空输入返回 None"""
    ordered = sort_versions(versions, oracle)
    return ordered[-1] if ordered else None
