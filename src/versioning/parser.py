"""Version string parsing utilities.

``parse_version`` is total: every input yields a Version. Text without a
numeric prefix becomes ``0.0.0`` carrying the whole text as a single label.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

import semantic_version

from .models import Version
from .natural import compare_versions

_V_PREFIX_RE = re.compile(r"^[vV](?=\d)")
_CORE_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(.*)$", re.DOTALL)
_LABEL_SPLIT_RE = re.compile(r"[.\-+\s]+")

_RUNTIME_IMPORT_RE = re.compile(r"^SPT\s+(\d+\.\d+\.\d+).*", re.DOTALL)
_MOD_IMPORT_RE = re.compile(r"^(?P<pre>.*?)(?P<semver>\d+\.*\d*\.*\d*)(?P<post>.*)$", re.DOTALL)
_GUESS_RE = re.compile(r"\b\d+\.\d+(?:\.\d+)?\b")
_TWO_PART_RE = re.compile(r"^\d+\.\d+$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def split_labels(text: str) -> Tuple[str, ...]:
    """Split label text on '.', '-', '+' (and stray whitespace), dropping empties."""
    return tuple(part for part in _LABEL_SPLIT_RE.split(text) if part)


def strip_prefix(text: Optional[Union[str, int]]) -> str:
    """Trim whitespace and a leading 'v'/'V' that precedes a digit."""
    if text is None:
        return ""
    return _V_PREFIX_RE.sub("", str(text).strip(), count=1)


def parse_version(text: Optional[Union[str, int]]) -> Version:
    """Parse free-form version text into a Version. Never raises."""
    raw = "" if text is None else str(text)
    body = strip_prefix(raw)

    match = _CORE_RE.match(body)
    if not match:
        return Version(0, 0, 0, (body,) if body else (), raw=raw)

    major, minor, patch, rest = match.groups()
    if "+" in rest:
        pre_text, build_text = rest.split("+", 1)
    else:
        pre_text, build_text = rest, ""
    prerelease = split_labels(pre_text)
    build = split_labels(build_text)
    return Version(
        int(major),
        int(minor or 0),
        int(patch or 0),
        prerelease + build,
        raw=raw,
        build_start=len(prerelease) if build else None,
    )


def is_valid_version(text: Optional[str]) -> bool:
    """True when the text (minus a leading 'v') is a strict SemVer 2.0 string."""
    body = strip_prefix(text)
    return bool(body) and semantic_version.validate(body)


def sort_versions(versions: Iterable[str], reverse: bool = False) -> List[str]:
    """Sort raw version strings by parsed Version order."""
    parsed = [(parse_version(v), v) for v in versions]
    parsed.sort(key=functools.cmp_to_key(lambda a, b: compare_versions(a[0], b[0])), reverse=reverse)
    return [v for _, v in parsed]


def clean_runtime_import(text: str) -> Version:
    """Parse a runtime release tag such as ``SPT 3.9.8 - 12345`` into ``3.9.8``."""
    cleaned = _RUNTIME_IMPORT_RE.sub(r"\1", text.strip())
    return parse_version(cleaned)


def _slug(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-")


def clean_mod_import(value: Union[str, int]) -> Version:
    """Best-effort cleanup of author supplied version numbers from imports.

    ``v1.2 (beta)`` becomes ``1.2.0+beta``. Text without any digit becomes 0.0.0.
    """
    text = str(value).lstrip("v.").strip()
    match = _MOD_IMPORT_RE.match(text)
    if not match:
        return parse_version("0.0.0")

    metadata = _slug((match.group("pre") + match.group("post")).strip("()[]{}-"))
    segments = match.group("semver").split(".")
    segments += ["0"] * (3 - len(segments))
    semver = ".".join(str(int(s or 0)) for s in segments[:3])
    return parse_version(f"{semver}+{metadata}" if metadata else semver)


def guess_semantic_constraint(text: Union[str, int], append_any_patch: bool = True) -> str:
    """Guess a constraint from text that mentions a version somewhere.

    The last ``X.Y`` or ``X.Y.Z`` found wins; a two-part hit becomes ``~X.Y.0``
    when ``append_any_patch`` is set. This is a guess, use with caution.
    """
    found = _GUESS_RE.findall(str(text))
    version = found[-1] if found else "0.0.0"
    if append_any_patch and _TWO_PART_RE.match(version):
        return f"~{version}.0"
    return version


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, version or None) using the rightmost-colon rule."""
    s = s.strip()
    if ':' not in s:
        return s, None
    identifier, version = s.rsplit(':', 1)
    identifier = identifier.strip()
    version = version.strip()
    return identifier, version if version else None


@dataclass(frozen=True)
class VersionPair:
    """An ``identifier:version`` request entry."""
    identifier: str
    version: str
    is_numeric_id: bool


def parse_version_pairs(param: str) -> List[VersionPair]:
    """Parse a comma-separated list of ``identifier:version`` pairs.

    Duplicates are dropped keeping first occurrence; entries without exactly
    one colon or with an empty side are skipped.
    """
    pairs: List[VersionPair] = []
    seen = set()
    for chunk in param.split(","):
        token = chunk.strip()
        if not token or token in seen:
            continue
        seen.add(token)

        identifier, version = tokenize_rightmost_colon(token)
        if not identifier or not version or ":" in identifier:
            continue
        is_numeric = identifier.isdigit() and int(identifier) > 0
        pairs.append(VersionPair(identifier=identifier, version=version, is_numeric_id=is_numeric))
    return pairs
