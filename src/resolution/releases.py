"""Runtime release ordering and listing helpers."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from constants import Constants

from .models import RuntimeRelease, published_timestamp

if TYPE_CHECKING:
    from .cache import ResolutionCache


def _visible(
    releases: Iterable[RuntimeRelease], include_unpublished: bool, now: Optional[datetime]
) -> List[RuntimeRelease]:
    return [
        r for r in releases
        if not r.is_legacy_sentinel and (include_unpublished or r.is_published(now))
    ]


def published_releases(releases: Iterable[RuntimeRelease], now: Optional[datetime] = None) -> List[RuntimeRelease]:
    """Published, non-sentinel releases in publish order (ties by version)."""
    visible = _visible(releases, False, now)
    visible.sort(key=lambda r: (published_timestamp(r.publish_date), r.parsed, r.id))
    return visible


def sorted_releases(
    releases: Iterable[RuntimeRelease],
    include_unpublished: bool = False,
    now: Optional[datetime] = None,
) -> List[RuntimeRelease]:
    """Releases newest version first."""
    visible = _visible(releases, include_unpublished, now)
    visible.sort(key=lambda r: (r.parsed, r.id), reverse=True)
    return visible


def latest_release(
    releases: Iterable[RuntimeRelease],
    include_unpublished: bool = False,
    now: Optional[datetime] = None,
) -> Optional[RuntimeRelease]:
    ordered = sorted_releases(releases, include_unpublished, now)
    return ordered[0] if ordered else None


def last_minor_lines(
    releases: Iterable[RuntimeRelease],
    count: Optional[int] = None,
    include_unpublished: bool = False,
    now: Optional[datetime] = None,
) -> List[Tuple[int, int]]:
    """The most recent ``(major, minor)`` lines, newest first."""
    limit = Constants.RECENT_MINOR_COUNT if count is None else count
    lines: List[Tuple[int, int]] = []
    for release in sorted_releases(releases, include_unpublished, now):
        line = (release.parsed.major, release.parsed.minor)
        if line not in lines:
            lines.append(line)
        if len(lines) >= limit:
            break
    return lines


def releases_for_last_minor_lines(
    releases: Iterable[RuntimeRelease],
    count: Optional[int] = None,
    include_unpublished: bool = False,
    now: Optional[datetime] = None,
) -> List[RuntimeRelease]:
    """Every release belonging to the most recent minor lines, newest first."""
    releases = list(releases)
    lines = set(last_minor_lines(releases, count, include_unpublished, now))
    return [
        r for r in sorted_releases(releases, include_unpublished, now)
        if (r.parsed.major, r.parsed.minor) in lines
    ]


def latest_minor_releases(
    releases: Iterable[RuntimeRelease],
    include_unpublished: bool = False,
    now: Optional[datetime] = None,
) -> List[RuntimeRelease]:
    """Patch releases of the latest minor line, newest first."""
    return releases_for_last_minor_lines(releases, 1, include_unpublished, now)


def is_latest_minor(
    release: RuntimeRelease,
    releases: Iterable[RuntimeRelease],
    now: Optional[datetime] = None,
) -> bool:
    """True when the release shares major.minor with the latest published release."""
    latest = latest_release(releases, now=now)
    if latest is None:
        return False
    return (release.parsed.major, release.parsed.minor) == (latest.parsed.major, latest.parsed.minor)


def mod_count(release: RuntimeRelease, cache: "ResolutionCache") -> int:
    """Distinct mods with at least one cached version compatible with the release."""
    mods = set()
    for result in cache.compatibility_results():
        if release.id in result.release_ids:
            mods.add(result.mod_version.mod_id)
    return len(mods)
