"""Runtime compatibility resolver and pin policy.

A result is *pinned* when no release newer than every currently published
release could satisfy the constraint (its upper edge is at or below the
latest release), or when the caller asks for a pin. Pinned results are left
alone when new releases are published. Unpinned results are recomputed on
every runtime release publication so open constraints pick new releases up.

The upper edge is exclusive for `<`, caret and tilde. With 3.10.0 as the
latest release:

- `>=3.9.0` and empty text have no edge and never pin.
- `<4.0.0` and `^3.9.0` end at 4.0.0, above the latest, and stay unpinned.
- `<3.10.0` and `~3.9.0` end at 3.10.0, which nothing newer can satisfy,
  so they pin.
- `<=3.10.0` pins too, since its edge is the latest release itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, Union

from common.logging_utils import extra_context, is_debug_enabled
from versioning.constraint import is_open_ended, matches, parse_constraint
from versioning.models import Constraint

from .models import CompatibilityResult, ModVersion, RuntimeRelease
from .releases import published_releases

logger = logging.getLogger(__name__)


class CompatibilityResolver:
    """Maps a mod version's runtime constraint onto published runtime releases."""

    def resolve_compatibility(
        self,
        mod_version: ModVersion,
        constraint: Union[str, Constraint, None],
        runtime_releases: Iterable[RuntimeRelease],
        pin: bool = False,
        now: Optional[datetime] = None,
    ) -> CompatibilityResult:
        """Evaluate the constraint against every published release, in publish order.

        Args:
            mod_version: The mod version whose compatibility is being computed.
            constraint: Constraint text as authored (or an already parsed Constraint).
            runtime_releases: All known releases; unpublished ones are ignored.
            pin: Force the result to be pinned regardless of constraint shape.
            now: Reference time for publication checks.

        Returns:
            CompatibilityResult with the matching releases and the pinned flag.
        """
        parsed = constraint if isinstance(constraint, Constraint) else parse_constraint(constraint)
        published = published_releases(runtime_releases, now)
        matched = tuple(release for release in published if matches(parsed, release.parsed))

        latest = max((release.parsed for release in published), default=None)
        pinned = bool(pin) or not is_open_ended(parsed, latest)

        if is_debug_enabled(logger):
            logger.debug(
                "Compatibility resolved",
                extra=extra_context(
                    event="function_exit",
                    component="compatibility_resolver",
                    action="resolve",
                    entity=mod_version.id,
                    constraint=parsed.raw,
                    count=len(matched),
                    pinned=pinned,
                ),
            )
        return CompatibilityResult(
            mod_version=mod_version,
            constraint=parsed.raw,
            matches=matched,
            pinned=pinned,
        )

    @staticmethod
    def needs_refresh_on_release(result: CompatibilityResult) -> bool:
        """Whether a newly published release should trigger recomputation."""
        return not result.pinned
