"""Add-on compatibility: which versions of the parent mod an add-on version supports."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from common.logging_utils import extra_context, is_debug_enabled
from versioning.constraint import matches, parse_constraint

from .models import AddonCompatibilityResult, AddonVersion, ModVersion

logger = logging.getLogger(__name__)


class AddonCompatibilityResolver:
    """Maps an add-on version's mod version constraint onto its parent mod's versions.

    An add-on without a parent mod, or without constraint text, declares no
    compatibility and resolves to no rows.
    """

    def resolve(
        self,
        addon_version: AddonVersion,
        mod_versions: Iterable[ModVersion],
        now: Optional[datetime] = None,
    ) -> AddonCompatibilityResult:
        """Evaluate the constraint against the parent mod's eligible versions.

        Args:
            addon_version: The add-on version declaring the constraint.
            mod_versions: Versions of the parent mod; others, unpublished and
                disabled ones are ignored.
            now: Reference time for publication checks.

        Returns:
            AddonCompatibilityResult with matches sorted newest version first.
        """
        text = addon_version.mod_version_constraint or ""
        matched = []
        if addon_version.mod_id is not None and text.strip():
            parsed = parse_constraint(text)
            matched = [
                mod_version
                for mod_version in mod_versions
                if mod_version.mod_id == addon_version.mod_id
                and mod_version.is_eligible(now)
                and matches(parsed, mod_version.parsed)
            ]
            matched.sort(key=lambda m: (m.parsed, m.id), reverse=True)

        if is_debug_enabled(logger):
            logger.debug(
                "Add-on compatibility resolved",
                extra=extra_context(
                    event="function_exit",
                    component="addon_resolver",
                    action="resolve",
                    entity=addon_version.id,
                    constraint=text,
                    count=len(matched),
                ),
            )
        return AddonCompatibilityResult(addon_version=addon_version, constraint=text, matches=tuple(matched))
