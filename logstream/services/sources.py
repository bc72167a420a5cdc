"""Known log conventions and the alias table that maps source ids onto them.

A source id is usually a container name ("redis", "my-nginx-1") but may be a
bare container id. The alias table lets an id like "b0553f497026" be treated
as a redis container without hard-coding it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class SourceProfile:
    """Literal markers a log convention uses for its own severities.

    Markers are matched case-sensitively, before the generic keyword scan.
    """
    name: str
    error_markers: tuple[str, ...] = ()
    warn_markers: tuple[str, ...] = ()
    debug_markers: tuple[str, ...] = ()


PROFILES: dict[str, SourceProfile] = {
    "redis": SourceProfile(
        "redis",
        error_markers=("# ERROR",),
        warn_markers=("# WARNING",),
    ),
    "nginx": SourceProfile(
        "nginx",
        error_markers=("[error]", "[crit]", "[alert]", "[emerg]"),
        warn_markers=("[warn]",),
        debug_markers=("[debug]",),
    ),
    "mongo": SourceProfile(
        "mongo",
        error_markers=('"s":"E"', '"s":"F"'),
        warn_markers=('"s":"W"',),
        debug_markers=('"s":"D',),
    ),
}


def resolve_source_kind(
    source_id: str, aliases: Mapping[str, str] | None = None,
) -> str | None:
    """Return the known kind for *source_id*, or None for unrecognized sources.

    Aliases are applied first; the result is matched exactly against the
    known kinds, then as a substring ("my-redis-1" -> "redis").
    """
    canonical = (aliases or {}).get(source_id, source_id)
    if canonical in PROFILES:
        return canonical
    lowered = canonical.lower()
    for kind in PROFILES:
        if kind in lowered:
            return kind
    return None


def get_profile(
    source_id: str, aliases: Mapping[str, str] | None = None,
) -> SourceProfile | None:
    kind = resolve_source_kind(source_id, aliases)
    return PROFILES.get(kind) if kind else None
