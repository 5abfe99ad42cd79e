"""Central logging configuration helpers for oscqsync."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping

from loguru import logger

PACKAGE_SCOPE = "oscqsync"

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)

# Short names for the noisy parts of the pipeline.
SCOPE_ALIASES: Mapping[str, tuple[str, ...]] = {
    "mdns": (f"{PACKAGE_SCOPE}.dns",),
    "http": (f"{PACKAGE_SCOPE}.core.query_http",),
    "sync": (f"{PACKAGE_SCOPE}.client", f"{PACKAGE_SCOPE}.core.service_registry"),
}


def _expand_scopes(debug_scopes: Iterable[str]) -> tuple[str, ...]:
    expanded: list[str] = []
    for raw in debug_scopes:
        scope = raw.strip()
        if not scope:
            continue
        if scope in SCOPE_ALIASES:
            expanded.extend(SCOPE_ALIASES[scope])
        elif scope.startswith(f"{PACKAGE_SCOPE}.") or scope == PACKAGE_SCOPE:
            expanded.append(scope)
        else:
            expanded.extend((scope, f"{PACKAGE_SCOPE}.{scope}"))
    return tuple(dict.fromkeys(expanded))


def _scope_matches(record_name: str, scope: str) -> bool:
    return record_name == scope or record_name.startswith(f"{scope}.")


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
) -> tuple[int, ...]:
    """Install the stderr sink at ``level``, plus DEBUG for selected modules.

    ``debug_scopes`` accepts the aliases in ``SCOPE_ALIASES`` (``mdns``,
    ``http``, ``sync``), dotted module names, or a subpackage name such as
    ``dns`` that is resolved inside ``oscqsync``. Returns the loguru handler
    ids so callers can remove them again.
    """
    logger.remove()
    handler_ids = [
        logger.add(sys.stderr, level=level, format=DEFAULT_LOG_FORMAT, colorize=colorize)
    ]

    scopes = _expand_scopes(debug_scopes)
    if not scopes or level.upper() == "DEBUG":
        return tuple(handler_ids)

    def _debug_only_in_scope(record: Mapping) -> bool:
        if record["level"].name != "DEBUG":
            return False
        name = record["name"] or ""
        return any(_scope_matches(name, scope) for scope in scopes)

    handler_ids.append(
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=DEFAULT_LOG_FORMAT,
            colorize=colorize,
            filter=_debug_only_in_scope,
        )
    )
    return tuple(handler_ids)
