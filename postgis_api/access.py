# ============================================================================
# MODULE CONTEXT - TABLE ACCESS CONTROL
# ============================================================================
# STATUS: Standalone Module - PostGIS HTTP API access policy
# PURPOSE: Decide whether a path-supplied table may be queried at all
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: AccessDecision, validate_access, check_route_access, TABLE_ROUTE_PARAMS
# DEPENDENCIES: dataclasses, typing
# PATTERNS: Pure policy functions, evaluated before any SQL is built
# ============================================================================

"""
Table Access Control

Two layers:

- validate_access(): total, pure check of one name against the blacklist and
  the optional allow-list. Never raises, for any input string.
- check_route_access(): the gate run by every trigger before its handler.
  Checks the table-bearing route parameters in a fixed order and stops at
  the first rejection.

Matching is case-sensitive. "Secret_Table" is not the same name as
"secret_table" here, even though PostgreSQL folds unquoted identifiers. The
gateway always quotes identifiers, so the name checked is the name queried.

Blacklist entries match on the table part of a schema-qualified name:
"secret_table" also blocks "public.secret_table", and "geo.secret_table"
blocks both "geo.secret_table" and a bare "secret_table" that the search
path could resolve to it. The allow-list matches whole names only.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from .config import PostGISAPIConfig

# Route parameters that carry table names, in check order
TABLE_ROUTE_PARAMS = ("table", "table_from", "table_to")


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an access check."""
    allowed: bool
    reason: Optional[str] = None
    table: Optional[str] = None


ALLOWED = AccessDecision(allowed=True)


def _blacklist_entry(name: str, blacklist: Iterable[str]) -> Optional[str]:
    """Return the blacklist entry covering name, or None."""
    schema, _, table = name.rpartition(".")
    for entry in blacklist:
        entry_schema, _, entry_table = entry.rpartition(".")
        if entry_table != table:
            continue
        if not entry_schema or not schema or entry_schema == schema:
            return entry
    return None


def validate_access(name: str, config: PostGISAPIConfig) -> AccessDecision:
    """
    Check a single table name against the access policy.

    Args:
        name: Table name exactly as it arrived in the request path
        config: API configuration holding the policy

    Returns:
        AccessDecision; allowed=False carries a human-readable reason
    """
    if _blacklist_entry(name, config.blacklisted_tables) is not None:
        return AccessDecision(
            allowed=False,
            reason=f"Table '{name}' is blacklisted.",
            table=name
        )

    if config.allowed_tables and name not in config.allowed_tables:
        return AccessDecision(
            allowed=False,
            reason=f"Table '{name}' is not in the list of allowed tables.",
            table=name
        )

    return ALLOWED


def check_route_access(route_params: Mapping[str, str], config: PostGISAPIConfig) -> AccessDecision:
    """
    Gate a request on every table named in its route parameters.

    Args:
        route_params: Path parameters of the request
        config: API configuration holding the policy

    Returns:
        The first rejecting decision, or an allowing decision when all pass
    """
    for param in TABLE_ROUTE_PARAMS:
        name = route_params.get(param)
        if name is None:
            continue
        decision = validate_access(name, config)
        if not decision.allowed:
            return decision
    return ALLOWED
