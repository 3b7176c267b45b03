"""Claim policy matching.

Evaluates token claims against the bound subject, bound audiences and bound
claims of a trust policy:
- Policy strings hold alternatives (see PolicyValueList); any alternative may match
- An alternative matches by exact equality or as a wildcard pattern where
  '*' matches any run of characters, including '/' and ':'
- Other glob characters ('?', '[', ']') are literal
- A missing or empty claim value never matches
- Bound claims are conjunctive across claim names and disjunctive within
  one claim's alternatives

Matching is case-sensitive.
"""

from __future__ import annotations

__all__ = [
    "evaluate_bound_claims",
    "match_audience",
    "match_claim",
    "match_field",
    "match_pattern",
]

import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any

from oidc_auth.auth.policy_values import PolicyValueList


@lru_cache(maxsize=1024)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(".*".join(parts), re.DOTALL)


def match_pattern(value: str, pattern: str) -> bool:
    """Match one value against one policy alternative.

    Args:
        value: Claim value (non-empty).
        pattern: Policy alternative, possibly containing '*'.

    Returns:
        True on exact equality or wildcard match.
    """
    if value == pattern:
        return True
    if "*" not in pattern:
        return False
    return _compile_pattern(pattern).fullmatch(value) is not None


def match_field(claim_value: Any, policy: str | PolicyValueList) -> bool:
    """Match a single-valued claim against a policy string.

    Args:
        claim_value: Claim from the token. Anything but a non-empty string
            never matches.
        policy: Stored policy string or parsed alternatives.

    Returns:
        True if any alternative matches.
    """
    if not isinstance(claim_value, str) or not claim_value:
        return False
    alternatives = policy if isinstance(policy, PolicyValueList) else PolicyValueList.parse(policy)
    return any(match_pattern(claim_value, alternative) for alternative in alternatives)


def match_audience(claim_audience: Any, policy: str | PolicyValueList) -> bool:
    """Match a token's 'aud' claim (string or list of strings) against a policy.

    Returns:
        True if any audience entry matches any policy alternative.
    """
    if isinstance(claim_audience, str):
        entries: Sequence[Any] = [claim_audience]
    elif isinstance(claim_audience, (list, tuple)):
        entries = claim_audience
    else:
        return False
    alternatives = policy if isinstance(policy, PolicyValueList) else PolicyValueList.parse(policy)
    return any(match_field(entry, alternatives) for entry in entries)


def _claim_entries(claim_value: Any) -> list[str]:
    """Flatten a claim into the string entries tested against the policy."""
    if claim_value is None:
        return []
    if isinstance(claim_value, bool):
        # JSON spelling, so a policy of "true" matches a boolean claim
        return ["true" if claim_value else "false"]
    if isinstance(claim_value, (int, float)):
        return [str(claim_value)]
    if isinstance(claim_value, str):
        return list(PolicyValueList.parse(claim_value))
    if isinstance(claim_value, (list, tuple)):
        entries: list[str] = []
        for item in claim_value:
            entries.extend(_claim_entries(item))
        return entries
    # Objects are never matched
    return []


def match_claim(claim_value: Any, policy: str | PolicyValueList) -> bool:
    """Match a custom claim that may be multi-valued.

    A list claim, or a string claim holding ", "-separated entries, matches if
    any entry matches any policy alternative. Numbers and booleans are
    compared in their JSON spelling.
    """
    alternatives = policy if isinstance(policy, PolicyValueList) else PolicyValueList.parse(policy)
    return any(match_field(entry, alternatives) for entry in _claim_entries(claim_value))


def evaluate_bound_claims(bound_claims: Mapping[str, str], token_claims: Mapping[str, Any]) -> str | None:
    """Check every bound claim against the token.

    Args:
        bound_claims: Claim name -> policy string.
        token_claims: Verified token claims.

    Returns:
        Name of the first claim that does not match, or None if all match.
    """
    for claim_name, policy in bound_claims.items():
        alternatives = PolicyValueList.parse(policy)
        if not alternatives:
            # Empty policy is no restriction, like an absent one
            continue
        if not match_claim(token_claims.get(claim_name), alternatives):
            return claim_name
    return None
