"""Tests for claim policy matching.

Tests cover:
- Alternatives: a policy matches iff one of its alternatives matches
- Wildcards: '*' is a multi-character glob, everything else is literal
- Audiences: string or list token side
- Custom claims: multi-valued claim side, conjunction across bound claims
"""

from __future__ import annotations

from typing import Any

import pytest

from oidc_auth.auth.claims import (
    evaluate_bound_claims,
    match_audience,
    match_claim,
    match_field,
    match_pattern,
)
from oidc_auth.auth.policy_values import PolicyValueList

CLAIM_VALUES = [
    "repo:org/app:ref:refs/heads/main",
    "system:serviceaccount:ci:deployer",
    "svc-a",
    "svc-b",
    "x",
]
POLICY_ALTERNATIVES = ["svc-a", "repo:org/*", "system:serviceaccount:*:deployer", "*-b", "nomatch"]


class TestMatchPattern:
    @pytest.mark.parametrize("value", CLAIM_VALUES)
    def test_lone_star_matches_any_non_empty_value(self, value: str) -> None:
        assert match_field(value, "*")

    def test_lone_star_does_not_match_empty_or_missing(self) -> None:
        assert not match_field("", "*")
        assert not match_field(None, "*")

    @pytest.mark.parametrize("value", CLAIM_VALUES)
    def test_pattern_without_star_matches_only_itself(self, value: str) -> None:
        for pattern in CLAIM_VALUES:
            assert match_pattern(value, pattern) == (value == pattern)

    @pytest.mark.parametrize(
        "value, pattern, expected",
        [
            ("repo:org/app:ref:refs/heads/main", "repo:org/*", True),
            ("repo:org/app:ref:refs/heads/main", "repo:org/*:ref:refs/heads/main", True),
            ("repo:org/app:ref:refs/heads/dev", "repo:org/*:ref:refs/heads/main", False),
            ("repo:other/app", "repo:org/*", False),
            ("prefix-middle-suffix", "prefix-*-suffix", True),
            ("prefix--suffix", "prefix-*-suffix", True),
            ("a.b", "a?b", False),
            ("a?b", "a?b", True),
            ("a[b]", "a[b]", True),
            ("ab", "a[b]", False),
            ("Svc-A", "svc-a", False),
            ("line1\nline2", "line1*", True),
        ],
    )
    def test_wildcard_cases(self, value: str, pattern: str, expected: bool) -> None:
        assert match_pattern(value, pattern) is expected


class TestMatchField:
    @pytest.mark.parametrize("value", CLAIM_VALUES)
    @pytest.mark.parametrize("first", POLICY_ALTERNATIVES)
    @pytest.mark.parametrize("second", POLICY_ALTERNATIVES)
    def test_two_alternatives_match_iff_either_matches(self, value: str, first: str, second: str) -> None:
        combined = match_field(value, f"{first}, {second}")

        assert combined == (match_field(value, first) or match_field(value, second))

    @pytest.mark.parametrize("claim", [None, 42, True, ["svc-a"], {"svc-a": 1}])
    def test_non_string_claim_never_matches(self, claim: Any) -> None:
        assert not match_field(claim, "svc-a, *")

    def test_accepts_parsed_policy(self) -> None:
        assert match_field("svc-b", PolicyValueList.of(["svc-a", "svc-b"]))

    def test_comma_without_space_is_part_of_value(self) -> None:
        assert match_field("a,b", "a,b")
        assert not match_field("a", "a,b")


class TestMatchAudience:
    @pytest.mark.parametrize("a", CLAIM_VALUES)
    @pytest.mark.parametrize("b", CLAIM_VALUES)
    @pytest.mark.parametrize("policy", ["svc-a, svc-b", "repo:org/*", "nomatch"])
    def test_list_matches_iff_any_entry_matches(self, a: str, b: str, policy: str) -> None:
        assert match_audience([a, b], policy) == (match_field(a, policy) or match_field(b, policy))

    def test_string_audience(self) -> None:
        assert match_audience("svc-b", "svc-a, svc-b")
        assert not match_audience("svc-c", "svc-a, svc-b")

    @pytest.mark.parametrize("audience", [None, [], 7, {"aud": "svc-a"}, [None, 3]])
    def test_missing_or_malformed_audience_never_matches(self, audience: Any) -> None:
        assert not match_audience(audience, "*")


class TestMatchClaim:
    @pytest.mark.parametrize(
        "claim, policy, expected",
        [
            ("main", "main, release", True),
            (["dev", "release"], "main, release", True),
            (["dev", "test"], "main, release", False),
            ("dev, release", "release", True),
            ("dev,release", "release", False),
            (True, "true", True),
            (False, "true", False),
            (42, "42", True),
            ([["nested", "release"]], "release", True),
            ({"ref": "main"}, "*", False),
            (None, "*", False),
            ("", "*", False),
        ],
    )
    def test_multi_valued_claims(self, claim: Any, policy: str, expected: bool) -> None:
        assert match_claim(claim, policy) is expected


class TestEvaluateBoundClaims:
    def test_all_keys_must_match(self) -> None:
        # Arrange
        bound = {"repository": "org/*", "ref": "refs/heads/main, refs/heads/release"}
        claims = {"repository": "org/app", "ref": "refs/heads/release"}

        # Act / Assert
        assert evaluate_bound_claims(bound, claims) is None

    def test_returns_first_failing_claim(self) -> None:
        bound = {"repository": "org/*", "ref": "refs/heads/main", "environment": "prod"}
        claims = {"repository": "org/app", "ref": "refs/heads/dev", "environment": "staging"}

        assert evaluate_bound_claims(bound, claims) == "ref"

    def test_missing_claim_fails(self) -> None:
        assert evaluate_bound_claims({"environment": "prod"}, {}) == "environment"

    def test_empty_policy_is_no_restriction(self) -> None:
        assert evaluate_bound_claims({"environment": ""}, {}) is None

    def test_no_bound_claims_passes(self) -> None:
        assert evaluate_bound_claims({}, {"anything": "at all"}) is None
