"""Multi-valued policy strings.

Bound subject, bound audiences and each bound claim are stored as a single
string holding alternatives joined by ", " (comma followed by a space). A
comma without a following space is part of the value, not a delimiter:
"a,b" is one alternative, "a, b" is two.
"""

from __future__ import annotations

__all__ = ["PolicyValueList"]

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from oidc_auth.constants import POLICY_VALUE_SEPARATOR


@dataclass(frozen=True)
class PolicyValueList:
    """Ordered alternatives of a policy string. Empty alternatives are dropped."""

    values: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str | None) -> "PolicyValueList":
        """Split a stored policy string into its alternatives.

        Args:
            raw: Stored policy string, e.g. "svc-a, svc-b". None or "" yields
                an empty list (no restriction).
        """
        if not raw:
            return cls()
        return cls(tuple(value for value in raw.split(POLICY_VALUE_SEPARATOR) if value))

    @classmethod
    def of(cls, values: Iterable[str]) -> "PolicyValueList":
        return cls(tuple(value for value in values if value))

    def serialize(self) -> str:
        """Join alternatives back into the stored form."""
        return POLICY_VALUE_SEPARATOR.join(self.values)

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __bool__(self) -> bool:
        return bool(self.values)
