"""OIDC workload identity authentication.

Verifies federated OIDC tokens presented by non-human identities against an
operator-configured trust policy and issues short-lived access tokens.
"""

__version__ = "0.1.0"
