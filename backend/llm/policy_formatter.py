"""Render selected privacy policies into the policy text used in prompts."""

from __future__ import annotations

from typing import Sequence

from schemas.entities import PolicyRef


def format_policy(policy: PolicyRef) -> str:
    sections = " ".join(
        f"Section: {doc.title} - Reference: '{doc.snippet}'."
        for doc in policy.documents
    )
    return f"{policy.name} Privacy Policy. Documents: {sections}"


def format_policies(policies: Sequence[PolicyRef]) -> str:
    """Return one line per policy, suitable for the ``REF:policies`` block."""
    return "\n".join(format_policy(policy) for policy in policies)
