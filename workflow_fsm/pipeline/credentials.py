"""Credential-name matching for the build gate.

A required credential is satisfied when the provided mapping holds a
non-empty value under the same canonical name, or under one of the aliases
enumerated in ``CREDENTIAL_ALIASES``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional

# Canonical name -> alternative names accepted for it
CREDENTIAL_ALIASES: Mapping[str, frozenset[str]] = MappingProxyType({
    "SLACK_TOKEN": frozenset({"SLACK_BOT_TOKEN", "SLACK_ACCESS_TOKEN"}),
    "SLACK_BOT_TOKEN": frozenset({"SLACK_TOKEN"}),
    "SLACK_WEBHOOK_URL": frozenset({"SLACK_WEBHOOK"}),
    "DISCORD_WEBHOOK_URL": frozenset({"DISCORD_WEBHOOK"}),
    "OPENAI_API_KEY": frozenset({"OPENAI_KEY"}),
    "ANTHROPIC_API_KEY": frozenset({"CLAUDE_API_KEY"}),
    "GEMINI_API_KEY": frozenset({"GOOGLE_GEMINI_API_KEY", "GOOGLE_AI_API_KEY"}),
    "SMTP_USERNAME": frozenset({"SMTP_USER"}),
    "SMTP_PASSWORD": frozenset({"SMTP_PASS"}),
    "SMTP_HOST": frozenset({"SMTP_SERVER"}),
})

# Separator characters folded to "_" in canonical names
_SEPARATORS = str.maketrans({"-": "_", " ": "_", ".": "_"})


def canonical_name(name: str) -> str:
    """Fold a credential name to its canonical form (``slack-token`` -> ``SLACK_TOKEN``)."""
    return name.strip().translate(_SEPARATORS).upper()


class CredentialMatcher:
    """Matches required credential names against user-provided values."""

    def __init__(
        self,
        extra_aliases: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        """
        Initialize the matcher.

        Args:
            extra_aliases: Additional canonical-name -> aliases entries,
                merged over the built-in table
        """
        aliases: dict[str, frozenset[str]] = dict(CREDENTIAL_ALIASES)
        for name, names in (extra_aliases or {}).items():
            key = canonical_name(name)
            merged = aliases.get(key, frozenset()) | {canonical_name(n) for n in names}
            aliases[key] = frozenset(merged)
        self.aliases: Mapping[str, frozenset[str]] = MappingProxyType(aliases)

    def accepted_names(self, required: str) -> frozenset[str]:
        """All canonical names that satisfy ``required``."""
        key = canonical_name(required)
        return frozenset({key}) | self.aliases.get(key, frozenset())

    def is_satisfied(self, required: str, provided: Mapping[str, str]) -> bool:
        """Check whether ``required`` has a non-empty provided value."""
        accepted = self.accepted_names(required)
        return any(
            canonical_name(name) in accepted and bool(value)
            for name, value in provided.items()
        )

    def missing(
        self,
        required: Iterable[str],
        provided: Mapping[str, str],
    ) -> list[str]:
        """Required names with no matching provided value, in input order."""
        return [name for name in required if not self.is_satisfied(name, provided)]


DEFAULT_MATCHER = CredentialMatcher()
