"""Match outgoing requests against the active rule set."""

from collections.abc import Iterable
from typing import Optional

from blockwarden.models import BlockingRule, RuleKind


def domain_matches(host: str, pattern: str) -> bool:
    """Exact match, or host is a subdomain of pattern.

    "youtube.com" matches "youtube.com" and "m.youtube.com" but not
    "notyoutube.com".
    """
    host = host.lower().rstrip(".")
    pattern = pattern.lower().rstrip(".")
    return host == pattern or host.endswith("." + pattern)


class RuleMatcher:
    """Decides whether a request is blocked by any active rule.

    Domain rules match the host or its parent domains, keyword rules match a
    substring of the host, IP rules match the host exactly, and app rules
    match the requesting app's identifier.
    """

    def __init__(self, rules: Iterable[BlockingRule]) -> None:
        self.rules = [rule for rule in rules if rule.is_active]

    def match(self, host: Optional[str] = None, app: Optional[str] = None) -> Optional[BlockingRule]:
        """Return the first rule blocking this request, or None."""
        for rule in self.rules:
            if host:
                if rule.kind is RuleKind.DOMAIN and domain_matches(host, rule.pattern):
                    return rule
                if rule.kind is RuleKind.KEYWORD and rule.pattern.lower() in host.lower():
                    return rule
                if rule.kind is RuleKind.IP_ADDRESS and host == rule.pattern:
                    return rule
            if app and rule.kind is RuleKind.APP and app == rule.pattern:
                return rule
        return None

    def is_blocked(self, host: Optional[str] = None, app: Optional[str] = None) -> bool:
        return self.match(host, app) is not None
