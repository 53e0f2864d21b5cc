"""Enforcement ports: where resolved rules are handed to the operating system."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from blockwarden.models import BlockingRule, RuleKind

logger = logging.getLogger(__name__)

HOSTS_TAG = "# managed by blockwarden"


class EnforcementPort(Protocol):
    """OS-level filter that blocks whatever rule set it was last given."""

    def apply(self, rules: list[BlockingRule]) -> None: ...

    def clear(self) -> None: ...


class InMemoryEnforcementPort:
    """Records applied rules without touching the system."""

    def __init__(self) -> None:
        self.rules: list[BlockingRule] = []
        self.apply_calls = 0
        self.clear_calls = 0

    def apply(self, rules: list[BlockingRule]) -> None:
        self.rules = list(rules)
        self.apply_calls += 1

    def clear(self) -> None:
        self.rules = []
        self.clear_calls += 1

    @property
    def is_active(self) -> bool:
        return bool(self.rules)


class HostsFileEnforcementPort:
    """Blocks domain rules by pointing them at a sink address in a hosts file.

    Only lines carrying the tag are rewritten; the rest of the file is left
    untouched. App, keyword and IP rules have no hosts-file form and are
    skipped. Writing /etc/hosts requires root.
    """

    def __init__(
        self,
        hosts_path: Path | str = "/etc/hosts",
        redirect_ip: str = "0.0.0.0",
        tag: str = HOSTS_TAG,
    ) -> None:
        self.hosts_path = Path(hosts_path)
        self.redirect_ip = redirect_ip
        self.tag = tag

    def blocked_domains(self) -> set[str]:
        """Domains currently blocked by tagged lines."""
        domains = set()
        for line in self._read_lines():
            if self.tag in line:
                parts = line.split()
                if len(parts) > 1:
                    domains.add(parts[1])
        return domains

    def apply(self, rules: list[BlockingRule]) -> None:
        domains: list[str] = []
        for rule in rules:
            if rule.kind is not RuleKind.DOMAIN or not rule.is_active:
                continue
            hosts = [rule.pattern]
            if not rule.pattern.startswith("www."):
                hosts.append(f"www.{rule.pattern}")
            domains.extend(host for host in hosts if host not in domains)

        lines = [line for line in self._read_lines() if self.tag not in line]
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.extend(f"{self.redirect_ip} {domain} {self.tag}\n" for domain in domains)
        self._write_lines(lines)
        logger.info(f"Hosts file updated, {len(domains)} hostnames blocked")

    def clear(self) -> None:
        lines = self._read_lines()
        kept = [line for line in lines if self.tag not in line]
        if len(kept) != len(lines):
            self._write_lines(kept)
            logger.info("Hosts file blocks removed")

    def _read_lines(self) -> list[str]:
        try:
            with open(self.hosts_path) as f:
                return f.readlines()
        except FileNotFoundError:
            logger.warning(f"Hosts file not found at {self.hosts_path}")
            return []

    def _write_lines(self, lines: list[str]) -> None:
        # Sibling temp file, swapped in atomically
        fd, tmp_path = tempfile.mkstemp(dir=self.hosts_path.parent, prefix=".hosts.")
        try:
            with os.fdopen(fd, "w") as f:
                f.writelines(lines)
            if self.hosts_path.exists():
                shutil.copymode(self.hosts_path, tmp_path)
            else:
                os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.hosts_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
