"""Repository selection rules and small text helpers."""

from __future__ import annotations

from dataclasses import dataclass


def truncate_middle(text: str, max_len: int) -> str:
    """Shorten text to max_len by replacing its middle with "..."."""
    if len(text) <= max_len:
        return text
    if max_len < 3:
        raise ValueError("max_len must be at least 3")
    part_len = (max_len - 3) // 2
    return f"{text[:part_len]}...{text[len(text) - part_len:]}"


@dataclass(frozen=True)
class GhsFilter:
    """Rules that decide which repositories are tracked.

    Rules are comma separated: "*" includes everything, "owner/name" and
    "owner/*" include repos, a leading "!" excludes them, and "!fork" /
    "!archived" drop forks and archived repos unless named explicitly.
    """

    include_repos: tuple[str, ...] = ()
    exclude_repos: tuple[str, ...] = ()
    exclude_forks: bool = False
    exclude_archs: bool = False
    default_all: bool = False

    @classmethod
    def parse(cls, rules: str) -> GhsFilter:
        default_all = False
        exclude_forks = False
        exclude_archs = False
        include: list[str] = []
        exclude: list[str] = []

        for rule in (x.strip() for x in rules.strip().lower().split(",")):
            if not rule:
                continue
            if rule == "*":
                default_all = True
            elif rule == "!fork":
                exclude_forks = True
            elif rule == "!archived":
                exclude_archs = True
            elif rule.count("/") != 1:
                continue
            elif rule.startswith("!"):
                exclude.append(rule[1:])
            else:
                include.append(rule)

        if not include and not exclude:
            default_all = True

        return cls(
            include_repos=tuple(include),
            exclude_repos=tuple(exclude),
            exclude_forks=exclude_forks,
            exclude_archs=exclude_archs,
            default_all=default_all,
        )

    def is_included(self, repo: str, is_fork: bool, is_arch: bool) -> bool:
        name = repo.strip().lower()
        if not name or name.count("/") != 1 or name.startswith("/") or name.endswith("/"):
            return False

        # forks / archived repos are only matched by exact names, not wildcards
        skip_wildcards = (self.exclude_forks and is_fork) or (self.exclude_archs and is_arch)

        for verdict, rules in ((False, self.exclude_repos), (True, self.include_repos)):
            for rule in rules:
                if rule == name:
                    return verdict
                if skip_wildcards:
                    continue
                if rule.endswith("/*") and name.startswith(rule[:-1]):
                    return verdict

        if skip_wildcards:
            return False
        return self.default_all