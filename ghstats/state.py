"""Application state shared by request handlers and background jobs."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from ghstats.db_client import DbClient, RepoFilter, RepoTotals
from ghstats.filters import GhsFilter
from ghstats.gh_client import APP_VERSION, GhClient

log = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./data/ghstats.db"


def env_bool(key: str) -> bool:
    """Read a boolean flag from the environment ("true" or "1" means set)."""
    return os.environ.get(key, "false").lower() in ("true", "1")


def _owner(name: str) -> str:
    return name.split("/", 1)[0]


@dataclass
class AppState:
    """Database, API client and configuration of a running app."""

    db: DbClient
    gh: GhClient
    filter: GhsFilter
    include_private: bool = False
    last_release: str = APP_VERSION

    @classmethod
    async def create(cls) -> AppState:
        """Build the state from environment variables."""
        gh_token = os.environ.get("GITHUB_TOKEN", "")
        if not gh_token:
            log.error("missing GITHUB_TOKEN")
            raise RuntimeError("missing GITHUB_TOKEN")

        db_path = os.environ.get("DB_PATH", DEFAULT_DB_PATH)
        log.info("db_path: %s", db_path)

        db = await DbClient.open(db_path)
        gh = GhClient(gh_token)

        repo_filter = GhsFilter.parse(os.environ.get("GHS_FILTER", ""))
        log.info("%r", repo_filter)

        return cls(
            db=db,
            gh=gh,
            filter=repo_filter,
            include_private=env_bool("GHS_INCLUDE_PRIVATE"),
        )

    async def close(self) -> None:
        """Release the database connection and HTTP client."""
        try:
            await self.db.close()
        finally:
            await self.gh.aclose()

    def _is_tracked(self, repo: RepoTotals) -> bool:
        return self.filter.is_included(repo.name, repo.fork, repo.archived)

    async def get_repos_filtered(self, qs: RepoFilter) -> list[RepoTotals]:
        """Tracked repos, narrowed by the search text and owner of the query."""
        repos = [x for x in await self.db.get_repos(qs) if self._is_tracked(x)]

        if qs.q:
            q = qs.q.lower()
            repos = [x for x in repos if q in x.name.lower()]

        if qs.owner:
            repos = [x for x in repos if _owner(x.name) == qs.owner]

        return repos

    async def get_owners(self) -> list[str]:
        """Sorted distinct owners of the tracked repos."""
        repos = await self.db.get_repos(RepoFilter())
        return sorted({_owner(x.name) for x in repos if self._is_tracked(x)})