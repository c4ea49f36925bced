"""Client for the parts of the GitHub REST API the app uses."""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field, fields
from typing import Any, TypeVar

import httpx

API_URL = "https://api.github.com"
APP_NAME = "ghstats"
APP_VERSION = "0.7.1"
PER_PAGE = 100
READ_TIMEOUT = 30.0

_T = TypeVar("_T", bound="_JsonModel")


class _JsonModel:
    """Builds a dataclass from a JSON object, ignoring unknown keys."""

    @classmethod
    def from_json(cls: type[_T], data: dict[str, Any]) -> _T:
        kwargs = {}
        for f in fields(cls):  # type: ignore[arg-type]
            if f.default is MISSING and f.default_factory is MISSING:
                kwargs[f.name] = data[f.name]
            elif f.name in data:
                kwargs[f.name] = data[f.name]
        return cls(**kwargs)


@dataclass(frozen=True)
class Repo(_JsonModel):
    id: int
    full_name: str
    stargazers_count: int
    forks_count: int
    watchers_count: int
    open_issues_count: int
    fork: bool
    archived: bool
    description: str | None = None


@dataclass(frozen=True)
class PullRequest(_JsonModel):
    id: int
    title: str


@dataclass(frozen=True)
class TrafficDaily(_JsonModel):
    timestamp: str
    uniques: int
    count: int


@dataclass(frozen=True)
class RepoClones:
    uniques: int
    count: int
    clones: list[TrafficDaily] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> RepoClones:
        return cls(
            uniques=data["uniques"],
            count=data["count"],
            clones=[TrafficDaily.from_json(x) for x in data["clones"]],
        )


@dataclass(frozen=True)
class RepoViews:
    uniques: int
    count: int
    views: list[TrafficDaily] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> RepoViews:
        return cls(
            uniques=data["uniques"],
            count=data["count"],
            views=[TrafficDaily.from_json(x) for x in data["views"]],
        )


@dataclass(frozen=True)
class RepoPopularPath(_JsonModel):
    path: str
    title: str
    count: int
    uniques: int


@dataclass(frozen=True)
class RepoReferrer(_JsonModel):
    referrer: str
    count: int
    uniques: int


@dataclass(frozen=True)
class RepoStar(_JsonModel):
    starred_at: str


class GhClient:
    """Authenticated asynchronous GitHub API client."""

    def __init__(self, token: str, base_url: str = API_URL) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {token}",
            "User-Agent": f"{APP_NAME}/{APP_VERSION}",
        }
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(None, read=READ_TIMEOUT),
        )

    async def __aenter__(self) -> GhClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connections."""
        await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        rep = await self._client.get(path, params=params)
        rep.raise_for_status()
        return rep.json()

    async def _paginate(
        self,
        path: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            query = {**(params or {}), "per_page": str(PER_PAGE), "page": str(page)}
            rep = await self._client.get(path, params=query, headers=headers)
            rep.raise_for_status()
            items.extend(rep.json())
            if 'rel="next"' not in rep.headers.get("link", ""):
                return items
            page += 1

    async def get_repos(self, include_private: bool) -> list[Repo]:
        """List repositories of the authenticated user."""
        visibility = "all" if include_private else "public"
        data = await self._paginate("/user/repos", {"visibility": visibility})
        return [Repo.from_json(x) for x in data]

    async def get_open_pull_requests(self, repo: str) -> list[PullRequest]:
        data = await self._paginate(f"/repos/{repo}/pulls", {"state": "open"})
        return [PullRequest.from_json(x) for x in data]

    async def traffic_clones(self, repo: str) -> RepoClones:
        return RepoClones.from_json(await self._get_json(f"/repos/{repo}/traffic/clones"))

    async def traffic_views(self, repo: str) -> RepoViews:
        return RepoViews.from_json(await self._get_json(f"/repos/{repo}/traffic/views"))

    async def traffic_paths(self, repo: str) -> list[RepoPopularPath]:
        data = await self._get_json(f"/repos/{repo}/traffic/popular/paths")
        return [RepoPopularPath.from_json(x) for x in data]

    async def traffic_refs(self, repo: str) -> list[RepoReferrer]:
        data = await self._get_json(f"/repos/{repo}/traffic/popular/referrers")
        return [RepoReferrer.from_json(x) for x in data]

    async def get_latest_release_ver(self, repo: str) -> str:
        """Return the tag of the latest release without its leading "v"."""
        data = await self._get_json(f"/repos/{repo}/releases/latest")
        tag = data.get("tag_name") if isinstance(data, dict) else None
        if not isinstance(tag, str):
            raise ValueError(f"latest release of {repo} has no tag_name")
        return tag.lstrip("v")

    async def get_stars(self, repo: str) -> list[RepoStar]:
        """List stargazers of a repository with the time each star was given."""
        data = await self._paginate(
            f"/repos/{repo}/stargazers",
            headers={"Accept": "application/vnd.github.v3.star+json"},
        )
        return [RepoStar.from_json(x) for x in data]