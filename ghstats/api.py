"""JSON API endpoints."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Iterable

from starlette.datastructures import QueryParams
from starlette.requests import Request
from starlette.responses import JSONResponse

from ghstats.db_client import Direction, RepoFilter, RepoSort, RepoTotals
from ghstats.errors import AppError
from ghstats.state import AppState


@dataclass(frozen=True)
class ReposList:
    """Repos with their summed stars, forks, views and clones."""

    total_count: int
    total_stars: int
    total_forks: int
    total_views: int
    total_clones: int
    items: list[RepoTotals] = field(default_factory=list)

    @classmethod
    def from_repos(cls, repos: Iterable[RepoTotals]) -> ReposList:
        items = list(repos)
        return cls(
            total_count=len(items),
            total_stars=sum(r.stars for r in items),
            total_forks=sum(r.forks for r in items),
            total_views=sum(r.views_count for r in items),
            total_clones=sum(r.clones_count for r in items),
            items=items,
        )


def _parse_repo_filter(params: QueryParams) -> RepoFilter:
    flt = RepoFilter(q=params.get("q"), owner=params.get("owner"))
    try:
        if "sort" in params:
            flt.sort = RepoSort(params["sort"])
        if "direction" in params:
            flt.direction = Direction(params["direction"])
    except ValueError as exc:
        raise AppError(f"Failed to deserialize query string: {exc}") from exc
    return flt


def _app_state(request: Request) -> AppState:
    return request.app.state.app_state


async def api_get_repos(request: Request) -> JSONResponse:
    """List tracked repos matching the query, with totals."""
    qs = _parse_repo_filter(request.query_params)
    repos = await _app_state(request).get_repos_filtered(qs)
    return JSONResponse(asdict(ReposList.from_repos(repos)))