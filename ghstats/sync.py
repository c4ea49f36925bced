"""Collecting metrics from GitHub into the database."""

from __future__ import annotations

import logging
import time
from collections import Counter
from datetime import datetime, timezone
from itertools import accumulate
from typing import Sequence

from ghstats.db_client import DbClient
from ghstats.gh_client import GhClient, Repo
from ghstats.state import AppState

log = logging.getLogger(__name__)

# GitHub allows 5000 requests per hour; leave most of them to other clients.
_MAX_STAR_PAGES_PER_RUN = 1000
_STARS_PER_PAGE = 100


def _day(timestamp: str) -> str:
    # the database stores dates as UTC midnight
    return f"{timestamp.split('T', 1)[0]}T00:00:00Z"


async def check_hidden_repos(db: DbClient, repos: Sequence[Repo]) -> None:
    """Hide stored repos that the API no longer returns."""
    now_ids = {r.id for r in repos}
    hidden = [x for x in await db.get_repos_ids() if x not in now_ids]
    await db.mark_repo_hidden(hidden)


async def update_repo_metrics(db: DbClient, gh: GhClient, repo: Repo, date: str) -> None:
    """Fetch and store today's stats and traffic of one repo."""
    prs = await gh.get_open_pull_requests(repo.full_name)
    views = await gh.traffic_views(repo.full_name)
    clones = await gh.traffic_clones(repo.full_name)
    referrers = await gh.traffic_refs(repo.full_name)
    popular_paths = await gh.traffic_paths(repo.full_name)

    await db.insert_repo(repo)
    await db.insert_stats(repo, date, prs)
    await db.insert_views(repo, views)
    await db.insert_clones(repo, clones)
    await db.insert_referrers(repo, date, referrers)
    await db.insert_paths(repo, date, popular_paths)


async def update_metrics(state: AppState) -> None:
    """Refresh metrics of every tracked repo, then deltas and star history."""
    started = time.perf_counter()
    date = _day(datetime.now(timezone.utc).isoformat())

    repos = await state.gh.get_repos(state.include_private)
    await check_hidden_repos(state.db, repos)

    repos = [r for r in repos if state.filter.is_included(r.full_name, r.fork, r.archived)]
    for repo in repos:
        try:
            await update_repo_metrics(state.db, state.gh, repo, date)
        except Exception as exc:
            log.warning("failed to update metrics for %s: %r", repo.full_name, exc)

    log.info(
        "update_metrics took %.3fs for %d repos", time.perf_counter() - started, len(repos)
    )
    await state.db.update_deltas()
    await sync_stars(state.db, state.gh)


async def get_stars_history(gh: GhClient, repo: str) -> list[tuple[str, int, int]]:
    """Daily star history as (date, accumulated stars, new stars), oldest first."""
    stars = await gh.get_stars(repo)
    per_day = Counter(_day(s.starred_at) for s in stars)
    dates = sorted(per_day)
    new_counts = [per_day[d] for d in dates]
    return list(zip(dates, accumulate(new_counts), new_counts))


async def sync_stars(db: DbClient, gh: GhClient) -> None:
    """Load the full star history of repos that have not been synced yet."""
    pages_collected = 0

    for repo in await db.repos_to_sync():
        started = time.perf_counter()
        try:
            stars = await get_stars_history(gh, repo.name)
        except Exception as exc:
            log.warning("failed to get stars for %s: %r", repo.name, exc)
            break

        await db.insert_stars(repo.id, stars)
        await db.mark_repo_stars_synced(repo.id)

        stars_count = sum(new for _, _, new in stars)
        log.info(
            "sync_stars for %s done in %.3fs, %d stars added",
            repo.name,
            time.perf_counter() - started,
            stars_count,
        )

        pages_collected += (stars_count + _STARS_PER_PAGE - 1) // _STARS_PER_PAGE
        if pages_collected > _MAX_STAR_PAGES_PER_RUN:
            log.info("sync_stars: %d pages collected, will continue next hour", pages_collected)
            break