import sqlite3
from datetime import datetime, timezone

import pytest

from ghstats.db_client import (
    DbClient,
    Direction,
    PopularFilter,
    PopularKind,
    PopularSort,
    RepoFilter,
    RepoSort,
)
from ghstats.gh_client import (
    PullRequest,
    Repo,
    RepoClones,
    RepoPopularPath,
    RepoReferrer,
    RepoViews,
    TrafficDaily,
)

D1 = "2024-01-01T00:00:00Z"
D2 = "2024-01-02T00:00:00Z"
D3 = "2024-01-03T00:00:00Z"


def _repo(repo_id=1, name="foo/bar", stars=3, issues=4, fork=False, archived=False):
    return Repo(
        id=repo_id,
        full_name=name,
        stargazers_count=stars,
        forks_count=2,
        watchers_count=1,
        open_issues_count=issues,
        fork=fork,
        archived=archived,
        description="desc",
    )


def _path(tmp_path):
    return str(tmp_path / "test.db")


def _today():
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT00:00:00Z")


def test_enum_names_and_defaults():
    assert str(RepoSort.CLONES) == "clones_count"
    assert str(RepoSort.VIEWS) == "views_count"
    assert str(Direction.DESC) == "desc"
    assert RepoFilter().sort is RepoSort.VIEWS
    assert RepoFilter().direction is Direction.DESC
    assert PopularFilter().sort is PopularSort.UNIQUES
    assert PopularFilter().period == 0


@pytest.mark.asyncio
async def test_migrations_set_version_and_reopen(tmp_path):
    path = _path(tmp_path)
    async with await DbClient.open(path) as db:
        await db.insert_repo(_repo())
    async with await DbClient.open(path) as db:
        assert await db.get_repos_ids() == [1]
    with sqlite3.connect(path) as conn:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == 3


@pytest.mark.asyncio
async def test_insert_stats_and_totals(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        repo = _repo(stars=3, issues=4)
        await db.insert_repo(repo)
        prs = [PullRequest(id=10, title="a")]
        await db.insert_stats(repo, D1, prs)
        await db.insert_stats(_repo(stars=5, issues=4), D2, prs)
        await db.insert_clones(
            repo, RepoClones(6, 9, [TrafficDaily(D1, 1, 2), TrafficDaily(D2, 3, 4)])
        )
        await db.insert_views(repo, RepoViews(1, 7, [TrafficDaily(D2, 1, 7)]))

        totals = await db.get_repo_totals("foo/bar")
        assert totals is not None
        assert totals.date == D2
        assert totals.stars == 5
        assert totals.issues == 4 - len(prs)
        assert totals.prs == len(prs)
        assert totals.clones_count == 2 + 4
        assert totals.clones_uniques == 1 + 3
        assert totals.views_count == 7
        assert totals.description == "desc"
        assert totals.fork is False
        assert await db.get_repo_totals("no/such") is None


@pytest.mark.asyncio
async def test_conflicts_keep_maximum(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        await db.insert_repo(_repo())
        await db.insert_stats(_repo(stars=8), D1, [])
        await db.insert_stats(_repo(stars=2), D1, [])
        totals = await db.get_repo_totals("foo/bar")
        assert totals.stars == 8


@pytest.mark.asyncio
async def test_hidden_repos(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        await db.insert_repo(_repo(1, "foo/a"))
        await db.insert_repo(_repo(2, "foo/b"))
        await db.insert_stats(_repo(1, "foo/a"), D1, [])
        await db.mark_repo_hidden([1])
        assert await db.get_repos_ids() == [2]
        assert await db.get_repo_totals("foo/a") is None

        await db.mark_repo_hidden([])
        assert await db.get_repos_ids() == [2]

        await db.insert_repo(_repo(1, "foo/a"))
        assert sorted(await db.get_repos_ids()) == [1, 2]


@pytest.mark.asyncio
async def test_get_repos_sorted(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        for repo_id, name in [(1, "foo/c"), (2, "foo/a"), (3, "foo/b")]:
            repo = _repo(repo_id, name)
            await db.insert_repo(repo)
            await db.insert_stats(repo, D1, [])
        asc = await db.get_repos(RepoFilter(sort=RepoSort.NAME, direction=Direction.ASC))
        desc = await db.get_repos(RepoFilter(sort=RepoSort.NAME, direction=Direction.DESC))
        assert [r.name for r in asc] == ["foo/a", "foo/b", "foo/c"]
        assert [r.name for r in desc] == list(reversed([r.name for r in asc]))


@pytest.mark.asyncio
async def test_get_metrics_skips_empty_days(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        repo = _repo()
        await db.insert_repo(repo)
        await db.insert_stats(repo, D1, [])
        await db.insert_views(repo, RepoViews(0, 0, [TrafficDaily(D3, 2, 5)]))
        await db.insert_clones(repo, RepoClones(0, 0, [TrafficDaily(D2, 1, 1)]))
        metrics = await db.get_metrics("foo/bar")
        assert [m.date for m in metrics] == [D2, D3]
        assert metrics[1].views_count == 5


@pytest.mark.asyncio
async def test_get_stars_fills_gaps(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        repo = _repo()
        await db.insert_repo(repo)
        await db.insert_clones(repo, RepoClones(0, 0, [TrafficDaily(D1, 1, 1)]))
        await db.insert_stars(1, [(D2, 3, 3)])
        await db.insert_clones(repo, RepoClones(0, 0, [TrafficDaily(D3, 1, 1)]))
        stars = await db.get_stars("foo/bar")
        assert [(s.date, s.stars) for s in stars] == [(D2, 3), (D3, 3)]
        assert all(s.stars > 0 for s in stars)


@pytest.mark.asyncio
async def test_insert_stars_unknown_repo_fails(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        with pytest.raises(sqlite3.IntegrityError):
            await db.insert_stars(99, [(D1, 1, 1)])


@pytest.mark.asyncio
async def test_referrer_deltas_sum_to_latest(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        repo = _repo()
        await db.insert_repo(repo)
        await db.insert_referrers(repo, D1, [RepoReferrer("google.com", 10, 4)])
        await db.insert_referrers(repo, D2, [RepoReferrer("google.com", 15, 6)])
        await db.insert_referrers(repo, D2, [RepoReferrer("bing.com", 1, 1)])
        await db.update_deltas()
        items = await db.get_popular_items("foo/bar", PopularKind.REFS, PopularFilter())
        by_name = {i.name: i for i in items}
        assert (by_name["google.com"].count, by_name["google.com"].uniques) == (15, 6)
        assert [i.name for i in items] == ["google.com", "bing.com"]


@pytest.mark.asyncio
async def test_popular_paths_period_and_sort(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        repo = _repo()
        await db.insert_repo(repo)
        old = "2000-01-01T00:00:00Z"
        await db.insert_paths(repo, old, [RepoPopularPath("/foo/bar/old", "Old", 3, 2)])
        await db.insert_paths(repo, _today(), [RepoPopularPath("/foo/bar", "Home", 5, 4)])
        await db.update_deltas()

        recent = await db.get_popular_items(
            "foo/bar", PopularKind.PATH, PopularFilter(period=7)
        )
        assert [i.name for i in recent] == ["/foo/bar"]

        everything = await db.get_popular_items(
            "foo/bar",
            PopularKind.PATH,
            PopularFilter(sort=PopularSort.NAME, direction=Direction.ASC, period=-1),
        )
        assert [i.name for i in everything] == ["/foo/bar", "/foo/bar/old"]


@pytest.mark.asyncio
async def test_repos_to_sync(tmp_path):
    async with await DbClient.open(_path(tmp_path)) as db:
        await db.insert_repo(_repo(1, "foo/a", archived=True))
        await db.insert_repo(_repo(2, "foo/b"))
        pending = await db.repos_to_sync()
        assert sorted(r.id for r in pending) == [1, 2]
        assert all(not r.stars_synced for r in pending)
        assert next(r for r in pending if r.id == 1).archived is True

        await db.mark_repo_stars_synced(1)
        assert [r.name for r in await db.repos_to_sync()] == ["foo/b"]