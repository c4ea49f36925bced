"""SQLite storage for repository metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Iterable, Sequence

import aiosqlite

from ghstats.gh_client import (
    PullRequest,
    Repo,
    RepoClones,
    RepoPopularPath,
    RepoReferrer,
    RepoViews,
)

log = logging.getLogger(__name__)

_COUNTER = "INTEGER NOT NULL DEFAULT 0"
_FLAG = "BOOLEAN DEFAULT FALSE"
_DAILY_KEY = ("repo_id INTEGER NOT NULL", "date TEXT NOT NULL")
_LATEST_COLS = ("stars", "forks", "watchers", "issues", "prs")
_TRAFFIC_COLS = ("clones_count", "clones_uniques", "views_count", "views_uniques")
_POPULAR_COLS = ("count", "uniques", "count_delta", "uniques_delta")


# MARK: Schema


def _counters(names: Iterable[str]) -> list[str]:
    return [f"{name} {_COUNTER}" for name in names]


def _create(name: str, columns: Iterable[str], key: Sequence[str] = ()) -> str:
    body = list(columns)
    if key:
        body.append(f"PRIMARY KEY ({', '.join(key)})")
    return f"CREATE TABLE IF NOT EXISTS {name} ({', '.join(body)})"


def _add_column(table: str, spec: str) -> str:
    return f"ALTER TABLE {table} ADD COLUMN {spec}"


_MIGRATIONS: tuple[tuple[str, ...], ...] = (
    (
        _create(
            "repos",
            ["id INTEGER PRIMARY KEY", "name TEXT NOT NULL",
             "description TEXT DEFAULT NULL", f"archived {_FLAG}"],
        ),
        _create(
            "repo_stats",
            [*_DAILY_KEY, *_counters(_LATEST_COLS[:-1]), *_counters(_TRAFFIC_COLS)],
            ("repo_id", "date"),
        ),
        _create(
            "repo_referrers",
            [*_DAILY_KEY, "referrer TEXT NOT NULL", *_counters(_POPULAR_COLS)],
            ("repo_id", "date", "referrer"),
        ),
        _create(
            "repo_popular_paths",
            [*_DAILY_KEY, "path TEXT NOT NULL", "title TEXT NOT NULL",
             *_counters(_POPULAR_COLS)],
            ("repo_id", "date", "path"),
        ),
    ),
    # "hidden" keeps repos that vanished from the account out of the UI and updates
    tuple(_add_column("repos", f"{c} {_FLAG}") for c in ("stars_synced", "fork", "hidden")),
    (_add_column("repo_stats", f"prs {_COUNTER}"),),
)


async def _migrate(db: aiosqlite.Connection) -> None:
    async with db.execute("PRAGMA user_version") as cur:
        row = await cur.fetchone()
    version = row[0] if row else 0

    for target, statements in enumerate(_MIGRATIONS, start=1):
        if version >= target:
            continue
        log.info("running migration to v%d", target)
        for statement in statements:
            await db.execute(statement)
        await db.execute(f"PRAGMA user_version = {target}")


def _upsert(
    table: str,
    columns: Sequence[str],
    conflict: Sequence[str],
    *,
    keep_max: Sequence[str] = (),
    overwrite: Sequence[str] = (),
    extra: Sequence[str] = (),
    values: str | None = None,
) -> str:
    """Build an INSERT that merges into an existing row on key conflict."""
    updates = [f"{c} = MAX(t.{c}, excluded.{c})" for c in keep_max]
    updates += [f"{c} = excluded.{c}" for c in overwrite]
    updates += list(extra)
    return (
        f"INSERT INTO {table} AS t ({', '.join(columns)}) "
        f"VALUES ({values or ', '.join('?' for _ in columns)}) "
        f"ON CONFLICT({', '.join(conflict)}) DO UPDATE SET {', '.join(updates)}"
    )


_UPSERT_REPO = _upsert(
    "repos",
    ("id", "name", "description", "archived", "fork"),
    ("id",),
    overwrite=("name", "description", "archived", "fork"),
    extra=("hidden = FALSE",),
)
_UPSERT_STATS = _upsert(
    "repo_stats", ("repo_id", "date", *_LATEST_COLS), ("repo_id", "date"),
    keep_max=_LATEST_COLS,
)
_UPSERT_STARS = _upsert(
    "repo_stats", ("repo_id", "date", "stars"), ("repo_id", "date"),
    keep_max=("stars",),
    values="(SELECT id FROM repos WHERE id = ?), ?, ?",
)
_UPSERT_CLONES = _upsert(
    "repo_stats", ("repo_id", "date", *_TRAFFIC_COLS[:2]), ("repo_id", "date"),
    keep_max=_TRAFFIC_COLS[:2],
)
_UPSERT_VIEWS = _upsert(
    "repo_stats", ("repo_id", "date", *_TRAFFIC_COLS[2:]), ("repo_id", "date"),
    keep_max=_TRAFFIC_COLS[2:],
)
_UPSERT_REFERRERS = _upsert(
    "repo_referrers", ("repo_id", "date", "referrer", "count", "uniques"),
    ("repo_id", "date", "referrer"),
    keep_max=("count", "uniques"),
)
_UPSERT_PATHS = _upsert(
    "repo_popular_paths", ("repo_id", "date", "path", "title", "count", "uniques"),
    ("repo_id", "date", "path"),
    keep_max=("count", "uniques"),
)

# latest.* relies on SQLite taking bare columns from the row holding MAX(date)
_TOTAL_QUERY = (
    "SELECT r.id, r.name, r.description, r.fork, r.archived, latest.date, "
    + ", ".join(f"latest.{c}" for c in _LATEST_COLS)
    + ", "
    + ", ".join(f"sums.{c}" for c in _TRAFFIC_COLS)
    + " FROM repos r JOIN (SELECT repo_id, "
    + ", ".join(f"SUM({c}) AS {c}" for c in _TRAFFIC_COLS)
    + " FROM repo_stats GROUP BY repo_id) sums ON sums.repo_id = r.id"
    + " JOIN (SELECT repo_id, MAX(date) AS date, "
    + ", ".join(_LATEST_COLS)
    + " FROM repo_stats GROUP BY repo_id) latest ON latest.repo_id = r.id"
)


# MARK: Models


@dataclass(frozen=True)
class RepoTotals:
    id: int
    name: str
    description: str | None
    fork: bool
    archived: bool
    date: str
    stars: int
    forks: int
    watchers: int
    issues: int
    prs: int
    clones_count: int
    clones_uniques: int
    views_count: int
    views_uniques: int

    @classmethod
    def _from_row(cls, row: Any) -> RepoTotals:
        values = {f.name: row[f.name] for f in fields(cls)}
        values["fork"] = bool(values["fork"])
        values["archived"] = bool(values["archived"])
        return cls(**values)


@dataclass(frozen=True)
class RepoMetrics:
    date: str
    clones_count: int
    clones_uniques: int
    views_count: int
    views_uniques: int


@dataclass
class RepoStars:
    date: str
    stars: int


@dataclass(frozen=True)
class RepoPopularItem:
    name: str
    count: int
    uniques: int


@dataclass(frozen=True)
class RepoItem:
    id: int
    name: str
    archived: bool
    stars_synced: bool


# MARK: Filters


class PopularKind(Enum):
    REFS = "refs"
    PATH = "path"

    @property
    def _table(self) -> tuple[str, str]:
        if self is PopularKind.REFS:
            return "repo_referrers", "referrer"
        return "repo_popular_paths", "path"


class _NamedEnum(str, Enum):
    def __str__(self) -> str:
        return self.value


class Direction(_NamedEnum):
    ASC = "asc"
    DESC = "desc"


class RepoSort(_NamedEnum):
    NAME = "name"
    STARS = "stars"
    FORKS = "forks"
    WATCHERS = "watchers"
    ISSUES = "issues"
    PRS = "prs"
    CLONES = "clones_count"
    VIEWS = "views_count"


class PopularSort(_NamedEnum):
    NAME = "name"
    COUNT = "count"
    UNIQUES = "uniques"


@dataclass
class RepoFilter:
    sort: RepoSort = RepoSort.VIEWS
    direction: Direction = Direction.DESC
    q: str | None = None
    owner: str | None = None


@dataclass
class PopularFilter:
    sort: PopularSort = PopularSort.UNIQUES
    direction: Direction = Direction.DESC
    period: int = 0


# MARK: DbClient


class DbClient:
    """Access to the metrics database."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def open(cls, db_path: str) -> DbClient:
        """Open (creating if missing) and migrate the database at db_path."""
        conn = await aiosqlite.connect(db_path, isolation_level=None)
        try:
            conn.row_factory = aiosqlite.Row
            await _migrate(conn)
        except BaseException:
            await conn.close()
            raise
        return cls(conn)

    async def close(self) -> None:
        await self._db.close()

    async def __aenter__(self) -> DbClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _fetch_all(self, qs: str, params: Sequence[Any] = ()) -> list[Any]:
        async with self._db.execute(qs, params) as cur:
            return list(await cur.fetchall())

    async def _execute_many(self, qs: str, rows: Iterable[Sequence[Any]]) -> None:
        await self._db.executemany(qs, list(rows))

    # MARK: Getters

    async def get_repos_ids(self) -> list[int]:
        rows = await self._fetch_all("SELECT id FROM repos WHERE hidden = FALSE")
        return [row[0] for row in rows]

    async def get_repo_totals(self, repo: str) -> RepoTotals | None:
        qs = f"{_TOTAL_QUERY} WHERE r.hidden = FALSE AND r.name = ?"
        rows = await self._fetch_all(qs, (repo,))
        return RepoTotals._from_row(rows[0]) if rows else None

    async def get_metrics(self, repo: str) -> list[RepoMetrics]:
        columns = ", ".join(f"rs.{c}" for c in _TRAFFIC_COLS)
        qs = (
            f"SELECT rs.date, {columns} FROM repo_stats rs "
            "JOIN repos r ON r.id = rs.repo_id "
            "WHERE r.hidden = FALSE AND r.name = ? "
            "AND (rs.clones_count > 0 OR rs.views_count > 0) "
            "ORDER BY rs.date"
        )
        rows = await self._fetch_all(qs, (repo,))
        return [RepoMetrics(row["date"], *(row[c] for c in _TRAFFIC_COLS)) for row in rows]

    async def get_repos(self, filter: RepoFilter) -> list[RepoTotals]:
        sort = RepoSort(filter.sort)
        direction = Direction(filter.direction)
        qs = f"{_TOTAL_QUERY} WHERE r.hidden = FALSE ORDER BY {sort} {direction}"
        return [RepoTotals._from_row(row) for row in await self._fetch_all(qs)]

    async def get_stars(self, repo: str) -> list[RepoStars]:
        qs = (
            "SELECT rs.date, rs.stars FROM repo_stats rs "
            "JOIN repos r ON r.id = rs.repo_id "
            "WHERE r.hidden = FALSE AND r.name = ? ORDER BY rs.date"
        )
        items = [RepoStars(row["date"], row["stars"]) for row in await self._fetch_all(qs, (repo,))]

        # days without a star count carry the previous day's value forward
        prev_stars = 0
        for item in items[1:]:
            if item.stars == 0:
                item.stars = prev_stars
            prev_stars = item.stars

        # traffic can be collected before stars are known; drop such days
        return [x for x in items if x.stars > 0]

    async def get_popular_items(
        self, repo: str, kind: PopularKind, filter: PopularFilter
    ) -> list[RepoPopularItem]:
        table, col = kind._table
        period = int(filter.period)
        time_where = f"date >= date('now', '-{period} day')" if period > 0 else "1=1"
        sort = PopularSort(filter.sort)
        direction = Direction(filter.direction)

        qs = (
            f"SELECT {col} AS name, SUM(count_delta) AS count, SUM(uniques_delta) AS uniques "
            f"FROM {table} rr JOIN repos r ON r.id = rr.repo_id "
            f"WHERE r.hidden = FALSE AND r.name = ? AND {time_where} "
            f"GROUP BY rr.{col} ORDER BY {sort} {direction}"
        )
        rows = await self._fetch_all(qs, (repo,))
        return [RepoPopularItem(row["name"], row["count"], row["uniques"]) for row in rows]

    async def repos_to_sync(self) -> list[RepoItem]:
        qs = (
            "SELECT id, name, archived, stars_synced FROM repos "
            "WHERE stars_synced = FALSE AND hidden = FALSE"
        )
        return [
            RepoItem(row["id"], row["name"], bool(row["archived"]), bool(row["stars_synced"]))
            for row in await self._fetch_all(qs)
        ]

    # MARK: Inserters

    async def insert_repo(self, repo: Repo) -> None:
        """Store a repo; a repo seen again is no longer hidden."""
        await self._db.execute(
            _UPSERT_REPO, (repo.id, repo.full_name, repo.description, repo.archived, repo.fork)
        )

    async def insert_stats(self, repo: Repo, date: str, prs: Sequence[PullRequest]) -> None:
        open_prs = len(prs)
        await self._db.execute(
            _UPSERT_STATS,
            (
                repo.id,
                date,
                repo.stargazers_count,
                repo.forks_count,
                repo.watchers_count,
                repo.open_issues_count - open_prs,
                open_prs,
            ),
        )

    async def insert_stars(self, repo_id: int, stars: Iterable[tuple[str, int, int]]) -> None:
        """Store accumulated star counts given as (date, total, new) tuples."""
        await self._execute_many(_UPSERT_STARS, ((repo_id, date, acc) for date, acc, _ in stars))

    async def insert_clones(self, repo: Repo, clones: RepoClones) -> None:
        await self._execute_many(
            _UPSERT_CLONES, ((repo.id, d.timestamp, d.count, d.uniques) for d in clones.clones)
        )

    async def insert_views(self, repo: Repo, views: RepoViews) -> None:
        await self._execute_many(
            _UPSERT_VIEWS, ((repo.id, d.timestamp, d.count, d.uniques) for d in views.views)
        )

    async def insert_referrers(
        self, repo: Repo, date: str, docs: Iterable[RepoReferrer]
    ) -> None:
        await self._execute_many(
            _UPSERT_REFERRERS, ((repo.id, date, r.referrer, r.count, r.uniques) for r in docs)
        )

    async def insert_paths(
        self, repo: Repo, date: str, docs: Iterable[RepoPopularPath]
    ) -> None:
        await self._execute_many(
            _UPSERT_PATHS, ((repo.id, date, r.path, r.title, r.count, r.uniques) for r in docs)
        )

    # MARK: Updater

    async def update_deltas(self) -> None:
        """Recompute day-over-day growth of referrer and path counters."""
        for kind in PopularKind:
            table, col = kind._table
            qs = (
                "WITH lagged AS ("
                f" SELECT repo_id, date, {col} AS item, uniques, count,"
                " LAG(uniques) OVER w AS prev_uniques,"
                " LAG(count) OVER w AS prev_count"
                f" FROM {table}"
                f" WINDOW w AS (PARTITION BY repo_id, {col} ORDER BY date)"
                ")"
                f" UPDATE {table} SET"
                " uniques_delta = MAX(0, lagged.uniques - COALESCE(lagged.prev_uniques, 0)),"
                " count_delta = MAX(0, lagged.count - COALESCE(lagged.prev_count, 0))"
                " FROM lagged"
                f" WHERE {table}.repo_id = lagged.repo_id AND {table}.date = lagged.date"
                f" AND {table}.{col} = lagged.item"
            )
            await self._db.execute(qs)

    async def mark_repo_hidden(self, repos_ids: Sequence[int]) -> None:
        ids = [int(x) for x in repos_ids]
        marks = ",".join("?" for _ in ids)
        await self._db.execute(f"UPDATE repos SET hidden = TRUE WHERE id IN ({marks})", ids)

    async def mark_repo_stars_synced(self, repo_id: int) -> None:
        await self._db.execute("UPDATE repos SET stars_synced = TRUE WHERE id = ?", (repo_id,))