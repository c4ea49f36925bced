import pytest
import pytest_asyncio

from ghstats.db_client import DbClient, RepoFilter
from ghstats.filters import GhsFilter
from ghstats.gh_client import APP_VERSION, GhClient, Repo
from ghstats.state import AppState, env_bool


def make_repo(repo_id, name, stars=0, fork=False, archived=False):
    return Repo(
        id=repo_id,
        full_name=name,
        stargazers_count=stars,
        forks_count=0,
        watchers_count=0,
        open_issues_count=0,
        fork=fork,
        archived=archived,
    )


@pytest_asyncio.fixture
async def state(tmp_path):
    db = await DbClient.open(str(tmp_path / "ghstats.db"))
    st = AppState(db=db, gh=GhClient("token"), filter=GhsFilter.parse(""))
    yield st
    await st.close()


async def add_repo(db, repo_id, name, **kwargs):
    repo = make_repo(repo_id, name, **kwargs)
    await db.insert_repo(repo)
    await db.insert_stats(repo, "2024-01-01T00:00:00Z", [])


@pytest.mark.parametrize(
    ("value", "expected"),
    [("true", True), ("TRUE", True), ("1", True), ("yes", False), ("0", False), ("", False)],
)
def test_env_bool_values(monkeypatch, value, expected):
    monkeypatch.setenv("GHS_TEST_FLAG", value)
    assert env_bool("GHS_TEST_FLAG") is expected


def test_env_bool_unset(monkeypatch):
    monkeypatch.delenv("GHS_TEST_FLAG", raising=False)
    assert env_bool("GHS_TEST_FLAG") is False


@pytest.mark.asyncio
async def test_create_requires_token(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    with pytest.raises(RuntimeError, match="GITHUB_TOKEN"):
        await AppState.create()


@pytest.mark.asyncio
async def test_create_reads_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "ghstats.db"
    monkeypatch.setenv("GITHUB_TOKEN", "token")
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.setenv("GHS_FILTER", "foo/*,!fork")
    monkeypatch.setenv("GHS_INCLUDE_PRIVATE", "1")

    st = await AppState.create()
    try:
        assert st.filter == GhsFilter.parse("foo/*,!fork")
        assert st.include_private is True
        assert st.last_release == APP_VERSION
        assert await st.db.get_repos_ids() == []
        assert db_path.exists()
    finally:
        await st.close()


@pytest.mark.asyncio
async def test_get_repos_filtered_applies_rules(state):
    await add_repo(state.db, 1, "foo/bar")
    await add_repo(state.db, 2, "foo/baz")
    await add_repo(state.db, 3, "abc/xyz")
    state.filter = GhsFilter.parse("*,!abc/xyz")

    repos = await state.get_repos_filtered(RepoFilter())
    assert {r.name for r in repos} == {"foo/bar", "foo/baz"}


@pytest.mark.asyncio
async def test_get_repos_filtered_search_is_case_insensitive(state):
    await add_repo(state.db, 1, "foo/bar")
    await add_repo(state.db, 2, "foo/baz")

    repos = await state.get_repos_filtered(RepoFilter(q="BAZ"))
    assert [r.name for r in repos] == ["foo/baz"]

    repos = await state.get_repos_filtered(RepoFilter(q=""))
    assert {r.name for r in repos} == {"foo/bar", "foo/baz"}


@pytest.mark.asyncio
async def test_get_repos_filtered_by_owner(state):
    await add_repo(state.db, 1, "foo/bar")
    await add_repo(state.db, 2, "abc/xyz")

    repos = await state.get_repos_filtered(RepoFilter(owner="abc"))
    assert [r.name for r in repos] == ["abc/xyz"]

    repos = await state.get_repos_filtered(RepoFilter(owner="nobody"))
    assert repos == []


@pytest.mark.asyncio
async def test_get_repos_filtered_sort_order(state):
    await add_repo(state.db, 1, "foo/bar", stars=5)
    await add_repo(state.db, 2, "abc/xyz", stars=9)

    repos = await state.get_repos_filtered(RepoFilter(sort="stars", direction="asc"))
    assert [r.name for r in repos] == ["foo/bar", "abc/xyz"]


@pytest.mark.asyncio
async def test_get_owners_sorted_and_distinct(state):
    await add_repo(state.db, 1, "foo/bar")
    await add_repo(state.db, 2, "foo/baz")
    await add_repo(state.db, 3, "abc/xyz")

    assert await state.get_owners() == ["abc", "foo"]


@pytest.mark.asyncio
async def test_get_owners_respects_filter(state):
    await add_repo(state.db, 1, "foo/bar")
    await add_repo(state.db, 2, "abc/xyz", fork=True)
    state.filter = GhsFilter.parse("*,!fork")

    assert await state.get_owners() == ["foo"]