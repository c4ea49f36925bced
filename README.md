# ghstats

A library for keeping the history of GitHub repositories' traffic. GitHub only
shows the last 14 days of clones, views, referring sites and popular paths;
ghstats fetches them from the GitHub API and stores them in a local SQLite
database, so the numbers are never lost, and renders them as HTML pages and JSON.

## Modules

- `ghstats.gh_client` — `GhClient`, an asynchronous GitHub API client (built on
  httpx) for repositories, open pull requests, traffic (clones, views, popular
  paths, referrers), stargazers and the latest release tag. Paginated endpoints
  are followed page by page, 100 items at a time.
- `ghstats.db_client` — `DbClient`, the SQLite store. `DbClient.open(path)`
  creates and migrates the database. It stores daily stats, traffic, referrers
  and paths, keeping the largest value seen per day, computes day-over-day
  deltas (`update_deltas`) and answers queries for repo totals, daily metrics,
  star history and popular items, with sorting via `RepoFilter` / `PopularFilter`.
- `ghstats.filters` — `GhsFilter`, the repository selection rules, and
  `truncate_middle`.
- `ghstats.state` — `AppState`, holding the database, API client and filter.
  `AppState.create()` builds it from environment variables.
- `ghstats.sync` — `update_metrics(state)` refreshes every tracked repository,
  hides repositories that no longer appear in the account, updates deltas and
  loads star history (`sync_stars`), at most about 1000 stargazer pages per run.
- `ghstats.api` — `api_get_repos`, a Starlette endpoint returning the tracked
  repositories with total stars, forks, views and clones as JSON.
- `ghstats.html` — `index` and `repo_page`, Starlette endpoints rendering the
  repository list and a per-repository page with charts and tables of referring
  sites and popular paths (last 7, 14, 30, 90 days or all time). They answer
  htmx partial requests by the `hx-target` header.
- `ghstats.errors` — `AppError`, with `status_code` and a plain-text `body`, and
  `not_found()`.

## Configuration

`AppState.create()` and the HTML pages read these environment variables:

| Variable              | Default              | Meaning                                              |
|-----------------------|----------------------|------------------------------------------------------|
| `GITHUB_TOKEN`        | —                    | GitHub API token; `RuntimeError` if missing.         |
| `DB_PATH`             | `./data/ghstats.db`  | Path of the SQLite database, created if missing.     |
| `GHS_FILTER`          | empty (all repos)    | Which repositories to track; see below.              |
| `GHS_INCLUDE_PRIVATE` | `false`              | `true` or `1` to also track private repositories.    |
| `GHS_CUSTOM_LINKS`    | empty                | Extra header links as `Title|target,Title|target`.   |

### Repository filter

`GHS_FILTER` (parsed by `GhsFilter.parse`) is a comma-separated list of rules,
case-insensitive:

- `owner/name` — include this repository;
- `owner/*` — include every repository of this owner;
- `!owner/name`, `!owner/*` — exclude;
- `*` — include everything not otherwise excluded;
- `!fork` — skip forks, unless listed by exact name;
- `!archived` — skip archived repositories, unless listed by exact name.

Exclusions win over inclusions, whatever their order. With no repository rules
at all, every repository is included.

## Usage

Collecting metrics once:

```python
import asyncio

from ghstats.state import AppState
from ghstats.sync import update_metrics


async def run() -> None:
    state = await AppState.create()
    try:
        await update_metrics(state)
    finally:
        await state.close()


asyncio.run(run())
```

Serving the pages: the endpoints look for the state at
`request.app.state.app_state`, and raise `AppError` for bad queries and unknown
repositories, so the application should turn it into a response:

```python
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from ghstats.api import api_get_repos
from ghstats.errors import AppError
from ghstats.html import index, repo_page


async def on_app_error(request, exc: AppError):
    return PlainTextResponse(exc.body, status_code=exc.status_code)


def build(state) -> Starlette:
    app = Starlette(
        routes=[
            Route("/api/repos", api_get_repos),
            Route("/", index),
            Route("/{owner}/{repo}", repo_page),
        ],
        exception_handlers={AppError: on_app_error},
    )
    app.state.app_state = state
    return app
```

Run the resulting application with any ASGI server.

## What the package does not do

It has no command to start, no ready-made web application, no health endpoint
and no scheduler: wiring the endpoints into an application, serving it and
calling `update_metrics` every hour are left to the caller. The page styles,
chart scripts and favicon are read from a `ghstats/assets` directory, which the
package does not ship; without it the pages render without them.