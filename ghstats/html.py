"""Server-rendered HTML pages."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from markupsafe import Markup, escape
from starlette.datastructures import QueryParams
from starlette.requests import Request
from starlette.responses import HTMLResponse

from ghstats.api import _parse_repo_filter
from ghstats.db_client import (
    DbClient,
    Direction,
    PopularFilter,
    PopularKind,
    PopularSort,
    RepoFilter,
    RepoSort,
    RepoTotals,
)
from ghstats.errors import AppError, not_found
from ghstats.filters import truncate_middle
from ghstats.gh_client import APP_NAME, APP_VERSION
from ghstats.state import AppState

NavItem = tuple[str, "str | None"]

_ASSETS_DIR = Path(__file__).parent / "assets"
_VOID_TAGS = frozenset({"meta", "link", "input"})

_PERIODS: tuple[tuple[int, str], ...] = (
    (7, "Last 7 days"),
    (14, "Last 14 days"),
    (30, "Last 30 days"),
    (90, "Last 90 days"),
    (-1, "All time"),
)
_DEFAULT_PERIOD = 7

_CDN_STYLES = ("https://unpkg.com/@picocss/pico@2.0",)
_CDN_SCRIPTS = (
    "https://unpkg.com/chart.js@4.4",
    "https://unpkg.com/luxon@3.5",
    "https://unpkg.com/chartjs-adapter-luxon@1.3",
    "https://unpkg.com/htmx.org@2.0",
)


# MARK: Markup helpers


def _tag(name: str, attrs: Mapping[str, Any] | None = None, *children: Any) -> Markup:
    """Render an element; text children and attribute values are escaped."""
    parts = [name]
    for key, value in (attrs or {}).items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(key)
        else:
            parts.append(f'{key}="{escape(value)}"')
    opening = Markup(f"<{' '.join(parts)}>")
    if name in _VOID_TAGS:
        return opening
    return opening + Markup("").join(children) + Markup(f"</{name}>")


def _join(items: Sequence[Any]) -> Markup:
    return Markup("").join(items)


def _classes(*names: str | None) -> str:
    return " ".join(n for n in names if n)


def _num(value: int) -> str:
    return f"{value:,}"


def _asset(name: str) -> str:
    path = _ASSETS_DIR / name
    return path.read_text(encoding="utf-8") if path.is_file() else ""


def _hx_target(request: Request) -> str | None:
    return request.headers.get("hx-target")


def _sort_arrow(direction: Direction) -> Markup:
    return _tag("span", {"class": "ml-0.5"}, "↑" if direction == Direction.ASC else "↓")


def _parse_popular_filter(params: QueryParams) -> PopularFilter:
    flt = PopularFilter()
    try:
        if "sort" in params:
            flt.sort = PopularSort(params["sort"])
        if "direction" in params:
            flt.direction = Direction(params["direction"])
        if "period" in params:
            flt.period = int(params["period"])
    except ValueError as exc:
        raise AppError(f"Failed to deserialize query string: {exc}") from exc
    return flt


# MARK: Layout


def get_custom_links() -> list[tuple[str, str]]:
    """Header links from GHS_CUSTOM_LINKS, given as "name|url" pairs separated by commas."""
    links = []
    for entry in os.environ.get("GHS_CUSTOM_LINKS", "").split(","):
        parts = entry.split("|")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            continue
        links.append((parts[0], parts[1]))
    return links


def maybe_url(item: NavItem) -> Markup:
    """A link with a shortened title when the item has a URL, plain text otherwise."""
    name, url = item
    if url is not None:
        return _tag("a", {"href": url}, truncate_middle(name, 40))
    return _tag("span", None, name)


def base(state: AppState, navs: Sequence[NavItem], inner: Markup) -> Markup:
    """Wrap page content in the common document layout."""
    last_release = state.last_release
    is_new_release = last_release != APP_VERSION
    title = f"{navs[-1][0]} · {APP_NAME}" if navs else APP_NAME

    head: list[Markup] = [
        _tag("meta", {"charset": "utf-8"}),
        _tag("meta", {"name": "viewport", "content": "width=device-width, initial-scale=1"}),
        _tag("title", None, title),
    ]
    favicon = _asset("favicon.svg")
    if favicon:
        favicon = favicon.replace("\n", "").replace('"', "%22").replace("#", "%23")
        href = Markup(f"data:image/svg+xml,{favicon}")
        head.append(_tag("link", {"rel": "icon", "type": "image/svg+xml", "href": href}))
    head.extend(_tag("link", {"rel": "stylesheet", "href": url}) for url in _CDN_STYLES)
    head.extend(_tag("script", {"src": url}) for url in _CDN_SCRIPTS)
    head.append(_tag("style", None, Markup(_asset("app.css"))))

    crumbs = [_tag("li", None, _tag("a", {"href": "/"}, "Repos"))]
    crumbs.extend(_tag("li", None, maybe_url(item)) for item in navs)
    nav = _tag("nav", {"aria-label": "breadcrumb"}, _tag("ul", None, _join(crumbs)))

    custom_links = _tag(
        "div",
        {"class": "flex-row items-center gap-4 pr-4", "style": "font-size: 18px;"},
        _join([_tag("a", {"href": url, "target": "_blank"}, name) for name, url in get_custom_links()]),
    )

    right: list[Markup] = [custom_links]
    if is_new_release:
        right.append(
            _tag(
                "span",
                {
                    "class": "no-underline",
                    "data-tooltip": f"New release available! v{last_release}",
                    "data-placement": "bottom",
                },
                "🚨",
            )
        )
    right.append(
        _tag(
            "span",
            {
                "class": "secondary flex-row items-center gap-2 no-underline font-mono",
                "style": "font-size: 18px;",
            },
            f"{APP_NAME} v{APP_VERSION}",
        )
    )

    header = _tag(
        "div",
        {"class": "flex-row items-center gap-2 justify-between"},
        nav,
        _tag("div", {"class": "flex-row items-center gap-2"}, _join(right)),
    )
    main = _tag("main", {"class": "container-fluid pt-0 main-box"}, header, inner)
    return _tag("html", None, _tag("head", None, _join(head)), _tag("body", None, main))


# MARK: Popular tables


@dataclass(frozen=True)
class _TablePopularItem:
    item: NavItem
    uniques: int
    count: int


def _popular_filter_url(repo: str, qs: PopularFilter, col: PopularSort) -> str:
    flip = qs.sort == col and qs.direction == Direction.DESC
    direction = "asc" if flip else "desc"
    return f"/{repo}?sort={col.value}&direction={direction}&period={qs.period}"


async def popular_table(
    db: DbClient, repo: str, kind: PopularKind, qs: PopularFilter
) -> Markup:
    """Table of referring sites or popular paths of a repo."""
    rows = await db.get_popular_items(repo, kind, qs)
    if kind is PopularKind.REFS:
        items = [_TablePopularItem((x.name, None), x.uniques, x.count) for x in rows]
        name, html_id = "Referring sites", "refs_table"
    else:
        prefix = f"/{repo}"
        items = []
        for x in rows:
            shown = x.name.replace(prefix, "") or "/"
            items.append(
                _TablePopularItem((shown, f"https://github.com{x.name}"), x.uniques, x.count)
            )
        name, html_id = "Popular paths", "path_table"

    cols: list[tuple[str, Callable[[_TablePopularItem], Any], PopularSort]] = [
        (name, lambda x: maybe_url(x.item), PopularSort.NAME),
        ("Views", lambda x: _num(x.count), PopularSort.COUNT),
        ("Unique", lambda x: _num(x.uniques), PopularSort.UNIQUES),
    ]

    heads = []
    for idx, (title, _, sort) in enumerate(cols):
        children: list[Any] = [title]
        if sort == qs.sort:
            children.append(_sort_arrow(qs.direction))
        heads.append(
            _tag(
                "th",
                {
                    "scope": "col",
                    "class": _classes("cursor-pointer", "select-none", "text-right" if idx else None),
                    "hx-trigger": "click",
                    "hx-get": _popular_filter_url(repo, qs, sort),
                    "hx-target": f"#{html_id}",
                    "hx-swap": "outerHTML",
                },
                *children,
            )
        )

    body: list[Markup] = []
    if not items:
        body.append(
            _tag(
                "tr",
                None,
                _tag("td", {"colspan": len(cols), "class": "text-center"}, "No data for given period"),
            )
        )
    for item in items:
        cells = [
            _tag("td", {"class": "text-right" if idx else None}, render(item))
            for idx, (_, render, _) in enumerate(cols)
        ]
        body.append(_tag("tr", None, _join(cells)))

    table = _tag(
        "table",
        {"class": "mb-0"},
        _tag("thead", None, _tag("tr", None, _join(heads))),
        _tag("tbody", None, _join(body)),
    )
    return _tag("article", {"id": html_id, "class": "p-0 mb-0 table-popular"}, table)


async def repo_popular_tables(db: DbClient, repo: str, filter: PopularFilter) -> Markup:
    """Both popular tables of a repo side by side."""
    refs = await popular_table(db, repo, PopularKind.REFS, filter)
    paths = await popular_table(db, repo, PopularKind.PATH, filter)
    return _tag("div", {"id": "popular_tables", "class": "grid"}, refs, paths)


# MARK: Pages


def _app_state(request: Request) -> AppState:
    return request.app.state.app_state


def _stat_card(title: str, uniques: int, count: int) -> Markup:
    return _tag(
        "article",
        {"class": "flex-col"},
        _tag("h6", {"class": "mb-0"}, title),
        _tag(
            "h4",
            {"class": "mb-0 grow flex-row items-center"},
            _num(uniques),
            " / ",
            _num(count),
        ),
    )


def _to_json(items: Sequence[Any]) -> str:
    return json.dumps([asdict(x) for x in items], separators=(",", ":"), ensure_ascii=False)


async def repo_page(request: Request) -> HTMLResponse:
    """Page with charts and popular tables of one repo."""
    state = _app_state(request)
    db = state.db
    repo = f"{request.path_params['owner']}/{request.path_params['repo']}"
    qs = _parse_popular_filter(request.query_params)
    if all(days != qs.period for days, _ in _PERIODS):
        qs.period = _DEFAULT_PERIOD

    target = _hx_target(request)
    if target == "refs_table":
        return HTMLResponse(str(await popular_table(db, repo, PopularKind.REFS, qs)))
    if target == "path_table":
        return HTMLResponse(str(await popular_table(db, repo, PopularKind.PATH, qs)))
    if target == "popular_tables":
        return HTMLResponse(str(await repo_popular_tables(db, repo, qs)))

    totals = await db.get_repo_totals(repo)
    if totals is None or not state.filter.is_included(totals.name, totals.fork, totals.archived):
        raise not_found()

    metrics = await db.get_metrics(repo)
    stars = await db.get_stars(repo)

    summary = _tag(
        "article",
        {"class": "mb-0"},
        _tag(
            "hgroup",
            {"class": "flex-row flex-col gap-2"},
            _tag(
                "h3",
                None,
                _tag("a", {"href": f"https://github.com/{repo}", "class": "contrast"}, totals.name),
            ),
            _tag("p", None, totals.description or ""),
        ),
    )
    cards = _tag(
        "div",
        {"class": "grid"},
        _stat_card("Total Clones", totals.clones_uniques, totals.clones_count),
        _stat_card("Total Views", totals.views_uniques, totals.views_count),
    )
    top = _tag(
        "div",
        {"class": "grid", "style": "grid-template-columns: 1fr 2fr;"},
        _tag(
            "div",
            {"class": "grid", "style": "grid-template-rows: 2fr 1fr; grid-template-columns: 1fr;"},
            summary,
            cards,
        ),
        _tag(
            "article",
            {"class": "flex-col"},
            _tag("h6", None, "Stars"),
            _tag("div", {"class": "grow"}, _tag("canvas", {"id": "chart_stars"})),
        ),
    )
    charts = _tag(
        "div",
        {"class": "grid"},
        _join(
            [
                _tag("article", None, _tag("h6", None, title), _tag("canvas", {"id": canvas_id}))
                for title, canvas_id in (("Clones", "chart_clones"), ("Views", "chart_views"))
            ]
        ),
    )
    script = Markup(
        f"const Metrics = {_to_json(metrics)};"
        f"const Stars = {_to_json(stars)};"
        "renderMetrics('chart_clones', Metrics, 'clones_uniques', 'clones_count');"
        "renderMetrics('chart_views', Metrics, 'views_uniques', 'views_count');"
        "renderStars('chart_stars', Stars);"
    )
    period_select = _tag(
        "select",
        {
            "name": "period",
            "hx-get": f"/{repo}",
            "hx-target": "#popular_tables",
            "hx-swap": "outerHTML",
        },
        _join(
            [
                _tag("option", {"value": days, "selected": days == qs.period}, title)
                for days, title in _PERIODS
            ]
        ),
    )

    inner = _join(
        [
            top,
            charts,
            _tag("script", None, Markup(_asset("app.js"))),
            _tag("script", None, script),
            period_select,
            await repo_popular_tables(db, repo, qs),
        ]
    )
    return HTMLResponse(str(base(state, [(repo, None)], inner)))


def _repo_filter_url(qs: RepoFilter, col: RepoSort) -> str:
    flip = qs.sort == col and qs.direction == Direction.DESC
    url = f"/?sort={col.value}&direction={'asc' if flip else 'desc'}"
    if qs.q:
        url += f"&q={qs.q}"
    if qs.owner:
        url += f"&owner={qs.owner}"
    return url


_REPO_COLUMNS: tuple[tuple[str, Callable[[RepoTotals], Any], RepoSort], ...] = (
    ("Name", lambda x: _tag("a", {"href": f"/{x.name}"}, x.name), RepoSort.NAME),
    ("Issues", lambda x: _num(x.issues), RepoSort.ISSUES),
    ("PRs", lambda x: _num(x.prs), RepoSort.PRS),
    ("Forks", lambda x: _num(x.forks), RepoSort.FORKS),
    ("Clones", lambda x: _num(x.clones_count), RepoSort.CLONES),
    ("Stars", lambda x: _num(x.stars), RepoSort.STARS),
    ("Views", lambda x: _num(x.views_count), RepoSort.VIEWS),
)


def _sort_inputs(qs: RepoFilter, oob: bool) -> Markup:
    swap = "true" if oob else None
    return _join(
        [
            _tag(
                "input",
                {
                    "type": "hidden",
                    "id": "filter_sort",
                    "name": "sort",
                    "value": RepoSort(qs.sort).value,
                    "hx-swap-oob": swap,
                },
            ),
            _tag(
                "input",
                {
                    "type": "hidden",
                    "id": "filter_direction",
                    "name": "direction",
                    "value": Direction(qs.direction).value,
                    "hx-swap-oob": swap,
                },
            ),
        ]
    )


async def index(request: Request) -> HTMLResponse:
    """Page listing the tracked repos."""
    state = _app_state(request)
    qs = _parse_repo_filter(request.query_params)
    owners = await state.get_owners()
    repos = await state.get_repos_filtered(qs)

    heads = []
    for title, _, sort in _REPO_COLUMNS:
        children: list[Any] = [title]
        if sort == qs.sort:
            children.append(_sort_arrow(qs.direction))
        heads.append(
            _tag(
                "th",
                {
                    "scope": "col",
                    "class": "cursor-pointer select-none",
                    "hx-trigger": "click",
                    "hx-get": _repo_filter_url(qs, sort),
                    "hx-target": "#repos_table",
                    "hx-swap": "outerHTML",
                },
                *children,
            )
        )
    rows = [
        _tag("tr", None, _join([_tag("td", None, render(repo)) for _, render, _ in _REPO_COLUMNS]))
        for repo in repos
    ]
    table_html = _tag(
        "table",
        {"id": "repos_table"},
        _tag("thead", None, _tag("tr", None, _join(heads))),
        _tag("tbody", None, _join(rows)),
    )

    if _hx_target(request) == "repos_table":
        return HTMLResponse(str(table_html + _sort_inputs(qs, oob=True)))

    cur_q = qs.q or ""
    cur_owner = qs.owner or ""

    controls: list[Markup] = [_sort_inputs(qs, oob=False)]
    if len(owners) > 1:
        options = [_tag("option", {"value": "", "selected": not cur_owner}, "All owners")]
        options.extend(
            _tag("option", {"value": owner, "selected": owner == cur_owner}, owner)
            for owner in owners
        )
        controls.append(
            _tag(
                "select",
                {
                    "name": "owner",
                    "class": "mb-0",
                    "style": (
                        "width: auto; height: calc(1.5em + 0.5rem + 2px); "
                        "padding: 0.25rem 2rem 0.25rem 0.5rem; "
                        "background-position: center right 0.25rem; background-size: 0.75rem auto;"
                    ),
                    "hx-get": "/",
                    "hx-target": "#repos_table",
                    "hx-swap": "outerHTML",
                    "hx-include": "[name='q'], #filter_sort, #filter_direction",
                },
                _join(options),
            )
        )
    controls.append(
        _tag(
            "input",
            {
                "type": "search",
                "name": "q",
                "value": cur_q,
                "placeholder": "Search repos…",
                "class": "mb-0",
                "style": "padding: 0.25rem 0.5rem 0.25rem 2.75rem; height: auto;",
                "hx-get": "/",
                "hx-trigger": "keyup changed delay:300ms, search",
                "hx-target": "#repos_table",
                "hx-swap": "outerHTML",
                "hx-include": "[name='owner'], #filter_sort, #filter_direction",
            },
        )
    )

    inner = _tag("div", {"class": "flex-row gap-4 mb-0"}, _join(controls)) + table_html
    return HTMLResponse(str(base(state, [], inner)))