from __future__ import annotations

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from . import config
from .filters import normalize_iteration_filters
from .github import GitHubProvider
from .models import FilterSpec, Project
from .projection import DONE_COLUMN, build_board
from .state import AppState
from .stub import StubProvider
from .themes import load_theme_presets, select_theme
from .ui import run_ui

log = logging.getLogger('gh_project_board')


def setup_logging(log_path: str, log_level: str = "ERROR") -> logging.Handler:
    """Attach a rotating file handler; the handler level follows ``--log-level``."""
    logger = logging.getLogger('gh_project_board')
    # reset so a second call does not duplicate output
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.DEBUG)
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding='utf-8')
    fh.setLevel(getattr(logging, (log_level or "").upper(), logging.ERROR))
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(fh)
    return fh


def load_dotenv_token(search: Optional[Sequence[str]] = None) -> Optional[str]:
    """Load TOKEN or GITHUB_TOKEN from a .env file (current dir or package dir) if present."""
    candidates = list(search) if search is not None else [os.getcwd(), os.path.dirname(os.path.abspath(__file__))]
    for base in candidates:
        path = os.path.join(base, ".env")
        if not os.path.isfile(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            log.warning("cannot read %s: %s", path, e)
            continue
        for line in lines:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            k, v = line.split('=', 1)
            k = k.strip()
            v = v.strip().strip('"').strip("'")
            if k in ("TOKEN", "GITHUB_TOKEN") and v:
                os.environ.setdefault("GITHUB_TOKEN", v)
                return v
    return None


def parse_project_arg(arg: str) -> Tuple[str, str]:
    """Split ``--project`` into ``(project_id, owner)``.

    A URL such as ``https://github.com/orgs/acme/projects/7`` yields ``("7", "acme")``;
    anything else is returned unchanged with an empty owner.
    """
    parsed = urlparse(arg)
    if parsed.scheme:
        parts = parsed.path.strip("/").split("/")
        for i, part in enumerate(parts):
            if part == "projects" and 0 < i < len(parts) - 1:
                return parts[i + 1], parts[i - 1]
    return arg, ""


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="gh-project-board", description="Terminal board for GitHub Projects")
    ap.add_argument("-p", "--project", default="", help="GitHub Project ID, number or URL")
    ap.add_argument("-o", "--owner", default="", help="Owner (org/user) for the project")
    ap.add_argument("--item-limit", type=int, default=None, help="Maximum number of items to fetch (default: 100)")
    ap.add_argument("--disable-notifications", action="store_true", help="Suppress info-level notifications")
    ap.add_argument("--exclude-done", action="store_true", help="Drop items whose status is Done")
    ap.add_argument("-i", "--iteration", action="append", default=[],
                    help="Iteration filter (repeat, or pass more values after it)")
    ap.add_argument("--config", default=None, help="Path to YAML config")
    ap.add_argument("--log-level", default="ERROR", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("--log-file", default=None, help="Path to the log file")
    ap.add_argument("--theme", default=None, help="Theme preset name")
    ap.add_argument("--discover", action="store_true", help="List open Projects v2 of --owner and exit")
    ap.add_argument("--no-ui", action="store_true", help="Print a board summary and exit")
    ap.add_argument("extra", nargs="*", help=argparse.SUPPRESS)
    return ap


def iteration_tokens(args: argparse.Namespace) -> List[str]:
    """Values given with ``--iteration`` plus any trailing positional values."""
    if args.extra and not args.iteration:
        raise SystemExit(f"unexpected arguments: {' '.join(args.extra)}")
    return normalize_iteration_filters(list(args.iteration) + list(args.extra))


def build_state(args: argparse.Namespace, cfg: config.Config, config_path: str, provider) -> AppState:
    project_arg = args.project or cfg.default_project_id
    project_id, url_owner = parse_project_arg(project_arg)
    owner = args.owner or cfg.default_owner or url_owner
    iterations = iteration_tokens(args) or normalize_iteration_filters(cfg.default_iteration_filters)
    limit = args.item_limit if args.item_limit and args.item_limit > 0 else cfg.default_item_limit
    return AppState(
        project=Project(id=project_id, owner=owner),
        provider=provider,
        config_path=config_path,
        filter=FilterSpec(iterations=iterations),
        card_visibility=cfg.card_field_visibility,
        suppress_hints=args.disable_notifications or cfg.suppress_hints,
        item_limit=limit,
        exclude_done=args.exclude_done or cfg.default_exclude_done,
    )


def make_provider(token: Optional[str]):
    if os.environ.get("MOCK_FETCH") == "1":
        return StubProvider()
    if not token:
        print("GITHUB_TOKEN is not set.", file=sys.stderr)
        sys.exit(1)
    return GitHubProvider(token)


def print_summary(state: AppState) -> None:
    project, items = state.provider.fetch_project(state.project.id, state.project.owner, state.item_limit)
    if state.exclude_done:
        items = [it for it in items if it.status != DONE_COLUMN]
    board = build_board(items, project.fields, state.filter, now=state.now())
    print(f"{project.name or project.id}: {len(items)} items")
    for col in board.columns:
        print(f"  {col.name}: {len(col.cards)}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_intermixed_args(argv)
    config_path = args.config or config.resolve_path()
    setup_logging(args.log_file or config.default_log_path(config_path), args.log_level)

    try:
        cfg = config.load(config_path)
    except ValueError as e:
        print(f"warning: {e}; using defaults", file=sys.stderr)
        log.warning("%s; using defaults", e)
        cfg = config.Config()

    # Token precedence: env var, .env TOKEN/GITHUB_TOKEN
    token = os.environ.get("GITHUB_TOKEN") or load_dotenv_token()

    if args.discover:
        owner = args.owner or cfg.default_owner or parse_project_arg(args.project)[1]
        if not owner:
            print("--owner is required with --discover", file=sys.stderr)
            sys.exit(1)
        provider = make_provider(token)
        print(owner)
        projs = provider.discover_projects(owner)
        if not projs:
            print("  (no open projects or insufficient access)")
        for n in projs:
            print(f"  #{n.get('number')}: {n.get('title')}  {n.get('id')}")
        return

    state = build_state(args, cfg, config_path, None)
    if not state.project.id:
        print("--project is required", file=sys.stderr)
        sys.exit(1)
    state.provider = make_provider(token)

    if args.no_ui:
        print_summary(state)
        return

    theme_dir = Path(config_path).parent / "themes"
    theme = select_theme(load_theme_presets(theme_dir), args.theme or cfg.theme)
    run_ui(state, theme)


if __name__ == "__main__":
    main()
