from __future__ import annotations

import asyncio
import json

import typer

from deskflow_api.errors import NotFoundError, UpstreamError, UserAgentError
from deskflow_api.logs import setup_logging
from deskflow_api.releases import ReleaseResolver, latest_version
from deskflow_api.settings import GITHUB_OWNER, GITHUB_REPO, RELEASES_PER_PAGE
from deskflow_api.user_agent import parse_user_agent

app = typer.Typer(add_completion=False, help="Local checks for the Deskflow API worker.")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")):
    setup_logging("DEBUG" if verbose else "WARNING")


@app.command("parse-user-agent")
def parse_user_agent_cmd(
    identity: str = typer.Argument(..., help="User-Agent sent by the client"),
    language: str | None = typer.Option(None, "--language", help="X-Deskflow-Language header (legacy clients)"),
    version: str | None = typer.Option(None, "--version", help="X-Deskflow-Version header (legacy clients)"),
):
    """
    Show what the popularity contest would count for a User-Agent.
    """
    try:
        info = parse_user_agent(identity, language, version)
    except UserAgentError as e:
        typer.echo(f"Malformed identity string: {e.message}", err=True)
        raise typer.Exit(code=2)
    if info is None:
        typer.echo("Not a Deskflow client")
        return
    typer.echo(json.dumps(info.to_dict(), indent=2))


@app.command("latest-version")
def latest_version_cmd(
    owner: str = typer.Option(GITHUB_OWNER, "--owner", help="GitHub repository owner"),
    repo: str = typer.Option(GITHUB_REPO, "--repo", help="GitHub repository name"),
    per_page: int = typer.Option(RELEASES_PER_PAGE, "--per-page", min=1, max=100, help="Releases to list"),
):
    """
    Query GitHub for the latest release, bypassing the cache.
    """
    resolver = ReleaseResolver(owner=owner, repo=repo, per_page=per_page)
    try:
        version = latest_version(asyncio.run(resolver.list_recent_releases()))
    except NotFoundError as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(code=1)
    except UpstreamError as e:
        typer.echo(f"GitHub request failed: {e.message}", err=True)
        raise typer.Exit(code=2)
    typer.echo(version)


if __name__ == '__main__':
    app()
