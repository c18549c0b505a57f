"""Main CLI entry point for citetrack."""

import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__, db
from .analyze import BatchItemResult, analyze_batch, analyze_query
from .categorize import CategorizedCitation
from .config import settings
from .costs import MODEL_PRICING, estimate_cost, pricing_for
from .models import Category, Citation
from .perplexity_client import PerplexityClient
from .tags import add_domain_tag, delete_domain_tag, list_domain_tags, list_unknown_domains

console = Console()

CATEGORY_STYLES: dict[str, str] = {
    Category.OWNED: "#22c55e",
    Category.NEWS: "#3b82f6",
    Category.EXCHANGE: "#f59e0b",
    Category.VIDEO: "#ef4444",
    Category.SOCIAL: "#a855f7",
    Category.DEVELOPER: "#06b6d4",
    Category.REFERENCE: "#8b5cf6",
    Category.AGGREGATOR: "#f97316",
    Category.BLOG: "#14b8a6",
    Category.UNKNOWN: "#64748b",
}


def _category(category: str) -> str:
    style = CATEGORY_STYLES.get(category, CATEGORY_STYLES[Category.UNKNOWN])
    return f"[{style}]{category}[/]"


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _echo_json(data: object) -> None:
    # Bypasses rich so long values are never wrapped.
    click.echo(json.dumps(data, indent=2, default=str))


def _answer_engine(api_key: str | None, timeout: float | None) -> PerplexityClient:
    return PerplexityClient(
        api_key=api_key or settings.api_key,
        base_url=settings.api_url,
        timeout_seconds=timeout or settings.request_timeout,
    )


def _citation_table(citations: Sequence[CategorizedCitation | Citation], title: str = "Citations") -> Table:
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Domain")
    table.add_column("Category")
    table.add_column("URL", overflow="fold")
    for c in citations:
        table.add_row(str(c.position), c.domain, _category(c.category), c.url)
    return table


api_key_option = click.option(
    "--api-key",
    default=None,
    help="Perplexity API key (defaults to CITETRACK_API_KEY)",
)
model_option = click.option(
    "--model",
    "-m",
    default=None,
    help="Answer engine model (defaults to CITETRACK_DEFAULT_MODEL)",
)
timeout_option = click.option(
    "--timeout", type=float, default=None, help="Seconds to wait for each answer"
)
json_option = click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Track which sources an AI answer engine cites for your clients' queries."""
    _configure_logging(verbose)


@main.command(name="init-db")
def init_db() -> None:
    """Create tables and load the system domain tags."""
    inserted = asyncio.run(db.init_db())
    console.print(f"[green]Database ready[/green] ({inserted} system tags added)")


@main.command(name="db-info")
def db_info() -> None:
    """Show database connection info."""
    console.print(
        Panel(
            f"URL: {settings.async_database_url}\nEcho: {settings.db_echo}",
            title="Database Configuration",
        )
    )


@main.command()
def health() -> None:
    """Show record counts."""

    async def show() -> dict[str, int]:
        async with db.get_session() as session:
            return await db.health_counts(session)

    counts = asyncio.run(show())
    console.print(
        Panel(
            f"Clients: {counts['clients']}\n"
            f"Domain tags: {counts['domain_tags']}\n"
            f"Unknown citations: {counts['unknown_citations']}",
            title="[green]ok[/green]",
        )
    )


# =============================================================================
# Clients
# =============================================================================


@main.group()
def client() -> None:
    """Manage clients and their owned domains."""


@client.command(name="add")
@click.argument("name")
@click.option("--domain", "-d", "domains", multiple=True, help="Owned domain (repeatable)")
def client_add(name: str, domains: tuple[str, ...]) -> None:
    """Create a client.

    NAME: Client display name
    """

    async def do_create() -> None:
        async with db.get_session() as session:
            created = await db.create_client(session, name, list(domains))
            console.print(
                f"[green]Created client {created.id}[/green]: {created.name} "
                f"({', '.join(created.owned_domains) or 'no owned domains'})"
            )

    asyncio.run(do_create())


@client.command(name="list")
def client_list() -> None:
    """List clients."""

    async def list_all() -> None:
        async with db.get_session() as session:
            clients = await db.list_clients(session)

            if not clients:
                console.print("[yellow]No clients found[/yellow]")
                return

            table = Table(title="Clients")
            table.add_column("ID", style="cyan", justify="right")
            table.add_column("Name")
            table.add_column("Owned domains")
            table.add_column("Created")
            for c in clients:
                table.add_row(
                    str(c.id),
                    c.name,
                    ", ".join(c.owned_domains or []) or "-",
                    c.created_at.strftime("%Y-%m-%d %H:%M"),
                )
            console.print(table)

    asyncio.run(list_all())


@client.command(name="update")
@click.argument("client_id", type=int)
@click.option("--name", default=None, help="New name")
@click.option("--domain", "-d", "domains", multiple=True, help="Replace owned domains (repeatable)")
@click.option("--clear-domains", is_flag=True, help="Remove all owned domains")
def client_update(client_id: int, name: str | None, domains: tuple[str, ...], clear_domains: bool) -> None:
    """Rename a client or replace its owned domains.

    Past citations keep their categories.
    """
    owned: list[str] | None = None
    if clear_domains:
        owned = []
    elif domains:
        owned = list(domains)

    async def do_update() -> None:
        async with db.get_session() as session:
            updated = await db.update_client(session, client_id, name=name, owned_domains=owned)
            console.print(
                f"[green]Updated client {updated.id}[/green]: {updated.name} "
                f"({', '.join(updated.owned_domains) or 'no owned domains'})"
            )

    asyncio.run(do_update())


@client.command(name="delete")
@click.argument("client_id", type=int)
@click.confirmation_option(prompt="Delete this client with all its queries and runs?")
def client_delete(client_id: int) -> None:
    """Delete a client with its queries, runs and citations."""

    async def do_delete() -> None:
        async with db.get_session() as session:
            await db.delete_client(session, client_id)

    asyncio.run(do_delete())
    console.print(f"[green]Deleted client {client_id}[/green]")


# =============================================================================
# Queries
# =============================================================================


@main.group()
def query() -> None:
    """Manage tracked queries."""


@query.command(name="add")
@click.argument("client_id", type=int)
@click.argument("texts", nargs=-1)
@click.option(
    "--file",
    "-f",
    "from_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read one query per line",
)
def query_add(client_id: int, texts: tuple[str, ...], from_file: Path | None) -> None:
    """Add queries to a client.

    CLIENT_ID: Owning client
    TEXTS: Query strings
    """
    lines = list(texts)
    if from_file is not None:
        lines.extend(from_file.read_text().splitlines())

    async def do_add() -> None:
        async with db.get_session() as session:
            created = await db.add_queries(session, client_id, lines)
            for q in created:
                console.print(f"[green]Added query {q.id}[/green]: {q.query_text}")

    asyncio.run(do_add())


@query.command(name="list")
@click.argument("client_id", type=int)
def query_list(client_id: int) -> None:
    """List a client's queries with run counts."""

    async def list_all() -> None:
        async with db.get_session() as session:
            summaries = await db.list_queries(session, client_id)

            if not summaries:
                console.print("[yellow]No queries found[/yellow]")
                return

            table = Table(title=f"Queries for client {client_id}")
            table.add_column("ID", style="cyan", justify="right")
            table.add_column("Query")
            table.add_column("Active")
            table.add_column("Runs", justify="right")
            table.add_column("Last run")
            for s in summaries:
                text = s.query.query_text
                table.add_row(
                    str(s.query.id),
                    text[:60] + "..." if len(text) > 60 else text,
                    "yes" if s.query.is_active else "no",
                    str(s.run_count),
                    s.last_run.strftime("%Y-%m-%d %H:%M") if s.last_run else "-",
                )
            console.print(table)

    asyncio.run(list_all())


@query.command(name="delete")
@click.argument("query_id", type=int)
def query_delete(query_id: int) -> None:
    """Delete a query with its runs and citations."""

    async def do_delete() -> None:
        async with db.get_session() as session:
            await db.delete_query(session, query_id)

    asyncio.run(do_delete())
    console.print(f"[green]Deleted query {query_id}[/green]")


@query.command(name="pause")
@click.argument("query_id", type=int)
def query_pause(query_id: int) -> None:
    """Exclude a query from client-wide batches."""

    async def do_pause() -> None:
        async with db.get_session() as session:
            await db.set_query_active(session, query_id, False)

    asyncio.run(do_pause())
    console.print(f"[yellow]Paused query {query_id}[/yellow]")


@query.command(name="resume")
@click.argument("query_id", type=int)
def query_resume(query_id: int) -> None:
    """Include a paused query in client-wide batches again."""

    async def do_resume() -> None:
        async with db.get_session() as session:
            await db.set_query_active(session, query_id, True)

    asyncio.run(do_resume())
    console.print(f"[green]Resumed query {query_id}[/green]")


# =============================================================================
# Analysis
# =============================================================================


@main.command()
@click.option("--query-id", "-q", type=int, default=None, help="Stored query to run and record")
@click.option("--text", "-t", default=None, help="Ad-hoc query text (not recorded)")
@model_option
@api_key_option
@timeout_option
@json_option
def analyze(
    query_id: int | None,
    text: str | None,
    model: str | None,
    api_key: str | None,
    timeout: float | None,
    as_json: bool,
) -> None:
    """Ask the answer engine one query and categorize its citations."""

    async def do_analyze():
        async with _answer_engine(api_key, timeout) as engine:
            async with db.get_session() as session:
                return await analyze_query(
                    session,
                    engine,
                    query_id=query_id,
                    query_text=text,
                    model=model,
                    timeout=timeout,
                )

    result = asyncio.run(do_analyze())

    if as_json:
        _echo_json(result.to_dict())
        return

    console.print(Panel(result.response_text or "[dim]No answer text[/dim]", title=result.query))
    console.print(_citation_table(result.citations))
    console.print(
        f"Citations: {result.citation_count}  Owned: {result.owned_citation_count}  "
        f"Model: {result.model}  Est. cost: ${result.cost_estimate:.6f}"
        + (f"  Run: {result.run_id}" if result.run_id is not None else "")
    )


@main.command()
@click.argument("query_ids", nargs=-1, type=int)
@click.option("--client", "-c", "client_id", type=int, default=None, help="Run all active queries of a client")
@click.option("--delay", type=float, default=None, help="Seconds between answer engine calls")
@model_option
@api_key_option
@timeout_option
@json_option
def batch(
    query_ids: tuple[int, ...],
    client_id: int | None,
    delay: float | None,
    model: str | None,
    api_key: str | None,
    timeout: float | None,
    as_json: bool,
) -> None:
    """Analyze several stored queries, one after another.

    QUERY_IDS: Stored query ids (or use --client)
    """

    def report(item: BatchItemResult) -> None:
        if as_json:
            return
        if item.ok:
            console.print(
                f"[green]✓[/green] query {item.query_id}: {item.citation_count} citations, "
                f"{item.owned_citation_count} owned (run {item.run_id})"
            )
        else:
            console.print(f"[red]✗[/red] query {item.query_id}: {item.error}")

    async def do_batch():
        ids = list(query_ids)
        if client_id is not None:
            async with db.get_session() as session:
                ids.extend(await db.active_query_ids(session, client_id))

        async with _answer_engine(api_key, timeout) as engine:
            return await analyze_batch(
                engine,
                ids,
                model=model,
                timeout=timeout,
                delay_seconds=delay,
                on_result=report,
            )

    result = asyncio.run(do_batch())

    if as_json:
        _echo_json(result.to_dict())
        return

    failed = len(result.failed)
    console.print(
        f"\n[bold]{len(result.results) - failed} succeeded, {failed} failed[/bold]  "
        f"Est. cost: ${result.total_cost:.6f}"
    )


@main.command()
@click.argument("query_id", type=int)
def runs(query_id: int) -> None:
    """List runs of a query."""

    async def list_all() -> None:
        async with db.get_session() as session:
            run_list = await db.list_runs(session, query_id)

            if not run_list:
                console.print("[yellow]No runs found[/yellow]")
                return

            table = Table(title=f"Runs for query {query_id}")
            table.add_column("ID", style="cyan", justify="right")
            table.add_column("Model")
            table.add_column("Citations", justify="right")
            table.add_column("Owned", justify="right")
            table.add_column("Cost", justify="right")
            table.add_column("Created")
            for r in run_list:
                table.add_row(
                    str(r.id),
                    r.model,
                    str(r.citation_count),
                    str(r.owned_citation_count),
                    f"${r.cost_estimate:.6f}",
                    r.created_at.strftime("%Y-%m-%d %H:%M"),
                )
            console.print(table)

    asyncio.run(list_all())


@main.command()
@click.argument("run_id", type=int)
def citations(run_id: int) -> None:
    """List citations of a run in order."""

    async def list_all() -> None:
        async with db.get_session() as session:
            rows = await db.list_citations(session, run_id)
            if not rows:
                console.print("[yellow]No citations[/yellow]")
                return
            console.print(_citation_table(rows, title=f"Citations for run {run_id}"))

    asyncio.run(list_all())


@main.command()
@click.argument("client_id", type=int)
@click.option("--limit", default=10, help="Number of runs to show")
def history(client_id: int, limit: int) -> None:
    """Show a client's recent runs with their citations."""

    async def show() -> None:
        async with db.get_session() as session:
            entries = await db.get_client_history(session, client_id)

            if not entries:
                console.print("[yellow]No runs yet[/yellow]")
                return

            for entry in entries[:limit]:
                run = entry.run
                console.print(
                    _citation_table(
                        entry.citations,
                        title=(
                            f"Run {run.id} · {entry.query_text} · "
                            f"{run.created_at.strftime('%Y-%m-%d %H:%M')} · {run.model}"
                        ),
                    )
                )

    asyncio.run(show())


@main.command()
@click.argument("client_id", type=int)
@json_option
def stats(client_id: int, as_json: bool) -> None:
    """Show aggregate citation statistics for a client."""

    async def load():
        async with db.get_session() as session:
            return await db.get_client_stats(session, client_id)

    client_stats = asyncio.run(load())

    if as_json:
        _echo_json(client_stats.to_dict())
        return

    console.print(
        Panel(
            f"Runs: {client_stats.total_runs}\n"
            f"Citations: {client_stats.total_citations}\n"
            f"Owned citations: {client_stats.total_owned_citations}\n"
            f"Avg citations/run: {client_stats.avg_citations_per_run}\n"
            f"Total cost: ${client_stats.total_cost:.6f}",
            title=f"Client {client_id}",
        )
    )

    breakdown = Table(title="Category breakdown")
    breakdown.add_column("Category")
    breakdown.add_column("Count", justify="right")
    for row in client_stats.category_breakdown:
        breakdown.add_row(_category(row["category"]), str(row["count"]))
    console.print(breakdown)

    top = Table(title="Top cited domains")
    top.add_column("Domain")
    top.add_column("Category")
    top.add_column("Count", justify="right")
    for row in client_stats.top_domains:
        top.add_row(row["domain"], _category(row["category"]), str(row["count"]))
    console.print(top)


# =============================================================================
# Domain tags
# =============================================================================


@main.group()
def tags() -> None:
    """Manage domain -> category tags."""


@tags.command(name="list")
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None)
def tags_list(category: str | None) -> None:
    """List domain tags."""

    async def list_all() -> None:
        async with db.get_session() as session:
            tag_list = await list_domain_tags(session, category)

            if not tag_list:
                console.print("[yellow]No tags found[/yellow]")
                return

            table = Table(title="Domain tags")
            table.add_column("ID", style="cyan", justify="right")
            table.add_column("Domain")
            table.add_column("Category")
            table.add_column("Source")
            for t in tag_list:
                table.add_row(str(t.id), t.domain, _category(t.category), t.source)
            console.print(table)

    asyncio.run(list_all())


@tags.command(name="add")
@click.argument("domain")
@click.argument("category", type=click.Choice([c.value for c in Category]))
def tags_add(domain: str, category: str) -> None:
    """Tag a domain and recategorize its unknown citations.

    DOMAIN: Domain (or URL) to tag
    CATEGORY: Category to assign
    """

    async def do_add():
        async with db.get_session() as session:
            return await add_domain_tag(session, domain, category)

    update = asyncio.run(do_add())
    console.print(
        f"[green]Tagged {update.tag.domain} as {_category(update.tag.category)}[/green] "
        f"({update.retroactive_updates} past citations updated)"
    )


@tags.command(name="delete")
@click.argument("tag_id", type=int)
def tags_delete(tag_id: int) -> None:
    """Delete a user tag (system tags cannot be deleted)."""

    async def do_delete() -> None:
        async with db.get_session() as session:
            await delete_domain_tag(session, tag_id)

    asyncio.run(do_delete())
    console.print(f"[green]Deleted tag {tag_id}[/green]")


@tags.command(name="unknown")
@click.option("--client", "-c", "client_id", type=int, default=None, help="Restrict to one client")
@click.option("--limit", default=20, help="Number of domains to show")
def tags_unknown(client_id: int | None, limit: int) -> None:
    """Show the most cited untagged domains with a suggested category."""

    async def list_all() -> None:
        async with db.get_session() as session:
            rows = await list_unknown_domains(session, client_id, limit)

            if not rows:
                console.print("[green]No unknown domains[/green]")
                return

            table = Table(title="Unknown domains")
            table.add_column("Domain")
            table.add_column("Citations", justify="right")
            table.add_column("Suggestion")
            table.add_column("Sample URL", overflow="fold")
            for r in rows:
                table.add_row(
                    r.domain,
                    str(r.count),
                    _category(r.suggestion) if r.suggestion else "-",
                    r.sample_url,
                )
            console.print(table)

    asyncio.run(list_all())


# =============================================================================
# Cost estimate
# =============================================================================


@main.command(name="cost-estimate")
@click.option("--model", "-m", default="sonar", help="Model to price")
@click.option("--count", "-n", "query_count", default=1, type=int, help="Number of queries")
@json_option
def cost_estimate(model: str, query_count: int, as_json: bool) -> None:
    """Estimate the cost of running queries on a model."""
    cost = estimate_cost(model, query_count)
    pricing = pricing_for(model)

    if as_json:
        _echo_json(
            {
                "model": model,
                "query_count": query_count,
                "estimated_cost": cost,
                "pricing": pricing.to_dict(),
            }
        )
        return

    known = "" if model in MODEL_PRICING else " [yellow](unknown model, using sonar pricing)[/yellow]"
    console.print(
        f"{query_count} × {model}{known}: [bold]${cost:.6f}[/bold] "
        f"(${pricing.input_per_million}/M in, ${pricing.output_per_million}/M out)"
    )


if __name__ == "__main__":
    main()
