"""Carousel Studio CLI — studio command."""

from __future__ import annotations

import base64
import json
import os
from pathlib import Path
from typing import Any

import click

from carousel_studio.cli.client import StudioClient
from carousel_studio.core.drafts import DRAFT_PREFIX, FileDraftStorage, clear_draft, load_draft

DEFAULT_DRAFT_DIR = os.path.join("~", ".carousel-studio", "drafts")


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


@click.group()
@click.option("--api", default="http://localhost:8400", envvar="STUDIO_API", help="API base URL")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.option("--token", default=None, envvar="STUDIO_TOKEN", help="Auth token")
@click.pass_context
def cli(ctx: click.Context, api: str, output_format: str, token: str | None) -> None:
    """Carousel Studio CLI — drive the slide pipeline and manage local drafts."""
    ctx.ensure_object(dict)
    ctx.obj = StudioClient(base_url=api, auth_token=token)
    ctx.meta["output_format"] = output_format


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "table" and isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _call(fn, *args: Any, **kwargs: Any) -> Any:
    try:
        return fn(*args, **kwargs)
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e


# --- Slide pipeline ---


@cli.command()
@click.argument("slide_id")
@click.pass_context
def brief(ctx: click.Context, slide_id: str) -> None:
    """Create the visual brief of a slide."""
    client: StudioClient = ctx.obj
    _output(ctx, _call(client.create_brief, slide_id)["brief"])


@cli.command()
@click.argument("slide_id")
@click.pass_context
def prompts(ctx: click.Context, slide_id: str) -> None:
    """Build image prompts from the slide's brief."""
    client: StudioClient = ctx.obj
    data = _call(client.build_prompts, slide_id)
    _output(ctx, data["prompts"], ["id", "variant_index", "model_hint", "approach"])


@cli.command()
@click.argument("slide_id")
@click.option("--prompt", "prompt_id", default=None, help="Only this prompt")
@click.option("--tier", "quality_tier", type=click.Choice(["cheap", "high"]), default="cheap")
@click.option("-n", "--variations", "n_variations", type=click.IntRange(1, 8), default=2)
@click.pass_context
def generate(
    ctx: click.Context, slide_id: str, prompt_id: str | None, quality_tier: str, n_variations: int
) -> None:
    """Generate image variations for a slide."""
    client: StudioClient = ctx.obj
    data = _call(client.generate_variations, slide_id, prompt_id, quality_tier, n_variations)
    _output(ctx, data["generations"], ["id", "prompt_id", "model_used", "image_url"])
    if ctx.meta.get("output_format") == "table":
        click.echo(f"\n{data['count']} generation(s) created")


@cli.command()
@click.argument("slide_id")
@click.pass_context
def rank(ctx: click.Context, slide_id: str) -> None:
    """Rank a slide's candidates and select the best one."""
    client: StudioClient = ctx.obj
    data = _call(client.rank, slide_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, data)
        return
    best = data["best"]
    label = " (fallback)" if data.get("fallback") else ""
    click.echo(f"Selected {best['id']}{label}")
    click.echo(f"  Score: {best.get('ranking_score')}")
    click.echo(f"  Reason: {best.get('ranking_reason')}")
    if data.get("rankings"):
        click.echo()
        click.echo(_format_table(data["rankings"], ["generation_id", "score", "publish_ready"]))


@cli.command()
@click.argument("slide_id")
@click.argument("generation_id")
@click.pass_context
def select(ctx: click.Context, slide_id: str, generation_id: str) -> None:
    """Select a generation by hand."""
    client: StudioClient = ctx.obj
    best = _call(client.select, slide_id, generation_id)["best"]
    click.echo(f"Selected {best['id']}")


# --- Content & brands ---


@cli.command()
@click.argument("content_id")
@click.option("--out", "out_dir", type=click.Path(file_okay=False), default=".", help="Output directory")
@click.pass_context
def download(ctx: click.Context, content_id: str, out_dir: str) -> None:
    """Build the export ZIP of a post and save it."""
    client: StudioClient = ctx.obj
    data = _call(client.download, content_id)
    path = Path(out_dir) / data["filename"]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(base64.b64decode(data["zipBase64"]))
    click.echo(f"Saved {path} ({len(data['imageUrls'])} image(s))")


@cli.command("analyze-brand")
@click.argument("brand_id")
@click.pass_context
def analyze_brand(ctx: click.Context, brand_id: str) -> None:
    """Derive a new style guide version for a brand."""
    client: StudioClient = ctx.obj
    data = _call(client.analyze_brand, brand_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, data)
        return
    guide = data["styleGuide"]
    click.echo(f"Style guide v{data['version']}")
    click.echo(f"  Preset: {guide.get('style_preset')}")
    click.echo(f"  Confidence: {guide.get('confidence')}")


@cli.command("refresh-templates")
@click.argument("brand_id")
@click.option("--force", is_flag=True, help="Regenerate even when the brand is clean")
@click.pass_context
def refresh_templates(ctx: click.Context, brand_id: str, force: bool) -> None:
    """Regenerate a brand's template sets when needed."""
    client: StudioClient = ctx.obj
    data = _call(client.refresh_template_sets, brand_id, force)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, data)
    elif data.get("skipped"):
        click.echo(f"Skipped: {data.get('reason')}")
    else:
        click.echo(f"Refreshed: {data.get('count', 0)} template set(s)")
        click.echo(_format_table(data.get("templateSets", []), ["id", "name", "status"]))


@cli.command("mark-dirty")
@click.argument("brand_id")
@click.pass_context
def mark_dirty(ctx: click.Context, brand_id: str) -> None:
    """Record a brand edit so its template sets get refreshed."""
    client: StudioClient = ctx.obj
    data = _call(client.mark_template_sets_dirty, brand_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, data)
    else:
        click.echo(f"Brand {data['brandId']} marked dirty ({data['dirtyCount']} edit(s) pending)")


# --- Local drafts ---


@cli.group()
@click.option(
    "--dir",
    "draft_dir",
    default=DEFAULT_DRAFT_DIR,
    envvar="STUDIO_DRAFT_DIR",
    help="Draft storage directory",
)
@click.pass_context
def draft(ctx: click.Context, draft_dir: str) -> None:
    """Inspect and clear locally saved drafts."""
    ctx.meta["draft_storage"] = FileDraftStorage(Path(draft_dir).expanduser())


@draft.command("list")
@click.pass_context
def draft_list(ctx: click.Context) -> None:
    """List saved drafts."""
    storage: FileDraftStorage = ctx.meta["draft_storage"]
    rows = []
    for key in storage.keys():
        if not key.startswith(DRAFT_PREFIX):
            continue
        data = load_draft(storage, key)
        rows.append(
            {
                "key": key,
                "title": (data.title if data else None) or "",
                "slides": len(data.slides) if data else 0,
                "saved_at": data.saved_at if data else "corrupt",
            }
        )
    _output(ctx, rows, ["key", "title", "slides", "saved_at"])


@draft.command("show")
@click.argument("key")
@click.pass_context
def draft_show(ctx: click.Context, key: str) -> None:
    """Show one draft."""
    storage: FileDraftStorage = ctx.meta["draft_storage"]
    data = load_draft(storage, key)
    if data is None:
        raise click.ClickException(f"No draft stored under '{key}'")
    click.echo(data.model_dump_json(by_alias=True, indent=2))


@draft.command("clear")
@click.argument("key")
@click.pass_context
def draft_clear(ctx: click.Context, key: str) -> None:
    """Delete one draft."""
    storage: FileDraftStorage = ctx.meta["draft_storage"]
    clear_draft(storage, key)
    click.echo(f"Cleared draft '{key}'")


if __name__ == "__main__":
    cli()
