"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from tflayerctl.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from tflayerctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        if result.data.get("results"):
            _render_operation(result, console, verbose=verbose)
            console.print()
        _render_error(result, console, verbose=verbose)

    if verbose:
        _render_meta(console, result)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    data = result.data
    if result.op == "matrix":
        return "\n".join(f"{i['layer']}:{i['environment']}" for i in data.get("items", []))
    if result.op == "changes":
        return "\n".join(data.get("layers", []))
    if result.op == "layers":
        return "\n".join(data.get("order", []))
    if "results" in data:
        return "\n".join(
            f"{r['layer']}:{r['environment']} {r['status']}" for r in data["results"]
        )
    if "status" in data:
        return f"{data['layer']}:{data['environment']} {data['status']}"
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/ERROR status line."""
    label = Text("OK", style="tfl.ok")
    op = Text(f"  {result.op}", style="tfl.op")
    console.print(label, op, sep="", end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="tfl.key")
    if key == "layer":
        v = Text(str(value), style="tfl.layer")
    elif key == "environment":
        v = Text(str(value), style="tfl.env")
    elif key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    elif key.endswith("path"):
        v = Text(str(value), style="tfl.path")
    elif isinstance(value, list):
        v = Text(", ".join(str(x) for x in value) if value else "(none)")
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _status_text(status: str) -> Text:
    return Text(status, style=style_for_status(status))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including the timing span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    prefix = " " * indent
    duration = span_data.get("duration_ms", 0.0)
    if duration > 60_000:
        style = "bold red"
    elif duration > 5_000:
        style = "yellow"
    else:
        style = "dim"
    line = f"{prefix}[{style}]{duration:>10.2f}ms[/{style}]  {span_data.get('name', '?')}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)
    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="tfl.error")
    op = Text(f"  {result.op}", style="tfl.op")
    code = Text(f" [{err.code}]" if err else "", style="tfl.error")
    dash = Text(" — ")
    console.print(label, op, code, dash, Text(msg), sep="")

    if not err or not err.detail:
        return
    for failed in err.detail.get("failures", []):
        console.print(
            f"  [tfl.error]{failed['code']}[/tfl.error] "
            f"[tfl.layer]{failed['layer']}[/tfl.layer]:[tfl.env]{failed['environment']}[/tfl.env]"
            f"  {failed['message']}"
        )
        if verbose and failed.get("output"):
            console.print(Text(_indent(failed["output"]), style="dim"))
    if verbose:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            if k in ("failures", "output"):
                continue
            console.print(f"    {k}: {v}")
        if err.detail.get("output"):
            console.print(Text(_indent(err.detail["output"]), style="dim"))
    elif result.data.get("output"):
        console.print(Text(_indent(_last_lines(result.data["output"], 15)), style="dim"))


def _indent(text: str, width: int = 4) -> str:
    pad = " " * width
    return "\n".join(pad + line for line in text.rstrip().splitlines())


def _last_lines(text: str, count: int) -> str:
    return "\n".join(text.rstrip().splitlines()[-count:])


# ── Change set and matrix ─────────────────────────────────────────────


def _render_changes(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "range", f"{d.get('base') or '(none)'}..{d.get('head')}")
    _field(console, "files", d.get("files", 0))
    _field(console, "layers", d.get("layers", []))
    _field(console, "modules", d.get("modules", []))
    if d.get("forced"):
        reason = d.get("reason")
        console.print(f"  [tfl.warning]forced[/tfl.warning]: every layer selected ({reason})")
    if not d.get("has_changes"):
        console.print("\n  No layer or module changes.")


def _render_matrix(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    items = d.get("items", [])
    if not items:
        console.print(f"No work items for {d.get('operation')} ({d.get('environment')}).")
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Layer", style="tfl.layer", no_wrap=True)
    table.add_column("Environment", style="tfl.env")
    table.add_column("Operation", style="tfl.op")
    for idx, item in enumerate(items, start=1):
        table.add_row(str(idx), item["layer"], item["environment"], item["operation"])
    console.print(table)

    console.print(f"\n{d.get('count', len(items))} work items")
    if verbose:
        for idx, stage in enumerate(d.get("stages", []), start=1):
            console.print(f"  stage {idx}: {', '.join(stage)}")


def _render_layers(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Layer", style="tfl.layer", no_wrap=True)
    table.add_column("Depends on")
    table.add_column("Dependents", style="dim")
    for item in d.get("items", []):
        table.add_row(
            str(item["position"]),
            item["name"],
            ", ".join(item["depends_on"]) or "-",
            ", ".join(item["dependents"]) or "-",
        )
    console.print(table)
    envs = ", ".join(
        f"[bold]{e}[/bold] (production)" if e == d.get("production") else e
        for e in d.get("environments", [])
    )
    console.print(f"\nEnvironments: {envs}")
    if verbose:
        for idx, stage in enumerate(d.get("stages", []), start=1):
            console.print(f"  stage {idx}: {', '.join(stage)}")


# ── Terraform operations ──────────────────────────────────────────────


def _render_operation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a single executed item or a pipeline run."""
    d = result.data
    if "results" not in d:
        _render_item(result, console, verbose=verbose)
        return

    results = d.get("results", [])
    if not results:
        console.print(f"Nothing to {d.get('operation', result.op)}.")
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Layer", style="tfl.layer", no_wrap=True)
    table.add_column("Environment", style="tfl.env")
    table.add_column("Status")
    if verbose:
        table.add_column("Detail", style="dim")
    for entry in results:
        row: list[Any] = [entry["layer"], entry["environment"], _status_text(entry["status"])]
        if verbose:
            row.append(entry.get("message", ""))
        table.add_row(*row)
    console.print(table)

    counts = d.get("counts", {})
    summary = ", ".join(f"{n} {status}" for status, n in counts.items())
    console.print(f"\n{d.get('count', len(results))} work items: {summary}")
    if result.ok and d.get("changes_pending"):
        console.print("[tfl.warning]Changes detected but not applied.[/tfl.warning]")


def _render_item(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("layer", "environment", "status", "exit_code"):
        if key in d:
            _field(console, key, d[key])
    if verbose and d.get("output"):
        console.print()
        console.print(Text(_indent(d["output"]), style="dim"))


def _render_unlock(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("layer", "environment", "lock_id"):
        _field(console, key, result.data.get(key, ""))
    if verbose and result.data.get("output"):
        console.print(Text(_indent(result.data["output"]), style="dim"))


# ── Repository maintenance ────────────────────────────────────────────


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render check results with issues grouped by category."""
    issues = result.data.get("issues", [])
    count = result.data.get("count", len(issues))

    if count == 0:
        console.print("[tfl.ok]OK[/tfl.ok]  No issues found.")
        return

    severity_styles = {"error": "tfl.error", "warning": "tfl.warning"}

    by_category: dict[str, list[dict[str, Any]]] = {}
    for issue in issues:
        by_category.setdefault(str(issue.get("category", "unknown")), []).append(issue)

    for cat, cat_issues in by_category.items():
        console.print(f"\n[bold]{cat}[/bold]")
        for issue in cat_issues:
            sev = str(issue.get("severity", "warning"))
            style = severity_styles.get(sev, "")
            prefix = f"[{style}]{sev}[/{style}]" if style else sev
            where = f" [tfl.path]{issue['path']}[/tfl.path]" if issue.get("path") else ""
            console.print(f"  {prefix}{where}: {issue.get('message', '')}")

    errors = result.data.get("error_count", 0)
    warnings = result.data.get("warning_count", count - errors)
    console.print(f"\n{errors} errors, {warnings} warnings")


def _render_scaffold(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    created = result.data.get("created", [])
    skipped = result.data.get("skipped", [])
    _field(console, "created", len(created))
    _field(console, "skipped", len(skipped))
    for path in created:
        console.print(f"  [tfl.ok]+[/tfl.ok] [tfl.path]{path}[/tfl.path]")
    if verbose:
        for path in skipped:
            console.print(f"  [dim]= {path}[/dim]")


def _render_bootstrap(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("resource_group", "storage_account", "container", "location"):
        _field(console, key, d.get(key, ""))
    if d.get("dry_run"):
        console.print("\n  Dry run; commands not executed:")
        for cmd in d.get("commands", []):
            console.print(f"    {cmd}", markup=False)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)


_OP_RENDERERS: dict[str, Any] = {
    "changes": _render_changes,
    "matrix": _render_matrix,
    "layers": _render_layers,
    "plan": _render_operation,
    "apply": _render_operation,
    "destroy": _render_operation,
    "unlock": _render_unlock,
    "check": _render_check,
    "scaffold": _render_scaffold,
    "bootstrap": _render_bootstrap,
}
