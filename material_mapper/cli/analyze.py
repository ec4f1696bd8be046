# =============================================================================
# material_mapper/cli/analyze.py - CLI Analyze Command
# =============================================================================
#
# Standalone CLI for analysing a building strategy from the command line.
# Bypasses the API server and drives the same AnalysisRunner directly:
#
#   Stage 1: Extraction   - materials pulled out of the strategy text
#   Stage 2: Matching     - materials matched against known flows (chunked)
#   Stage 3: Linkage      - flows connected to ecosystem services
#   Result:               - authoritative totals, timing and cost
#
# Typical usage:
#   python -m material_mapper.cli.analyze "Reuse salvaged steel ..."
#   python -m material_mapper.cli.analyze strategy.txt --json
#   cat strategy.txt | python -m material_mapper.cli.analyze - --svg graph.svg
#
# Progress lines (one per stage change) go to stderr; the report goes to
# stdout or --output.  --json implies --quiet: logs drop to WARNING and
# are routed to stderr so stdout carries the JSON document only.
# =============================================================================

"""Standalone CLI for running a Material Mapper analysis.

Usage::

    python -m material_mapper.cli.analyze "strategy text"
    python -m material_mapper.cli.analyze strategy.txt --json
    python -m material_mapper.cli.analyze - --svg connections.svg

The strategy argument is literal text, a path to a text file, or ``-``
for stdin.  Exits 0 when the analysis completes, 1 when it fails or the
input is invalid.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider
from material_mapper.models.pipeline import AnalysisSnapshot, AnalysisStage
from material_mapper.utils.errors import AnalysisFailedError
from material_mapper.utils.logging import configure_logging

_CHANNEL = "cli"
_SEP = "=" * 60
_RULE = "-" * 40


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_text_output(snapshot: AnalysisSnapshot) -> str:
    """Format a finished snapshot as a human-readable text report.

    Sections are only included when the analysis produced data for them.
    """
    lines: list[str] = []

    lines.append(_SEP)
    lines.append("  Material Mapper - Analysis Report")
    lines.append(_SEP)
    lines.append("")

    stats = [
        f"{len(snapshot.extracted_materials)} materials extracted",
        f"{len(snapshot.matched_bmfs)} flows matched",
    ]
    if snapshot.processing_time_ms is not None:
        stats.append(f"{snapshot.processing_time_ms / 1000:.1f}s")
    if snapshot.cost_usd:
        stats.append(f"${snapshot.cost_usd:.4f}")
    lines.append("  |  ".join(stats))
    lines.append("")

    if snapshot.matched_bmfs:
        lines.append("MATCHED FLOWS")
        lines.append(_RULE)
        for flow in snapshot.matched_bmfs:
            lines.append(f"  {flow.name}  [{flow.confidence.value}]  {flow.flow_type.value}")
            if flow.reason:
                lines.append(f"    {flow.reason}")
            if flow.matched_materials:
                lines.append(f"    materials: {', '.join(flow.matched_materials)}")
        lines.append("")

    lines.append(f"EXTRACTED MATERIALS ({len(snapshot.extracted_materials)})")
    lines.append(_RULE)
    matched = snapshot.matched_materials
    for material in snapshot.extracted_materials:
        mark = "x" if material in matched else " "
        lines.append(f"  [{mark}] {material}")
    lines.append("")

    if snapshot.unmatched_materials:
        lines.append(f"UNMATCHED MATERIALS ({len(snapshot.unmatched_materials)})")
        lines.append(_RULE)
        lines.append(f"  {', '.join(snapshot.unmatched_materials)}")
        lines.append("")

    if snapshot.ecosystem_connections:
        lines.append(f"ECOSYSTEM CONNECTIONS ({len(snapshot.ecosystem_connections)})")
        lines.append(_RULE)
        for conn in snapshot.ecosystem_connections:
            suffix = f"  ({conn.relationship_type})" if conn.relationship_type else ""
            lines.append(f"  {conn.bmf_name} -> {conn.ecosystem_service}{suffix}")
        lines.append("")

    if snapshot.ecosystem_service_details:
        lines.append("ECOSYSTEM SERVICES")
        lines.append(_RULE)
        for name in snapshot.ecosystem_services:
            detail = snapshot.ecosystem_service_details.get(name)
            if detail is None:
                lines.append(f"  {name}")
                continue
            category = f" [{detail.category}]" if detail.category else ""
            lines.append(f"  {name}{category}")
            if detail.description:
                lines.append(f"    {detail.description}")
        lines.append("")

    lines.append(_SEP)
    return "\n".join(lines)


def _format_json_output(snapshot: AnalysisSnapshot, run_id: str | None) -> str:
    """Serialize the snapshot to JSON via the shared OutputFormatter."""
    from material_mapper.services.output_formatter import OutputFormatter

    output = OutputFormatter().format_full_analysis(snapshot, run_id)
    return json.dumps(output, indent=2, default=str)


# ---------------------------------------------------------------------------
# Analysis runner
# ---------------------------------------------------------------------------


def _suppress_logs() -> None:
    """Route structlog and stdlib logging to stderr at WARNING+ level.

    Called for --quiet and --json so stdout carries only the report.
    """
    configure_logging(log_level="WARNING", stream=sys.stderr)


def _read_strategy(value: str) -> str:
    """Resolve the positional argument to strategy text."""
    if value == "-":
        return sys.stdin.read()
    path = Path(value)
    if len(value) <= 255 and path.suffix and path.is_file():
        return path.read_text(encoding="utf-8")
    return value


def _progress_printer():  # noqa: ANN202
    """Return a tracker listener that prints one line per stage change."""
    last_stage: dict[str, AnalysisStage | None] = {"stage": None}

    def _on_progress(_channel: str, _run_id: str, snapshot: AnalysisSnapshot) -> None:
        stage = snapshot.stage
        if stage == AnalysisStage.IDLE:
            return
        if stage == AnalysisStage.STAGE2 and snapshot.total_chunks:
            line = (
                f"[{stage.value}] {snapshot.message} "
                f"({snapshot.chunks_completed}/{snapshot.total_chunks} chunks)"
            )
        elif stage != last_stage["stage"]:
            line = f"[{stage.value}] {snapshot.message}".rstrip()
        else:
            return
        last_stage["stage"] = stage
        print(line, file=sys.stderr)

    return _on_progress


async def _run(
    strategy: str,
    json_output: bool,
    output_file: str | None,
    svg_file: str | None,
    stream: bool,
    quiet: bool,
    provider: IMaterialMapperProvider | None = None,
) -> int:
    """Run one analysis and write its report.

    Returns 0 on success, 1 on invalid input or a failed analysis.
    """
    # Deferred imports keep --help fast.
    from material_mapper.config.loader import load_config
    from material_mapper.config.settings import Settings
    from material_mapper.pipeline.orchestrator import AnalysisRunner
    from material_mapper.pipeline.progress_tracker import ProgressTracker
    from material_mapper.providers.mapper.http_mapper_provider import HttpMapperProvider
    from material_mapper.services.bipartite_graph import BipartiteGraph, GraphLayout

    if not strategy.strip():
        print("Error: strategy description is empty", file=sys.stderr)
        return 1

    settings = Settings()
    owned_provider: HttpMapperProvider | None = None
    if provider is None:
        owned_provider = HttpMapperProvider(settings=settings)
        provider = owned_provider

    tracker = ProgressTracker()
    if not quiet:
        tracker.register_listener(_CHANNEL, _progress_printer())
    runner = AnalysisRunner(provider=provider, progress_tracker=tracker, channel=_CHANNEL)

    try:
        snapshot = await runner.run(strategy, stream=stream)
        if snapshot.stage == AnalysisStage.ERROR:
            raise AnalysisFailedError(
                message=snapshot.error or "Analysis failed",
                provider_name=provider.get_provider_name(),
            )
    except AnalysisFailedError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        if owned_provider is not None:
            await owned_provider.aclose()

    if json_output:
        text = _format_json_output(snapshot, runner.run_id)
    else:
        text = _format_text_output(snapshot)

    if output_file:
        Path(output_file).write_text(text, encoding="utf-8")
        print(f"Results written to: {output_file}", file=sys.stderr)
    else:
        print(text)

    if svg_file:
        layout = GraphLayout.from_config(load_config(settings=settings).get("graph"))
        graph = BipartiteGraph(view=runner.graph_view(), layout=layout)
        Path(svg_file).write_text(graph.render_svg(), encoding="utf-8")
        print(f"Diagram written to: {svg_file}", file=sys.stderr)

    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the analyze CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m material_mapper.cli.analyze",
        description=(
            "Analyse a building strategy: extract materials, match them to "
            "material flows, and link the flows to ecosystem services."
        ),
    )
    parser.add_argument(
        "strategy",
        type=str,
        help="Strategy text, a path to a text file, or '-' to read stdin.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output results as JSON instead of formatted text.",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write results to a file instead of stdout.",
    )
    parser.add_argument(
        "--svg",
        type=str,
        default=None,
        dest="svg_file",
        help="Also write the flow/service connection diagram as SVG.",
    )
    parser.add_argument(
        "--no-stream",
        action="store_false",
        dest="stream",
        help="Use the single-response endpoint instead of the event stream.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress and log output (implied by --json).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the analyze tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        strategy = _read_strategy(args.strategy)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Error: cannot read strategy: {exc}", file=sys.stderr)
        sys.exit(1)

    quiet = args.quiet or args.json_output
    if quiet:
        _suppress_logs()
    else:
        configure_logging(stream=sys.stderr)

    exit_code = asyncio.run(
        _run(strategy, args.json_output, args.output, args.svg_file, args.stream, quiet)
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
