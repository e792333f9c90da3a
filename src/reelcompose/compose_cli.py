"""CLI for timeline composition from a YAML request manifest.

Usage:
    reelcompose compose --request request.yaml --output timeline.json
    reelcompose compose --request request.yaml --output timeline.yaml \\
        --catalog catalog.yaml --query city night --defaults users.yaml
    reelcompose compose --request request.yaml --output timeline.json --probe --validate
"""

import argparse
import json
import sys
from pathlib import Path

import yaml

from .assembler import build_pool, compose_request, validate_timeline
from .collaborators import CatalogRetriever, UserDefaultsFile
from .errors import CompositionError
from .probe import fill_missing_durations
from .request_manifest import load_request_manifest


# Status column for each diagnostic code; anything else prints as WARN.
_STATUS = {
    "unknown_ref": "DROP",
    "duplicate_ref": "DROP",
    "out_of_range": "DROP",
    "too_short": "DROP",
    "too_close": "DROP",
    "event_out_of_range": "DROP",
    "unknown_effect": "DROP",
    "bookend_unavailable": "DROP",
    "event_clamped": "CLAMP",
    "extended": "FIX",
    "shortened": "FIX",
    "residual": "FIX",
    "transition_cleared": "FIX",
}


def _print_diagnostics(diagnostics) -> None:
    for diag in diagnostics:
        status = _STATUS.get(diag.code, "WARN")
        print(f"  {status:<6} {diag.stage}: {diag.message}")


def write_timeline(timeline, output_path: str | Path) -> None:
    """Write a timeline as JSON, or YAML for .yaml/.yml outputs."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = timeline.model_dump(mode="json")
    with open(output_path, "w") as f:
        if output_path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(data, f, sort_keys=False)
        else:
            json.dump(data, f, indent=2)
            f.write("\n")


def compose(
    request_path: str,
    output_path: str,
    catalog_path: str | None = None,
    query: list[str] | None = None,
    defaults_path: str | None = None,
    probe: bool = False,
    validate: bool = False,
) -> int:
    """Load a request, compose it, and write the timeline.

    Returns:
        Process exit code: 0 on success, 1 on a composition failure or
        (with validate) an invariant violation.
    """
    config = load_request_manifest(request_path)
    print(f"Request: {request_path} ({config['mode']} mode)")

    if probe:
        config["owned"], diagnostics = fill_missing_durations(config["owned"])
        _print_diagnostics(diagnostics)

    retrieved = []
    if catalog_path:
        retrieved = CatalogRetriever(catalog_path).retrieve(query or [])
        print(f"  FOUND  {len(retrieved)} catalog items for {query or []}")

    settings = UserDefaultsFile(defaults_path) if defaults_path else None

    pool = build_pool(config, retrieved)
    try:
        result = compose_request(config, pool, settings)
    except CompositionError as e:
        print(f"Error [{e.category}]: {e.message}", file=sys.stderr)
        return 1

    _print_diagnostics(result.diagnostics)

    timeline = result.timeline
    durations = timeline.durations
    print(
        f"\nTimeline {timeline.id}: {len(timeline.segments)} segments, "
        f"{durations.total:.2f}s total "
        f"(lead-in {durations.lead_in:.2f}s, core {durations.core:.2f}s, "
        f"lead-out {durations.lead_out:.2f}s)"
    )

    if validate:
        problems = validate_timeline(timeline)
        for problem in problems:
            print(f"  FAIL   {problem}")
        if problems:
            return 1
        print("  OK     timeline invariants hold")

    write_timeline(timeline, output_path)
    print(f"Writing to: {output_path}")
    return 0


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Compose a timeline from a YAML request manifest.",
    )
    parser.add_argument(
        "--request", required=True,
        help="Path to YAML request manifest",
    )
    parser.add_argument(
        "--output", required=True,
        help="Output timeline path (.json, or .yaml/.yml)",
    )
    parser.add_argument(
        "--catalog", default=None,
        help="YAML catalog to retrieve extra library candidates from",
    )
    parser.add_argument(
        "--query", nargs="*", default=None,
        help="Query terms for catalog retrieval",
    )
    parser.add_argument(
        "--defaults", default=None,
        help="YAML file of per-user lead-in/lead-out defaults",
    )
    parser.add_argument(
        "--probe", action="store_true",
        help="Measure owned media files declared without a duration",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Check timeline invariants before writing",
    )
    parsed = parser.parse_args(args)

    code = compose(
        request_path=parsed.request,
        output_path=parsed.output,
        catalog_path=parsed.catalog,
        query=parsed.query,
        defaults_path=parsed.defaults,
        probe=parsed.probe,
        validate=parsed.validate,
    )
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
