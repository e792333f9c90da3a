"""Subcommand dispatcher for reelcompose.

Usage:
    reelcompose compose --request ... --output ...
    reelcompose probe clip.mp4 voiceover.mp3
"""

import argparse
import sys


def probe_main(args=None):
    parser = argparse.ArgumentParser(
        description="Print the duration of local media files.",
    )
    parser.add_argument("files", nargs="+", help="Video or audio files")
    parsed = parser.parse_args(args)

    from .probe import probe_duration

    failed = False
    for path in parsed.files:
        try:
            duration = probe_duration(path)
        except OSError as e:
            print(f"  FAIL   {path}: {e}")
            failed = True
            continue
        print(f"  {duration:8.3f}s  {path}")
    if failed:
        sys.exit(1)


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="reelcompose",
        description="Timeline composition for short-form video.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Each subcommand parses its own arguments.
    subparsers.add_parser("compose", help="Compose a timeline from a YAML request")
    subparsers.add_parser("probe", help="Measure media file durations")

    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "compose":
        from .compose_cli import main as compose_main
        compose_main(remaining)
    elif parsed.command == "probe":
        probe_main(remaining)


if __name__ == "__main__":
    main()
