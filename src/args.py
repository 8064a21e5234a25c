"""Argument parsing functionality for depresolve."""

import argparse
from constants import Constants, OutputFormats


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depresolve",
        description=(
            "depresolve - resolve a module manifest into a conflict-free dependency set"
        ),
        add_help=True,
    )

    parser.add_argument("manifest",
                        help="Path to the root manifest (pom.xml, *.pom, *.yaml, *.yml or *.json)",
                        action="store", type=str)

    parser.add_argument("-r", "--repository",
                        dest="REPOSITORIES",
                        help="Manifest repository: local directory or http(s) URL (repeatable, searched in order)",
                        action="append", type=str,
                        default=[])
    parser.add_argument("--central",
                        dest="USE_CENTRAL",
                        help=f"Append {Constants.REPOSITORY_URL_MAVEN_CENTRAL} to the repositories.",
                        action="store_true")

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to output file (JSON or CSV)",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format (json, csv or text). If not specified, inferred from --output extension; "
                             "defaults to json.",
                        action="store",
                        type=str.lower,
                        choices=[f.value for f in OutputFormats])

    parser.add_argument("--exclusion-scope",
                        dest="EXCLUSION_SCOPE",
                        help="How far exclusion rules reach: whole result (global) or their own subtree (path)",
                        action="store",
                        type=str,
                        choices=Constants.EXCLUSION_SCOPES)
    parser.add_argument("--bom-policy",
                        dest="BOM_CONFLICT_POLICY",
                        help="Which imported BOM wins when two manage the same module",
                        action="store",
                        type=str,
                        choices=Constants.BOM_CONFLICT_POLICIES)
    parser.add_argument("-w", "--workers",
                        dest="MAX_WORKERS",
                        help=f"Concurrent manifest fetches (default: {Constants.MAX_WORKERS})",
                        action="store",
                        type=int)
    parser.add_argument("--deadline",
                        dest="DEADLINE",
                        help="Give up fetching manifests after this many seconds",
                        action="store",
                        type=float)

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='WARNING')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")

    # Config file (general)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--set",
                        dest="CONFIG_SET",
                        help="Set configuration override (KEY=VALUE format, can be used multiple times)",
                        action="append",
                        type=str,
                        default=[])

    return parser.parse_args(argv)
