"""depresolve - resolve a module manifest into a conflict-free dependency set.

    Returns:
        int: Exit code
"""
import logging
import sys

from args import parse_args
from cli_config import build_config
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes, OutputFormats
from errors import ResolutionError
from manifest.sources import build_source
from resolver.driver import ResolutionDriver
from resolver.report import (
    FailureReport,
    export_csv,
    export_json,
    render_csv,
    render_failure_csv,
    render_failure_text,
    render_text,
)

logger = logging.getLogger(__name__)


def output_format(args):
    """Pick the output format from --format, then the --output extension."""
    if args.OUTPUT_FORMAT:
        return args.OUTPUT_FORMAT
    if args.OUTPUT and args.OUTPUT.lower().endswith(".csv"):
        return OutputFormats.CSV.value
    if args.OUTPUT and args.OUTPUT.lower().endswith(".txt"):
        return OutputFormats.TEXT.value
    return OutputFormats.JSON.value


def write_output(resolved, args):
    """Export the resolved set to a file or the console.

    Returns:
        int: Exit code
    """
    fmt = output_format(args)
    try:
        if args.OUTPUT:
            if fmt == OutputFormats.CSV.value:
                export_csv(resolved, args.OUTPUT)
            elif fmt == OutputFormats.TEXT.value:
                with open(args.OUTPUT, "w", encoding="utf-8") as file:
                    file.write(render_text(resolved))
                    file.write("\n")
            else:
                export_json(resolved, args.OUTPUT)
            return ExitCodes.SUCCESS.value
    except OSError:
        return ExitCodes.FILE_ERROR.value

    if args.QUIET:
        return ExitCodes.SUCCESS.value
    if fmt == OutputFormats.TEXT.value:
        print(render_text(resolved))
    elif fmt == OutputFormats.CSV.value:
        sys.stdout.write(render_csv(resolved))
    else:
        print(resolved.to_json())
    return ExitCodes.SUCCESS.value


def write_failure(exc, args):
    """Write the diagnostics of a failed run where the result would have gone."""
    report = FailureReport.from_error(exc)
    fmt = output_format(args)
    if fmt == OutputFormats.CSV.value:
        text = render_failure_csv(report)
    elif fmt == OutputFormats.TEXT.value:
        text = render_failure_text(report) + "\n"
    else:
        text = report.to_json() + "\n"

    if args.OUTPUT:
        try:
            with open(args.OUTPUT, "w", newline="", encoding="utf-8") as file:
                file.write(text)
        except OSError as e:
            logger.error("Diagnostics couldn't be written to disk: %s", e)
    elif not args.QUIET:
        sys.stdout.write(text)


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE, args.QUIET)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    config = build_config(args)
    logger.debug("Effective configuration: %s", config.to_dict())
    repositories = config.repositories or [Constants.REPOSITORY_URL_MAVEN_CENTRAL]
    logger.info("Resolving %s against %s", args.manifest, ", ".join(repositories))
    source = build_source(repositories, retries=config.http_retry_max, timeout=config.http_timeout)

    driver = ResolutionDriver(source, config)
    try:
        resolved = driver.resolve_path(args.manifest)
    except ResolutionError as exc:
        write_failure(exc, args)
        if is_debug_enabled(logger):
            logger.debug(
                "CLI finished",
                extra=extra_context(
                    event="function_exit", component="cli", action="main",
                    outcome=exc.kind, state=driver.state.value
                )
            )
        return exc.exit_code.value
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return ExitCodes.CANCELLED.value

    code = write_output(resolved, args)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main", outcome="success")
        )
    return code


if __name__ == "__main__":
    sys.exit(main())
