#!/usr/bin/env python3
"""Command line entry point for cliff."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import boto3
import click

from .. import __version__
from ..cloudformation import (
    BackoffRetrier,
    ChangeSetLifecycle,
    ChangeSetRequest,
    ChangeSetResult,
    diff_stack,
    render_result,
)
from ..config import load_settings
from ..differ import get_differ


def parse_parameters(ctx, param, values) -> Tuple[Tuple[str, str], ...]:
    """Parse repeated KEY=value options into ordered pairs."""
    pairs: List[Tuple[str, str]] = []
    for value in values:
        key, sep, val = value.partition("=")
        if not sep:
            raise click.BadParameter(f"invalid KEY=value: no '=' found in '{value}'")
        pairs.append((key, val))
    return tuple(pairs)


def configure_logging(verbose: bool) -> None:
    """Log to stderr; debug output with --verbose or CLIFF_LOG=debug."""
    debug = verbose or os.environ.get("CLIFF_LOG", "").lower() == "debug"
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # botocore is far too chatty at debug level
    logging.getLogger("botocore").setLevel(logging.WARNING)


def create_client(region: Optional[str] = None, profile: Optional[str] = None) -> Any:
    """Create a CloudFormation client from the default credential chain."""
    session_args = {}
    if region:
        session_args["region_name"] = region
    if profile:
        session_args["profile_name"] = profile

    session = boto3.Session(**session_args)
    return session.client("cloudformation")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="cliff")
@click.option(
    "--stack-name",
    "-s",
    required=True,
    help="name of the CloudFormation stack to diff against",
)
@click.option(
    "--parameters",
    "-p",
    multiple=True,
    callback=parse_parameters,
    metavar="KEY=VALUE",
    help="template parameter in the form 'parameter-name=parameter-value', may be repeated",
)
@click.option("--region", help="AWS region")
@click.option("--profile", help="AWS profile to use")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML settings file (defaults to .cliff.yaml when present)",
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.argument("filename", type=click.Path(dir_okay=False, path_type=Path))
def main(
    stack_name, parameters, region, profile, config_path, output_json, no_color, verbose, filename
) -> None:
    """A CloudFormation stack diff tool.

    Diffs FILENAME against the template of a deployed stack and lists the
    resource changes CloudFormation would make.
    """
    configure_logging(verbose)
    color = not no_color
    report: Dict[str, Any] = {"stack_name": stack_name}

    def show_template_diff(template_diff: str) -> None:
        if output_json:
            report["template_diff"] = template_diff
        else:
            click.echo(template_diff)

    def show_result(result: ChangeSetResult) -> None:
        if output_json:
            report["status"] = result.status
            report["status_reason"] = result.status_reason
            report["changes"] = [c.to_dict() for c in result.changes]
            click.echo(json.dumps(report, indent=2, default=str))
        else:
            for line in render_result(result, color=color):
                click.echo(line)

    try:
        settings = load_settings(config_path, region=region, profile=profile)
        template_body = filename.read_text(encoding="utf-8")
        differ = get_differ(settings.differ)

        lifecycle = ChangeSetLifecycle(
            create_client(settings.region, settings.profile),
            retrier=BackoffRetrier(settings.retry_policy()),
            poll_interval=settings.poll_interval,
            poll_timeout=settings.poll_timeout,
            cleanup_timeout=settings.cleanup_timeout,
        )
        request = ChangeSetRequest(
            stack_name=stack_name,
            template_body=template_body,
            parameters=parameters,
            change_set_name=settings.change_set_name,
        )

        asyncio.run(
            diff_stack(
                lifecycle,
                request,
                filename,
                differ,
                on_template_diff=show_template_diff,
                on_result=show_result,
            )
        )

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
