import argparse
import asyncio
import sys
from pathlib import Path

import uvicorn

from zenorun.config import config
from zenorun.const import FAILURE_EXIT_CODE, UNKNOWN_EXIT_CODE, USAGE_EXIT_CODE
from zenorun.exceptions import (
    InvalidRequestError,
    ProcessError,
    RunTimeoutError,
    ZenorunError,
)
from zenorun.process import LogStream
from zenorun.runner import Orchestrator
from zenorun.schemas import ProjectType, Service, Workflow, WorkflowRequest
from zenorun.setup_images import DEFAULT_TYPES, setup_images
from zenorun.utils import parse_duration
from zenorun.web import app


def env_pair(value: str) -> tuple[str, str]:
    key, sep, val = value.partition('=')
    if not sep or not key:
        raise argparse.ArgumentTypeError(f'expected KEY=VALUE, got {value!r}')
    return key, val


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='zenorun',
        description='Run build/test/lint/run workflows of a git repository in a container',
    )
    commands = parser.add_subparsers(dest='command', required=True)

    run = commands.add_parser('run', help='run a workflow against a repository')
    run.add_argument('--repo', required=True, help='git repository url (https://...)')
    run.add_argument('--ref', default='main', help='branch or tag')
    run.add_argument(
        '--workflow', required=True, choices=[x.value for x in Workflow]
    )
    run.add_argument(
        '--service', default=Service.all.value, choices=[x.value for x in Service]
    )
    run.add_argument('--entry', help='entry file for the run workflow, e.g. server.py')
    run.add_argument(
        '--publish-ui', type=int, default=0, help='host port for the ui (0 = pick)'
    )
    run.add_argument(
        '--publish-api',
        '--publish',
        type=int,
        default=0,
        help='host port for the api or single service (0 = pick)',
    )
    run.add_argument('--dir', type=Path, help='checkout directory')
    run.add_argument(
        '--timeout', default=f'{config.default_timeout:g}s', help='e.g. 90s, 10m, 1h'
    )
    run.add_argument(
        '--env',
        type=env_pair,
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='extra environment variable for the container',
    )
    run.add_argument('--env-file', type=Path)

    images = commands.add_parser('build-images', help='build missing runner images')
    images.add_argument(
        'types',
        nargs='*',
        type=ProjectType,
        default=list(DEFAULT_TYPES),
        metavar='TYPE',
        help='python, node, polyglot or unknown',
    )

    commands.add_parser('server', help='serve the http api')
    return parser


async def print_logs(log: LogStream):
    async for line in log:
        print(line, flush=True)


async def run_workflow(request: WorkflowRequest) -> int:
    log = LogStream()
    task = asyncio.create_task(Orchestrator().execute(request, log))
    await print_logs(log)
    return (await task).exit_code


async def build_images(types: list[ProjectType]) -> list[str]:
    log = LogStream()
    task = asyncio.create_task(setup_images(types, log))
    await print_logs(log)
    return await task


def cmd_run(args: argparse.Namespace) -> int:
    try:
        request = WorkflowRequest(
            repo_url=args.repo,
            ref=args.ref,
            workflow=args.workflow,
            service=args.service,
            entry=args.entry,
            ui_port=args.publish_ui,
            api_port=args.publish_api,
            checkout_dir=args.dir,
            timeout=parse_duration(args.timeout),
            env=dict(args.env),
            env_file=args.env_file,
        )
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too
        print(f'error: {e}', file=sys.stderr)
        return USAGE_EXIT_CODE

    try:
        return asyncio.run(run_workflow(request))
    except KeyboardInterrupt:
        print('error: interrupted', file=sys.stderr)
        return UNKNOWN_EXIT_CODE
    except InvalidRequestError as e:
        print(f'error: {e}', file=sys.stderr)
        return USAGE_EXIT_CODE
    except RunTimeoutError:
        print(f'error: timed out after {args.timeout}', file=sys.stderr)
        return UNKNOWN_EXIT_CODE
    except ProcessError as e:
        print(f'error: {e}', file=sys.stderr)
        return UNKNOWN_EXIT_CODE
    except ZenorunError as e:
        print(f'error: {e}', file=sys.stderr)
        return FAILURE_EXIT_CODE


def cmd_build_images(args: argparse.Namespace) -> int:
    try:
        images = asyncio.run(build_images(args.types))
    except KeyboardInterrupt:
        print('error: interrupted', file=sys.stderr)
        return UNKNOWN_EXIT_CODE
    except ZenorunError as e:
        print(f'error: {e}', file=sys.stderr)
        return FAILURE_EXIT_CODE
    for image in images:
        print(image)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == 'run':
        return cmd_run(args)
    elif args.command == 'build-images':
        return cmd_build_images(args)
    uvicorn.run(app, host=config.host, port=config.port)
    return 0


if __name__ == '__main__':
    sys.exit(main())
