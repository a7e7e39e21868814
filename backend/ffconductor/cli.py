"""
ffconductor CLI - thin entrypoint for operator commands.

Commands:
- info       FFmpeg version and capabilities
- encoders   Encoder availability on this host
- recommend  Best available encoder for a codec
- templates  List command templates
- convert    Run one conversion in the foreground
- batch      Convert files and folders as one batch
- serve      Start the HTTP API

Exit Codes:
===========
- 0: Success
- 1: Validation error (unknown template, bad --set, missing input,
     output exists, output directory not writable)
- 2: Execution error (a conversion failed or was cancelled)
- 4: System error (FFmpeg missing, database unusable)
"""

import argparse
import os
import sys
from typing import Dict, List, NoReturn, Optional

import uvicorn

from .config import ENV_DB_PATH, ENV_LOG_LEVEL, RuntimeConfig
from .execution.errors import ToolNotFoundError
from .execution.progress import format_eta, format_size
from .files import (
    OutputDirectoryError,
    OutputExistsError,
    get_available_disk_space,
    is_file_accessible,
    scan_media_files,
)
from .jobs.events import TaskProgressEvent, TaskStatusEvent
from .jobs.models import TaskStatus
from .main import Services, build_services, configure_logging
from .persistence.errors import PersistenceError
from .settings.models import FileExistsAction
from .templates.errors import TemplateNotFoundError
from .templates.models import CommandTemplate


EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_EXECUTION = 2
EXIT_SYSTEM = 4


def _config_from_args(args: argparse.Namespace) -> RuntimeConfig:
    config = RuntimeConfig.from_env()
    if args.db:
        config.db_path = args.db
    if args.log_level:
        config.log_level = args.log_level.upper()
    return config


def _open_services(args: argparse.Namespace) -> Services:
    config = _config_from_args(args)
    configure_logging(config.log_level)
    try:
        return build_services(config, recover=False)
    except PersistenceError as e:
        print(f"FATAL: Cannot open database {config.resolved_db_path}: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)


def _parse_assignments(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ['crf=20', 'encoder=libx265'] into a dict."""
    parameters: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            print(f"ERROR: --set expects key=value, got '{pair}'", file=sys.stderr)
            sys.exit(EXIT_VALIDATION)
        parameters[key.strip()] = value
    return parameters


def cmd_info(args: argparse.Namespace) -> NoReturn:
    services = _open_services(args)
    try:
        info = services.probe.get_ffmpeg_info()
        if info is None:
            print("✗ FFmpeg not found or not runnable", file=sys.stderr)
            sys.exit(EXIT_SYSTEM)
        print(f"FFmpeg {info.version}")
        print(f"  Path:    {info.path}")
        print(f"  Formats: {len(info.supported_formats)}")
        print(f"  Codecs:  {len(info.supported_codecs)}")
        try:
            print(f"  ffprobe: {services.locator.require_ffprobe()}")
        except ToolNotFoundError:
            print("  ffprobe: not found (durations and progress unavailable)")
    finally:
        services.close()
    sys.exit(EXIT_OK)


def cmd_encoders(args: argparse.Namespace) -> NoReturn:
    services = _open_services(args)
    try:
        for encoder in services.encoder_detector.detect(force_refresh=args.refresh):
            mark = "✓" if encoder.is_available else "✗"
            line = f"{mark} {encoder.name:<20} {encoder.display_name}"
            if encoder.unavailable_reason:
                line += f"  ({encoder.unavailable_reason})"
            print(line)
    finally:
        services.close()
    sys.exit(EXIT_OK)


def cmd_recommend(args: argparse.Namespace) -> NoReturn:
    services = _open_services(args)
    try:
        prefer_hardware = False if args.software else None
        print(services.encoder_detector.recommend(args.codec, prefer_hardware=prefer_hardware))
    finally:
        services.close()
    sys.exit(EXIT_OK)


def cmd_templates(args: argparse.Namespace) -> NoReturn:
    services = _open_services(args)
    try:
        service = services.template_service
        if args.category:
            listed = service.get_templates_by_category(args.category)
        else:
            listed = service.get_all_templates(include_system=not args.user_only)
        for template in listed:
            kind = "system" if template.is_system else "user"
            print(f"{template.name:<32} [{kind}] {template.category}  .{template.output_extension}")
    finally:
        services.close()
    sys.exit(EXIT_OK)


def _find_template(services: Services, reference: str) -> CommandTemplate:
    """Template by name, then by id; exits with EXIT_VALIDATION if neither matches."""
    template = (
        services.template_service.get_template_by_name(reference)
        or services.template_service.get_template(reference)
    )
    if template is None:
        print(f"ERROR: Template not found: {reference}", file=sys.stderr)
        sys.exit(EXIT_VALIDATION)
    return template


def cmd_convert(args: argparse.Namespace) -> NoReturn:
    """
    Create and run one task, printing progress until it finishes.

    Ctrl+C cancels the conversion.
    """
    parameters = _parse_assignments(args.set)
    services = _open_services(args)
    task_service = services.task_service

    try:
        template = _find_template(services, args.template)

        if not is_file_accessible(args.input):
            print(f"ERROR: Input file missing or empty: {args.input}", file=sys.stderr)
            sys.exit(EXIT_VALIDATION)

        try:
            task = task_service.create_task(
                args.input,
                args.output,
                template.id,
                parameters=parameters or None,
                file_exists_action=FileExistsAction.OVERWRITE if args.overwrite else None,
            )
        except (TemplateNotFoundError, OutputExistsError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            sys.exit(EXIT_VALIDATION)

        try:
            services.locator.require_ffmpeg()
        except ToolNotFoundError as e:
            task_service.cancel_task(task.id)
            print(f"FATAL: {e}. Install FFmpeg or set ffmpeg_path in settings.", file=sys.stderr)
            sys.exit(EXIT_SYSTEM)

        print(f"Converting {args.input} -> {task.output_path}")
        print(f"  ffmpeg {task.command}")

        with task_service.events.subscribe() as subscription:
            future = task_service.submit(task.id)
            try:
                while not future.done():
                    event = subscription.get(timeout=0.5)
                    if isinstance(event, TaskProgressEvent) and event.task_id == task.id:
                        speed = f"{event.speed:.2f}x" if event.speed else "-"
                        print(f"\r  {event.percentage:5.1f}%  {speed:>7}  {format_eta(event.eta):<24}", end="", flush=True)
                    elif isinstance(event, TaskStatusEvent) and event.task_id == task.id and event.new_status != TaskStatus.RUNNING:
                        break
            except KeyboardInterrupt:
                print("\nCancelling...", file=sys.stderr)
                task_service.cancel_task(task.id)
            future.result()

        print()
        final = task_service.get_task_or_raise(task.id)
        if final.status == TaskStatus.COMPLETED:
            print(f"✓ Completed: {final.output_path} ({format_size(final.output_file_size)})")
            exit_code = EXIT_OK
        else:
            print(f"✗ {final.status.value}: {final.error_message}", file=sys.stderr)
            exit_code = EXIT_EXECUTION
    finally:
        services.close()
    sys.exit(exit_code)


def _collect_inputs(paths: List[str], template: CommandTemplate, recursive: bool) -> List[str]:
    """Expand folders to the media files the template accepts; keep readable files."""
    inputs: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            inputs.extend(
                found for found in scan_media_files(path, recursive=recursive)
                if template.accepts_input(found)
            )
        elif is_file_accessible(path):
            inputs.append(path)
        else:
            print(f"WARNING: Skipping missing or empty input {path}", file=sys.stderr)
    return inputs


def cmd_batch(args: argparse.Namespace) -> NoReturn:
    """
    Plan a batch from files and folders, then run it in the foreground.

    --no-start only creates the batch so the HTTP service can run it later.
    Ctrl+C cancels the remaining files.
    """
    parameters = _parse_assignments(args.set)
    services = _open_services(args)
    task_service = services.task_service

    try:
        template = _find_template(services, args.template)
        inputs = _collect_inputs(args.inputs, template, args.recursive)
        if not inputs:
            print("ERROR: No input files to convert", file=sys.stderr)
            sys.exit(EXIT_VALIDATION)

        try:
            batch = task_service.create_batch(
                inputs,
                args.output_dir,
                template.id,
                name=args.name,
                parameters=parameters or None,
                name_pattern=args.name_pattern,
            )
        except (OutputExistsError, OutputDirectoryError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            sys.exit(EXIT_VALIDATION)

        children = task_service.get_batch_tasks(batch.id)
        print(f"Batch {batch.id} '{batch.name}': {len(children)} file(s)")
        for child in children:
            print(f"  {child.input_path} -> {child.output_path}")
        print(f"  Free space: {format_size(get_available_disk_space(args.output_dir))}")

        if args.no_start or not children:
            sys.exit(EXIT_OK)

        try:
            services.locator.require_ffmpeg()
        except ToolNotFoundError as e:
            task_service.cancel_batch(batch.id)
            print(f"FATAL: {e}. Install FFmpeg or set ffmpeg_path in settings.", file=sys.stderr)
            sys.exit(EXIT_SYSTEM)

        names = {child.id: child.input_path for child in children}
        with task_service.events.subscribe() as subscription:
            future = task_service.submit_batch(batch.id)
            try:
                while not future.done():
                    event = subscription.get(timeout=0.5)
                    if (
                        isinstance(event, TaskStatusEvent)
                        and event.task_id in names
                        and event.new_status != TaskStatus.RUNNING
                    ):
                        mark = "✓" if event.new_status == TaskStatus.COMPLETED else "✗"
                        print(f"  {mark} {names[event.task_id]}: {event.new_status.value}")
            except KeyboardInterrupt:
                print("\nCancelling batch...", file=sys.stderr)
                task_service.cancel_batch(batch.id)
            future.result()

        final = task_service.get_batch_or_raise(batch.id)
        print(f"{final.status.value}: {final.completed_files} completed, {final.failed_files} failed")
        exit_code = EXIT_OK if final.status == TaskStatus.COMPLETED else EXIT_EXECUTION
    finally:
        services.close()
    sys.exit(exit_code)


def cmd_serve(args: argparse.Namespace) -> NoReturn:
    if args.db:
        os.environ[ENV_DB_PATH] = args.db
    if args.log_level:
        os.environ[ENV_LOG_LEVEL] = args.log_level
    uvicorn.run(
        "ffconductor.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=(args.log_level or "info").lower(),
    )
    sys.exit(EXIT_OK)


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="ffconductor",
        description="ffconductor - FFmpeg conversion orchestration",
    )
    parser.add_argument("--db", default=None, help="Database path (default: $FFCONDUCTOR_DB_PATH or ~/.ffconductor/data.db)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: $FFCONDUCTOR_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    parser_info = subparsers.add_parser("info", help="Show FFmpeg version and capabilities")
    parser_info.set_defaults(func=cmd_info)

    parser_encoders = subparsers.add_parser("encoders", help="List encoder availability")
    parser_encoders.add_argument("--refresh", action="store_true", help="Ignore cached detection results")
    parser_encoders.set_defaults(func=cmd_encoders)

    parser_recommend = subparsers.add_parser("recommend", help="Recommend an encoder for a codec")
    parser_recommend.add_argument("codec", help="h264, hevc, av1 or vp9 (aliases accepted)")
    parser_recommend.add_argument("--software", action="store_true", help="Do not prefer hardware encoders")
    parser_recommend.set_defaults(func=cmd_recommend)

    parser_templates = subparsers.add_parser("templates", help="List command templates")
    parser_templates.add_argument("--category", default=None, help="Only this category")
    parser_templates.add_argument("--user-only", action="store_true", help="Hide system templates")
    parser_templates.set_defaults(func=cmd_templates)

    parser_convert = subparsers.add_parser("convert", help="Convert one file in the foreground")
    parser_convert.add_argument("input", help="Input media file")
    parser_convert.add_argument("output", help="Output file")
    parser_convert.add_argument("--template", required=True, help="Template name or id")
    parser_convert.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Template placeholder override, e.g. --set crf=20 (repeatable)",
    )
    parser_convert.add_argument("--overwrite", action="store_true", help="Replace an existing output file")
    parser_convert.set_defaults(func=cmd_convert)

    parser_batch = subparsers.add_parser("batch", help="Convert files and folders as one batch")
    parser_batch.add_argument("inputs", nargs="+", help="Input files and/or folders to scan")
    parser_batch.add_argument("--output-dir", required=True, help="Folder for the converted files")
    parser_batch.add_argument("--template", required=True, help="Template name or id")
    parser_batch.add_argument("--name", default=None, help="Batch name")
    parser_batch.add_argument(
        "--name-pattern",
        default=None,
        help="Output file name pattern, e.g. '{filename}_{date}' or '{dir}_{counter:3}'",
    )
    parser_batch.add_argument("--recursive", action="store_true", help="Scan folders recursively")
    parser_batch.add_argument("--set", action="append", metavar="KEY=VALUE", help="Template placeholder override (repeatable)")
    parser_batch.add_argument("--no-start", action="store_true", help="Only create the batch")
    parser_batch.set_defaults(func=cmd_batch)

    parser_serve = subparsers.add_parser("serve", help="Start the HTTP API")
    parser_serve.add_argument("--host", default="127.0.0.1")
    parser_serve.add_argument("--port", type=int, default=8085)
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
