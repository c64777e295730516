"""Main entry point: argument parsing, CLI mode, and HTTP server startup."""
import os
import sys
import json
import logging
import argparse

from pathlib import Path

from filetriage import user_config
from filetriage.config import logger, load_settings, parse_probe_list, ALL_PROBES
from filetriage.cli.printers import print_report_cli, print_report_json
from filetriage.report import analyze_file_sync, AnalysisError

# Per-probe timeouts are only read from the config file.
_CONFIG_KEYS = user_config.CONFIG_KEYS + tuple(f"{name}_timeout" for name in ALL_PROBES)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Static identification reports for binary artifacts.", formatter_class=argparse.RawTextHelpFormatter)

    # --- Input & Mode ---
    parser.add_argument("--input-file", type=str, default=None, help="Path to a file to analyze and print a report for (CLI mode).")
    parser.add_argument("--json", action="store_true", help="CLI mode: print the report as JSON instead of text.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging.")

    # --- Probes ---
    probe_group = parser.add_argument_group('Probe Options')
    probe_group.add_argument("--probes", type=str, default=None, help=f"Comma-separated list of probes to enable (known: {', '.join(ALL_PROBES)}). Overrides configuration.")
    for probe_name in ALL_PROBES:
        probe_group.add_argument(f"--skip-{probe_name}", action="store_true", help=f"Skip the '{probe_name}' probe.")
    probe_group.add_argument("--probe-timeout", type=float, default=None, help="Timeout in seconds for each external probe (default: 120).")

    # --- Server Options ---
    server_group = parser.add_argument_group('HTTP Server Options')
    server_group.add_argument("--server", action="store_true", help="Run the HTTP upload server.")
    server_group.add_argument("--host", type=str, default=None, help="Server host (default: 127.0.0.1).")
    server_group.add_argument("--port", type=int, default=None, help="Server port (default: 8000).")
    server_group.add_argument("--upload-dir", type=str, default=None, help="Directory that receives uploaded files (default: ./uploads).")

    # --- Persistent Configuration ---
    config_group = parser.add_argument_group('Configuration Options', f"Stored in {user_config.CONFIG_FILE}. Keys: {', '.join(_CONFIG_KEYS)}.")
    config_group.add_argument("--set-config", metavar="KEY=VALUE", action="append", default=[], help="Store a configuration value and exit. Repeatable.")
    config_group.add_argument("--unset-config", metavar="KEY", action="append", default=[], help="Remove a stored configuration value and exit. Repeatable.")
    config_group.add_argument("--show-config", action="store_true", help="Print the stored configuration, noting environment overrides, and exit.")
    return parser


def _handle_config_commands(parser, args) -> bool:
    """Apply --set-config/--unset-config/--show-config. Returns True if any were given."""
    if not (args.set_config or args.unset_config or args.show_config):
        return False
    for item in args.set_config:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or key not in _CONFIG_KEYS:
            parser.error(f"--set-config expects KEY=VALUE with KEY one of: {', '.join(_CONFIG_KEYS)}")
        user_config.set_config_value(key, value.strip())
        print(f"[*] Saved '{key}'.")
    for key in args.unset_config:
        if user_config.delete_config_value(key):
            print(f"[*] Removed '{key}'.")
        else:
            print(f"[*] '{key}' was not set.")
    if args.show_config:
        print(json.dumps(user_config.get_effective_config(), indent=2, sort_keys=True))
    return True


def _resolve_settings(args):
    base = load_settings()
    enabled = parse_probe_list(args.probes) if args.probes is not None else base.enabled_probes
    skipped = [name for name in ALL_PROBES if getattr(args, f"skip_{name}", False)]
    if skipped:
        logger.info(f"Skipping probes: {', '.join(skipped)}")
        enabled = tuple(name for name in enabled if name not in skipped)
    return load_settings(
        enabled_probes=enabled,
        probe_timeout=args.probe_timeout,
        upload_dir=args.upload_dir,
        host=args.host,
        port=args.port,
    )


def _run_server(settings, log_level):
    try:
        import uvicorn
    except ImportError:
        logger.critical("uvicorn is not installed. Install it with: pip install uvicorn")
        sys.exit(1)
    from filetriage.server import create_app

    app = create_app(settings)
    logger.info(f"Starting HTTP server on http://{settings.host}:{settings.port}")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=logging.getLevelName(log_level).lower())
    except KeyboardInterrupt:
        logger.info("Server stopped by user (KeyboardInterrupt).")


def _run_cli(abs_input_file, settings, as_json):
    if not os.path.isfile(abs_input_file):
        logger.critical(f"Input file not found: {abs_input_file}")
        print(f"[!] Error: Input file not found: {abs_input_file}", file=sys.stderr)
        sys.exit(1)
    try:
        report = analyze_file_sync(abs_input_file, settings).to_dict()
    except KeyboardInterrupt:
        print("\n[*] CLI Analysis interrupted by user. Exiting.")
        sys.exit(1)
    except AnalysisError as e:
        print(f"[!] {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e_cli_main:
        print(f"\n[!] A critical unexpected error occurred during CLI analysis: {type(e_cli_main).__name__} - {e_cli_main}", file=sys.stderr)
        sys.exit(1)

    if as_json:
        print_report_json(report)
    else:
        print_report_cli(report, abs_input_file)


def main(argv=None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    if _handle_config_commands(parser, args):
        return

    if not args.server and not args.input_file:
        parser.error("one of --input-file or --server is required")

    # Configure logging level based on verbosity AFTER args are parsed
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logger.setLevel(log_level)
    if args.server:
        logging.getLogger('uvicorn').setLevel(log_level)
        logging.getLogger('uvicorn.error').setLevel(log_level)
        logging.getLogger('uvicorn.access').setLevel(logging.WARNING if not args.verbose else logging.DEBUG)

    settings = _resolve_settings(args)
    logger.debug(f"Resolved settings: {settings}")

    if args.server:
        _run_server(settings, log_level)
    else:
        _run_cli(str(Path(args.input_file).resolve()), settings, args.json)


if __name__ == "__main__":
    main()
