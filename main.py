#!/usr/bin/env python3
"""Play Mode Switcher: entry point"""

import argparse
import faulthandler
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "playmodeswitcher"


def setup_logging(verbose: bool = False) -> tuple[logging.Logger, Path]:
    log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "PlayModeSwitcher"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "playmodeswitcher.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter("%(message)s"))

    # Engine modules log under their own names; collect them in the same file.
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(console)
    return logger, log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Switch the game between play modes")
    parser.add_argument("--game-root", required=True, help="Game installation directory")
    parser.add_argument("--docs-root", required=True, help="Game folder under My Documents")
    parser.add_argument("--manifest", required=True, help="Path to the retrieved play-mode manifest")
    parser.add_argument("--mode", help="Play mode to activate")
    parser.add_argument("--previous-mode", help="Mode to migrate user data away from when none is recorded")
    parser.add_argument("--list-modes", action="store_true")
    parser.add_argument("--offline", action="store_true", help="Only offer cached modes")
    parser.add_argument("--clear-cache", action="store_true", help="Only flush the runtime cache")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def run(argv=None) -> int:
    args = parse_args(argv)
    logger, log_dir = setup_logging(args.verbose)
    install_crash_handler(logger, log_dir)
    logger.info("Starting Play Mode Switcher")

    from pydantic import ValidationError

    from manifest_schema import load_manifest
    from mode_paths import EnginePaths
    from mode_switcher import ModeSwitcher

    try:
        manifest = load_manifest(args.manifest)
    except (OSError, ValueError, ValidationError) as exc:
        logger.error("Could not load manifest %s: %s", args.manifest, exc)
        return 2

    switcher = ModeSwitcher(
        EnginePaths.from_roots(args.game_root, args.docs_root),
        manifest,
        log_callback=logger.info,
    )

    if args.clear_cache:
        ok, msg = switcher.clear_runtime_cache()
        logger.info(msg)
        return 0 if ok else 1

    if args.list_modes or not args.mode:
        current = switcher.state.last_used_mode()
        for mode in switcher.available_modes(offline=args.offline):
            marker = "*" if mode.name == current else " "
            mp = "multiplayer" if mode.multiplayer_compatible else "single player"
            logger.info(f" {marker} {mode.name}  ({mp})")
        return 0

    if args.offline:
        mode = manifest.find_mode(args.mode)
        if mode is not None and not switcher.is_available_offline(mode):
            logger.error("'%s' is not available offline", args.mode)
            return 1

    result = switcher.switch_mode(args.mode, args.previous_mode)
    logger.info(result.message)
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(run())
