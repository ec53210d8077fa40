"""
Command-line interface for transcoder.

This is the main entry point for the application.
"""

import argparse
import functools
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from transcoder import __url__, __version__
from transcoder.cancel import CancellationToken, SignalListener
from transcoder.config import (
    TOML_AVAILABLE,
    Config,
    apply_config_to_args,
    config_file_path,
    get_config_dir,
    load_config_file,
    load_file,
    parse_extensions,
    save_default_config,
)
from transcoder.decision import DecisionEngine
from transcoder.driver import BatchDriver
from transcoder.errors import ConfigurationError
from transcoder.log import setup_logging
from transcoder.models import BatchSummary
from transcoder.notifications import build_notifier, check_notification_support
from transcoder.probe import read_metadata
from transcoder.session import TranscodeSession
from transcoder.ui import ProgressDisplay, fmt_hms

# -------------------- ARGUMENT PARSING --------------------


def build_parser() -> argparse.ArgumentParser:
    defaults = Config()
    parser = argparse.ArgumentParser(
        prog="transcoder",
        description="transcoder is an opinionated wrapper around ffmpeg",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s '/videos/*.mkv'                   # Transcode every MKV in /videos
  %(prog)s --keep-old '/videos/**/*.flv'     # Recursive, keep originals that would grow
  %(prog)s -e .avi -e .mkv movie.avi         # Custom extension allow-list
  %(prog)s -f '-c:v libx264 -crf 20' a.mkv  # Custom encoder flags
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}\nURL: {__url__}",
    )

    parser.add_argument("paths", nargs="*", metavar="path", help="Files or glob patterns to transcode")

    log_group = parser.add_argument_group("Logging")
    log_group.add_argument("--log", default=defaults.log_level, metavar="LEVEL", help="The log level to output")
    log_group.add_argument("--colors", action="store_true", help="Force output with colors")

    enc_group = parser.add_argument_group("Encoding")
    enc_group.add_argument("-f", "--flags", default=defaults.flags, help="The base flags used for all transcodes")
    enc_group.add_argument(
        "-e",
        "--extensions",
        action="append",
        default=[],
        metavar="EXT",
        help="Transcoded file extensions, comma separated or repeated (default: .mp4,.mkv,.flv)",
    )
    enc_group.add_argument(
        "--interval", type=float, default=defaults.interval, help="How often to output transcoding status (seconds)"
    )
    enc_group.add_argument("--stderr", action="store_true", help="Whether to output ffmpeg stderr stream")
    enc_group.add_argument("--ffmpeg", default=defaults.ffmpeg, help="ffmpeg binary")
    enc_group.add_argument("--ffprobe", default=defaults.ffprobe, help="ffprobe binary")

    policy_group = parser.add_argument_group("Keep/replace policy")
    policy_group.add_argument(
        "--keep-old", action="store_true", help="Keep old version of video if transcoded version is larger"
    )
    policy_group.add_argument(
        "--early-exit",
        action="store_true",
        default=defaults.early_exit,
        help="Early exit if transcoded version is larger than original (requires keep-old, default)",
    )
    policy_group.add_argument("--no-early-exit", action="store_false", dest="early_exit")

    notify_group = parser.add_argument_group("Notifications")
    notify_group.add_argument("--tg-bot-key", default=defaults.tg_bot_key, help="Telegram Bot API Key")
    notify_group.add_argument("--tg-chat-id", type=int, default=defaults.tg_chat_id, help="Telegram Bot Chat ID")
    notify_group.add_argument("--notify", action="store_true", help="Send a desktop notification per file")

    ui_group = parser.add_argument_group("UI settings")
    ui_group.add_argument("--no-progress", action="store_false", dest="progress", help="Disable the progress bar")

    util_group = parser.add_argument_group("Utility commands")
    util_group.add_argument("--config", metavar="FILE", help="Read configuration from FILE only")
    util_group.add_argument("--show-config", action="store_true", help="Show configuration file and values")
    util_group.add_argument("--check-requirements", action="store_true", help="Check ffmpeg/ffprobe availability")

    return parser


def parse_args(args: Optional[List[str]] = None) -> Tuple[Config, argparse.Namespace]:
    """Parse command-line arguments and return config + the parsed namespace."""
    parser = build_parser()
    parsed = parser.parse_args(args)

    if not parsed.paths and not (parsed.show_config or parsed.check_requirements):
        parser.error("must supply at least a single path")

    cfg = Config(
        flags=parsed.flags,
        interval=parsed.interval,
        stderr=parsed.stderr,
        progress=parsed.progress,
        keep_old=parsed.keep_old,
        early_exit=parsed.early_exit,
        tg_bot_key=parsed.tg_bot_key,
        tg_chat_id=parsed.tg_chat_id,
        notify=parsed.notify,
        log_level=parsed.log,
        colors=parsed.colors,
        ffmpeg=parsed.ffmpeg,
        ffprobe=parsed.ffprobe,
    )
    if parsed.extensions:
        cfg.extensions = parse_extensions(parsed.extensions)

    return cfg, parsed


# -------------------- SETUP --------------------


def load_configuration(cfg: Config, explicit: Optional[str] = None) -> None:
    """
    Merge file configuration into ``cfg`` and validate the result.

    Raises:
        ConfigurationError: Unreadable file or invalid values.
    """
    if explicit:
        file_config = load_file(Path(explicit).expanduser())
    else:
        config_dir = get_config_dir()
        try:
            save_default_config(config_dir)
        except OSError as e:
            logger.debug(f"Could not write default config to {config_dir}: {e}")
        file_config = load_config_file(config_dir)

    if file_config:
        apply_config_to_args(file_config, cfg)
    cfg.validate()


def check_binaries(cfg: Config) -> None:
    """
    Make sure the encoder and the prober can be found.

    Raises:
        ConfigurationError: A binary is missing.
    """
    for binary in (cfg.ffmpeg, cfg.ffprobe):
        if shutil.which(binary) is None:
            raise ConfigurationError(f"{binary} not found in PATH")


def check_requirements(cfg: Config) -> int:
    """Check system requirements."""
    print(f"transcoder v{__version__} - Requirements Check")
    print("=" * 50)
    print()

    all_ok = True

    for binary in (cfg.ffmpeg, cfg.ffprobe):
        try:
            result = subprocess.run([binary, "-version"], capture_output=True, text=True, timeout=5)
        except FileNotFoundError:
            print(f"  ✗ {binary}: NOT FOUND")
            all_ok = False
            continue
        except (OSError, subprocess.TimeoutExpired) as e:
            print(f"  ✗ {binary}: error - {e}")
            all_ok = False
            continue
        if result.returncode == 0:
            version_line = result.stdout.split("\n")[0] if result.stdout else "unknown"
            print(f"  ✓ {binary}: {version_line}")
        else:
            print(f"  ✗ {binary}: installed but returned error")
            all_ok = False

    print()
    print("Optional features:")
    print("-" * 40)
    print(f"  {'✓' if TOML_AVAILABLE else '○'} TOML support: {'available' if TOML_AVAILABLE else 'not available'}")
    notif = check_notification_support()
    print(f"  {'✓' if notif['any'] else '○'} Desktop notifications: {'available' if notif['any'] else 'not available'}")
    telegram = bool(cfg.tg_bot_key and cfg.tg_chat_id)
    print(f"  {'✓' if telegram else '○'} Telegram: {'configured' if telegram else 'not configured'}")

    print()
    if all_ok:
        print("✓ All requirements satisfied")
        return 0
    print("✗ Some requirements missing")
    return 1


def show_config(cfg: Config, explicit: Optional[str] = None) -> int:
    path = Path(explicit).expanduser() if explicit else config_file_path(get_config_dir())
    print(f"Config file: {path}")
    for key, value in vars(cfg).items():
        if key == "tg_bot_key" and value:
            value = "***"
        print(f"  {key} = {value!r}")
    return 0


# -------------------- MAIN --------------------


def run(cfg: Config, paths: List[str], token: Optional[CancellationToken] = None) -> BatchSummary:
    """Wire the engine together and process ``paths``."""
    token = token or CancellationToken()
    display = ProgressDisplay(enabled=cfg.progress and not cfg.stderr)
    reader = functools.partial(read_metadata, ffprobe=cfg.ffprobe)

    session = TranscodeSession(token, ffmpeg=cfg.ffmpeg, show_stderr=cfg.stderr, on_progress=display.update)
    engine = DecisionEngine(cfg.keep_old, token, metadata_reader=reader)
    notifier = build_notifier(cfg.tg_bot_key, cfg.tg_chat_id, cfg.notify)
    driver = BatchDriver(cfg, token, session, engine, reader, notifier=notifier, display=display)

    try:
        return driver.run(paths)
    finally:
        notifier.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    setup_logging()

    cfg, args = parse_args(argv)

    try:
        load_configuration(cfg, args.config)
        setup_logging(cfg.log_level, cfg.colors)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    if args.show_config:
        return show_config(cfg, args.config)

    if args.check_requirements:
        return check_requirements(cfg)

    try:
        check_binaries(cfg)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    start_time = time.time()
    token = CancellationToken()
    with SignalListener(token):
        summary = run(cfg, args.paths, token)

    logger.info(
        f"Finished in {fmt_hms(time.time() - start_time)}: {summary.replaced} replaced, "
        f"{summary.kept} kept, {summary.errors} failed, {summary.skipped} skipped"
    )
    if summary.interrupted:
        logger.warning("Processing was interrupted")

    # Per-file failures and interruptions do not change the exit code
    return 0


if __name__ == "__main__":
    sys.exit(main())
