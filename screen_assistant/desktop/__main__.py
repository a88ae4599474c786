#!/usr/bin/env python3
"""
Screen Assistant Launcher

Starts the tray application with its main window.

Usage:
    python -m screen_assistant.desktop                  # Start the app
    python -m screen_assistant.desktop --capture-now    # Capture once right after launch
    python -m screen_assistant.desktop --debug          # Debug mode
    python -m screen_assistant.desktop --help           # Show help
"""

import argparse
import logging
import sys
from pathlib import Path

from screen_assistant.utils import install_fault_handlers, resolve_settings_path, setup_logging

logger = logging.getLogger(__name__)


def check_dependencies() -> bool:
    """Check if required dependencies are installed."""
    missing = []

    try:
        import webview
    except ImportError:
        missing.append("pywebview")

    try:
        import mss
    except ImportError:
        missing.append("mss")

    # Optional but recommended
    optional_missing = []
    try:
        import pynput
    except ImportError:
        optional_missing.append("pynput (for hotkeys)")

    try:
        import pystray
    except ImportError:
        optional_missing.append("pystray (for system tray)")

    try:
        import plyer
    except ImportError:
        optional_missing.append("plyer (for notifications)")

    if missing:
        print("❌ Missing required dependencies:")
        for dep in missing:
            print(f"   - {dep}")
        print(f"\nInstall with: pip install {' '.join(missing)}")
        return False

    if optional_missing:
        print("⚠️ Optional dependencies not installed:")
        for dep in optional_missing:
            print(f"   - {dep}")
        print()

    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AI Screen Assistant - screen capture with AI analysis from the tray"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Settings file (default: $SCREEN_ASSISTANT_CONFIG or ~/.config/screen-assistant/settings.yaml)"
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for app.log and error.log"
    )
    parser.add_argument(
        "--capture-now",
        action="store_true",
        help="Capture and analyze once right after startup"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug mode"
    )
    parser.add_argument(
        "--no-tray",
        action="store_true",
        help="Disable system tray icon"
    )
    parser.add_argument(
        "--no-hotkeys",
        action="store_true",
        help="Disable global hotkeys"
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    setup_logging(args.log_dir, logging.DEBUG if args.debug else logging.INFO)
    install_fault_handlers()

    if not check_dependencies():
        sys.exit(1)

    # Import after dependency check
    from screen_assistant.desktop.app import DesktopConfig, ScreenAssistantApp

    config = DesktopConfig(
        settings_path=resolve_settings_path(args.config),
        enable_tray=not args.no_tray,
        enable_hotkeys=not args.no_hotkeys,
        capture_on_start=args.capture_now,
        debug=args.debug
    )

    logger.info("=" * 50)
    logger.info("🖥️ AI Screen Assistant")
    logger.info("=" * 50)
    logger.info(f"   Settings: {config.settings_path}")
    logger.info(f"   Hotkeys: {'F9=capture, F12=toggle' if config.enable_hotkeys else 'disabled'}")
    logger.info(f"   Tray: {'enabled' if config.enable_tray else 'disabled'}")
    logger.info("=" * 50)

    app = ScreenAssistantApp(config)

    try:
        app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Error: {e}")
        if args.debug:
            raise
    finally:
        app.stop()


if __name__ == "__main__":
    main()
