#!/usr/bin/env python3
"""
Site Chatbot - Main Entry Point
===============================

This is the main entry point for Site Chatbot. It provides a
command-line interface for serving the API, chatting in the terminal
and managing the rule store.

Usage:
    python main.py --web                 # Start web API
    python main.py --tui                 # Chat in the terminal
    python main.py --ask "Pricing?"      # Answer one message
    python main.py --list-rules          # Show stored rules
    python main.py --import-rules FILE   # Add rules from YAML
    python main.py --export-rules FILE   # Write rules to YAML
    python main.py --setup               # Create config and starter rules
    python main.py --status              # Check system status
"""

import sys
import argparse
import textwrap
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import load_config, create_default_config, save_config, Config
from core.database import init_database
from core.exceptions import ChatbotError, FetchError
from core.logging import setup_logging, get_logger
from rules.engine import find_match, match
from rules.store import RuleStore
from services.chat_session import FETCH_FAILED_RESPONSE

logger = get_logger("main")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Site Chatbot - rule-based website assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --web                       Start web API on default port
  python main.py --web --port 9000           Start web API on port 9000
  python main.py --tui                       Chat in the terminal
  python main.py --ask "How much does it cost?"
  python main.py --import-rules rules.yaml   Add rules from a YAML file
  python main.py --setup                     Create config and starter rules
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--web",
        action="store_true",
        help="Start the web API server"
    )
    mode_group.add_argument(
        "--tui",
        action="store_true",
        help="Start the terminal chat"
    )
    mode_group.add_argument(
        "--ask",
        type=str,
        metavar="MESSAGE",
        help="Print the chatbot's answer to MESSAGE"
    )
    mode_group.add_argument(
        "--list-rules",
        action="store_true",
        help="List stored rules in evaluation order"
    )
    mode_group.add_argument(
        "--import-rules",
        type=str,
        metavar="PATH",
        help="Add rules from a YAML file"
    )
    mode_group.add_argument(
        "--export-rules",
        type=str,
        metavar="PATH",
        help="Write all rules to a YAML file"
    )
    mode_group.add_argument(
        "--setup",
        action="store_true",
        help="Create default configuration and starter rules"
    )
    mode_group.add_argument(
        "--status",
        action="store_true",
        help="Check system status"
    )

    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for web API (default: from config, 8080)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for web API (default: from config, 127.0.0.1)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    return parser.parse_args(argv)


def open_store(config: Config) -> RuleStore:
    """Open the rule store configured for this installation."""
    database = init_database(config.database_path, timeout=config.database.timeout)
    return RuleStore(database, default_priority=config.chatbot.default_priority)


def run_setup(config_path: Optional[str] = None) -> None:
    """Create the configuration files and seed the starter rules."""
    print("\n" + "=" * 50)
    print("Site Chatbot Setup")
    print("=" * 50 + "\n")

    config_dir = str(Path(config_path).parent) if config_path else None
    config = create_default_config(config_dir)
    if config_path:
        save_config(config, config_path)
    print(f"✓ Configuration written to {config_path or Path(config.config_dir) / 'config.yaml'}")

    store = open_store(config)
    added = store.seed_defaults(config.database.seed_file or None)
    if added:
        print(f"✓ Added {added} starter rules")
    else:
        print(f"✓ Rule store already has {store.count_rules()} rules")

    print("\nTo start:")
    print("  Web API:   python main.py --web")
    print("  Terminal:  python main.py --tui")


def run_status_check(config: Config) -> None:
    """Check and display system status."""
    print("\n" + "=" * 50)
    print(f"{config.app_name} - System Status")
    print("=" * 50 + "\n")

    print("Rule Store")
    print("-" * 30)
    print(f"  Database: {config.database_path}")
    try:
        store = open_store(config)
        stats = store.database.get_statistics()
        print("  Status: ✓ Available")
        print(f"  Rules: {stats['rules']}")
        if stats["rules"]:
            print(f"  Priority range: {stats['min_priority']} - {stats['max_priority']}")
            print(f"  Last updated: {stats['last_updated']}")
    except ChatbotError as e:
        print(f"  Status: ✗ Unavailable ({e})")

    print("\nConfiguration")
    print("-" * 30)
    print(f"  Config dir: {config.config_dir}")
    print(f"  Reply delay: {config.chatbot.reply_delay_ms}ms")
    print(f"  Default priority: {config.chatbot.default_priority}")
    print(f"  Web API: {config.ui.web_host}:{config.ui.web_port}")

    print("\n" + "=" * 50 + "\n")


def run_ask(config: Config, message: str) -> None:
    """Answer one message from the current rule set."""
    store = open_store(config)
    try:
        rules = store.fetch_rules()
    except FetchError:
        print(FETCH_FAILED_RESPONSE)
        return

    print(match(message, rules))

    rule = find_match(message, rules)
    if rule is not None:
        logger.debug(f"Matched rule {rule.id} (priority {rule.priority})")


def run_list_rules(config: Config) -> None:
    """Print stored rules in evaluation order."""
    rules = open_store(config).list_rules()
    if not rules:
        print("No chatbot rules stored. Run --setup or --import-rules.")
        return

    for rule in rules:
        response = textwrap.shorten(rule.response, width=60, placeholder="...")
        print(f"[{rule.id:>4}] p{rule.priority:<3} {', '.join(rule.keywords)}")
        print(f"       → {response}")


def run_web_ui(config: Config, host: Optional[str], port: Optional[int], debug: bool) -> None:
    """Run the web API server."""
    from ui.web.app import run_app

    host = host or config.ui.web_host
    port = port or config.ui.web_port

    print(f"\nStarting web API on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")

    run_app(host=host, port=port, debug=debug, config=config)


def run_terminal_ui(config: Config) -> None:
    """Run the terminal chat."""
    from ui.terminal.app import run_tui

    run_tui(config=config)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        if args.setup:
            run_setup(args.config)
            return 0

        config = load_config(args.config)

        if args.debug:
            config.debug = True

        # The TUI sets up its own file-only logging
        if not args.tui:
            setup_logging(
                log_dir=config.log_dir or None,
                log_level="DEBUG" if args.debug else config.log_level,
                console_output=True
            )

        if args.web:
            run_web_ui(config, args.host, args.port, args.debug)
        elif args.tui:
            run_terminal_ui(config)
        elif args.ask is not None:
            run_ask(config, args.ask)
        elif args.list_rules:
            run_list_rules(config)
        elif args.import_rules:
            added = open_store(config).import_rules(args.import_rules)
            print(f"✓ Imported {added} rules from {args.import_rules}")
        elif args.export_rules:
            written = open_store(config).export_rules(args.export_rules)
            print(f"✓ Exported {written} rules to {args.export_rules}")
        elif args.status:
            run_status_check(config)
        else:
            run_status_check(config)
            print("No mode specified. Use --web, --tui, --ask, or --help")

        return 0

    except ChatbotError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
