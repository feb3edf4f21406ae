#!/usr/bin/env python3
"""
StarLedger Command Line Interface.

Provides commands for running and inspecting StarLedger:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system information
    - height: Print the ledger height
    - block: Print a block by height
    - validate: Validate the whole chain
    - backup: Copy the JSON ledger file
    - keygen: Create a wallet key file
    - sign: Sign a validation message with a wallet

Usage:
    starledger serve [--host HOST] [--port PORT] [--debug] [--production]
    starledger check
    starledger info
    starledger height
    starledger block HEIGHT
    starledger validate
    starledger backup [--output PATH]
    starledger keygen PATH [--passphrase TEXT]
    starledger sign PATH MESSAGE [--passphrase TEXT]
    starledger --version
"""

import argparse
import json
import os
import sys

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "blockchain.py")):
    sys.path.insert(0, os.path.dirname(__file__))

VERSION = "0.1.0"


def _load_config():
    """Load .env and build the configuration, with logging set up."""
    from dotenv import load_dotenv

    from config import StarLedgerConfig
    from monitoring import configure_logging

    load_dotenv()
    config = StarLedgerConfig.from_env()
    configure_logging(level=config.log_level, json_output=config.json_logs)
    return config


def _open_blockchain(config):
    """Open the configured ledger."""
    from blockchain import Blockchain
    from storage import get_storage_backend

    storage = get_storage_backend(config.storage_backend, config.chain_data_file)
    return Blockchain(storage)


def cmd_serve(args):
    """Start the StarLedger API server."""
    config = _load_config()

    host = args.host or config.host
    port = args.port or config.port
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    from api import create_app

    flask_app = create_app(config)
    print(f"Starting StarLedger API server on {host}:{port}")

    if args.production:
        # Use gunicorn for production
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install starledger[production]")
            return 1

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Gunicorn application wrapper around the Flask app."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        # The validation pool lives in process memory: one worker only
        options = {
            "bind": f"{host}:{port}",
            "workers": 1,
            "threads": args.threads or int(os.getenv("THREADS", 8)),
            "worker_class": "gthread",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        StandaloneApplication(flask_app, options).run()
    else:
        flask_app.run(host=host, port=port, debug=debug, threaded=True)

    return 0


def cmd_check(args):
    """Check installation and configuration."""
    print("StarLedger Installation Check")
    print("=" * 40)

    checks = []

    try:
        config = _load_config()
        checks.append(("Configuration", "OK"))
    except ValueError as e:
        checks.append(("Configuration", f"FAIL: {e}"))
        config = None

    if config is not None:
        from storage import StorageError, get_storage_backend

        try:
            storage = get_storage_backend(config.storage_backend, config.chain_data_file)
            status = "OK" if storage.is_available() else "WARN (not available)"
            checks.append((f"Storage ({storage.__class__.__name__})", status))
        except StorageError as e:
            checks.append(("Storage", f"FAIL: {e}"))

    from identity import WalletIdentity, verify_message

    wallet = WalletIdentity.generate()
    ok = verify_message("check", wallet.address, wallet.sign_message("check"))
    checks.append(("Signature verification", "OK" if ok else "FAIL: round trip rejected"))

    try:
        import gunicorn  # noqa: F401

        checks.append(("Production server (gunicorn)", "OK"))
    except ImportError:
        checks.append(("Production server (gunicorn)", "SKIP (gunicorn not installed)"))

    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    else:
        print("Some checks failed. See above for details.")
        return 1


def cmd_info(args):
    """Display system information."""
    import platform

    config = _load_config()

    print("StarLedger System Information")
    print("=" * 40)
    print(f"Version: {VERSION}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    print(f"  STORAGE_BACKEND: {config.storage_backend}")
    print(f"  CHAIN_DATA_FILE: {config.chain_data_file}")
    print(f"  VALIDATION_WINDOW_SECONDS: {config.validation_window_seconds}")
    print(f"  PROTOCOL_TAG: {config.protocol_tag}")
    print(f"  LOG_LEVEL: {config.log_level}")
    print(f"  LOG_FORMAT: {'json' if config.json_logs else 'console'}")

    print()
    print("Ledger:")
    info = _open_blockchain(config).get_info()
    print(f"  height: {info['height']}")
    for key, value in info["storage"].items():
        print(f"  {key}: {value}")

    return 0


def cmd_height(args):
    """Print the ledger height."""
    blockchain = _open_blockchain(_load_config())
    print(blockchain.get_block_height())
    return 0


def cmd_block(args):
    """Print one block as JSON."""
    from errors import BlockNotFoundError
    from star_registry import with_decoded_story

    blockchain = _open_blockchain(_load_config())
    try:
        block = blockchain.get_block(args.height)
    except BlockNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(with_decoded_story(block.to_dict()), indent=2, ensure_ascii=False))
    return 0


def cmd_validate(args):
    """Validate the chain and list discrepancies."""
    blockchain = _open_blockchain(_load_config())
    errors = blockchain.validate_chain()

    if not errors:
        print(f"Chain is valid ({blockchain.get_block_height() + 1} blocks)")
        return 0

    print(f"Chain has {len(errors)} discrepancies:")
    for error in errors:
        print(f"  - {error.message}")
    return 1


def cmd_backup(args):
    """Copy the JSON ledger file."""
    from storage import JSONFileStorage, StorageError

    config = _load_config()
    if config.storage_backend != "json":
        print(
            f"Error: backup requires the json storage backend (got {config.storage_backend})",
            file=sys.stderr,
        )
        return 1

    storage = JSONFileStorage(config.chain_data_file)
    try:
        backup_path = storage.backup(args.output)
    except StorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Backup written to {backup_path}")
    return 0


def cmd_keygen(args):
    """Create a new wallet key file."""
    from identity import WalletIdentity

    if os.path.exists(args.path):
        print(f"Error: {args.path} already exists", file=sys.stderr)
        return 1

    wallet = WalletIdentity.generate()
    wallet.save(args.path, args.passphrase)
    print(f"Address: {wallet.address}")
    print(f"Fingerprint: {wallet.fingerprint}")
    return 0


def cmd_sign(args):
    """Sign a validation message with a wallet key file."""
    from identity import WalletIdentity

    wallet = WalletIdentity.load(args.path, args.passphrase)
    print(wallet.sign_message(args.message))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="starledger",
        description="StarLedger - Star Registry Blockchain",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 8000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument(
        "--production", action="store_true", help="Use gunicorn for production"
    )
    serve_parser.add_argument("--threads", type=int, help="Worker threads (production mode)")

    subparsers.add_parser("check", help="Check installation and configuration")
    subparsers.add_parser("info", help="Display system information")
    subparsers.add_parser("height", help="Print the ledger height")

    block_parser = subparsers.add_parser("block", help="Print a block by height")
    block_parser.add_argument("height", type=int, help="Block height")

    subparsers.add_parser("validate", help="Validate the whole chain")

    backup_parser = subparsers.add_parser("backup", help="Copy the JSON ledger file")
    backup_parser.add_argument(
        "--output", "-o", help="Backup path (default: timestamped copy beside the ledger)"
    )

    keygen_parser = subparsers.add_parser("keygen", help="Create a wallet key file")
    keygen_parser.add_argument("path", help="Where to write the PEM key")
    keygen_parser.add_argument("--passphrase", help="Encrypt the key with a passphrase")

    sign_parser = subparsers.add_parser("sign", help="Sign a validation message")
    sign_parser.add_argument("path", help="Wallet PEM key")
    sign_parser.add_argument("message", help="Message returned by /requestValidation")
    sign_parser.add_argument("--passphrase", help="Passphrase of the key file")

    return parser


COMMANDS = {
    "serve": cmd_serve,
    "check": cmd_check,
    "info": cmd_info,
    "height": cmd_height,
    "block": cmd_block,
    "validate": cmd_validate,
    "backup": cmd_backup,
    "keygen": cmd_keygen,
    "sign": cmd_sign,
}


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(command(args))


if __name__ == "__main__":
    main()
