"""PromptMint command line interface.

Usage:
    python -m promptmint.cli COMMAND [OPTIONS]

Examples:
    # Generate an image and token URI for a prompt
    python -m promptmint.cli generate "a lighthouse made of glass at dusk"

    # Mint the last generated image with WALLET_PRIVATE_KEY
    python -m promptmint.cli mint

    # List minted NFTs with block, gas and fee details
    python -m promptmint.cli gallery

    # Show recent operations
    python -m promptmint.cli history --limit 10

    # Show current generation/minting state
    python -m promptmint.cli status

    # Reset generation and minting state (history is kept unless --all)
    python -m promptmint.cli clear --all

State and history are persisted in STATE_STORAGE_URL between invocations.
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog

from promptmint.context import AppContext
from promptmint.core.config import Settings, configure_logging
from promptmint.errors import retry_button_text, should_show_retry, user_friendly_message
from promptmint.models import OperationStatus, OperationType
from promptmint.services.blockchain.receipts import explorer_tx_url
from promptmint.services.blockchain.transactions import (
    format_address,
    format_fee,
    format_gas_price,
    format_gas_used,
)
from promptmint.services.exceptions import ServiceError
from promptmint.storage import SqlStorage

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        prog="promptmint",
        description="Generate AI images from prompts and mint them as NFTs",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate an image for a prompt")
    generate.add_argument("prompt", help="Text prompt (3-500 characters)")

    subparsers.add_parser("mint", help="Mint the last generated image")

    history = subparsers.add_parser("history", help="Show the operation history")
    history.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of entries to show, newest first (default: 20)",
    )

    gallery = subparsers.add_parser("gallery", help="List minted NFTs with transaction details")
    gallery.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of mints to show, newest first (default: 20)",
    )

    subparsers.add_parser("status", help="Show the current state")

    clear = subparsers.add_parser("clear", help="Reset generation and minting state")
    clear.add_argument(
        "--all",
        action="store_true",
        help="Also delete the persisted state, including history",
    )

    return parser.parse_args(argv)


def _print_error(context: AppContext) -> None:
    error = context.controller.state.error
    if error is None:
        return
    print(f"Error: {user_friendly_message(error)}", file=sys.stderr)
    if should_show_retry(error):
        print(f"  [{retry_button_text(error)}] Run the same command again.", file=sys.stderr)


async def cmd_generate(context: AppContext, args: Namespace) -> int:
    context.controller.set_prompt(args.prompt)
    result = await context.generation.generate()
    if result is None:
        _print_error(context)
        return 1

    print(f"Image:     {result.image_url}")
    print(f"Token URI: {result.token_uri}")
    return 0


async def cmd_mint(context: AppContext, args: Namespace) -> int:
    if not context.wallet.is_connected:
        try:
            address = await context.wallet.connect()
        except ServiceError as e:
            logger.warning("cli.wallet_connect_failed", error=e.message)
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        print(f"Wallet:    {address}")

    tx_hash = await context.minting.mint()
    if tx_hash is None:
        if context.controller.state.error is None:
            print("Nothing to mint: the current image is already minted.", file=sys.stderr)
        _print_error(context)
        return 1

    print(f"Minted:    {tx_hash}")
    print(f"Explorer:  {explorer_tx_url(context.settings.explorer_url, tx_hash)}")
    latest = context.controller.state.operation_history[0]
    if latest.result and latest.result.token_id:
        print(f"Token ID:  {latest.result.token_id}")
    return 0


async def cmd_history(context: AppContext, args: Namespace) -> int:
    entries = context.controller.state.operation_history[: max(args.limit, 0)]
    if not entries:
        print("No operations yet.")
        return 0

    for item in entries:
        print(f"{item.id}  {item.type.value:<10} {item.status.value:<8} {item.prompt[:50]}")
        if item.result and item.result.explorer_url:
            print(f"    {item.result.explorer_url}")
        elif item.result and item.result.token_uri:
            print(f"    {item.result.token_uri}")
        if item.error:
            print(f"    error: {item.error}")
    return 0


async def cmd_gallery(context: AppContext, args: Namespace) -> int:
    minted = [
        item
        for item in context.controller.state.operation_history
        if item.type == OperationType.MINTING
        and item.status == OperationStatus.SUCCESS
        and item.result is not None
        and item.result.tx_hash
    ][: max(args.limit, 0)]
    if not minted:
        print("No minted NFTs yet.")
        return 0

    for item in minted:
        result = item.result
        tx_hash = result.tx_hash
        print(item.prompt[:50])
        if result.token_id:
            print(f"  Token ID:  {result.token_id}")
        print(f"  Tx hash:   {tx_hash}")
        explorer = result.explorer_url or explorer_tx_url(context.settings.explorer_url, tx_hash)
        print(f"  Explorer:  {explorer}")

        try:
            info = await context.transactions.get(tx_hash)
        except Exception as e:
            logger.warning("cli.transaction_lookup_failed", tx_hash=tx_hash, error=str(e))
            print("  Details:   unavailable")
            continue
        if info is None:
            print("  Details:   transaction not found")
            continue

        print(f"  Block:     {info.block_number} ({info.confirmations} confirmations)")
        print(f"  From:      {format_address(info.from_address)}")
        print(f"  Gas used:  {format_gas_used(info.gas_used)}")
        print(f"  Gas price: {format_gas_price(info.gas_price_wei)}")
        print(f"  Fee:       {format_fee(info.fee_wei)}")
    return 0


async def cmd_status(context: AppContext, args: Namespace) -> int:
    state = context.controller.state
    print(f"Prompt:     {state.prompt or '-'}")
    print(
        f"Generation: {state.generation_state.status.value} ({state.generation_state.progress}%)"
    )
    print(f"Minting:    {state.minting_state.status.value}")
    print(f"Image:      {state.generated_image or '-'}")
    print(f"Token URI:  {state.token_uri or '-'}")
    if state.minting_state.tx_hash:
        print(f"Tx hash:    {state.minting_state.tx_hash}")
    print(f"Can mint:   {'yes' if context.controller.can_mint else 'no'}")
    return 0


async def cmd_clear(context: AppContext, args: Namespace) -> int:
    context.controller.reset_generation()
    context.controller.reset_minting()
    if args.all:
        context.close()
        storage = context.persistence.storage
        if isinstance(storage, SqlStorage):
            storage.delete(context.persistence.key)
        else:
            storage.set(context.persistence.key, "")
        print("State and history cleared.")
    else:
        print("Generation and minting state reset.")
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "mint": cmd_mint,
    "history": cmd_history,
    "gallery": cmd_gallery,
    "status": cmd_status,
    "clear": cmd_clear,
}


async def async_main(
    argv: Optional[Sequence[str]] = None, context: Optional[AppContext] = None
) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 130 (interrupted)
    """
    args = parse_args(argv)

    if context is None:
        settings = Settings()  # type: ignore[call-arg]
        if args.verbose:
            settings.log_level = "DEBUG"
        configure_logging(settings)
        context = AppContext.build(settings, storage=SqlStorage(settings.state_storage_url))

    logger.debug("cli.started", command=args.command)

    try:
        return await COMMANDS[args.command](context, args)

    except KeyboardInterrupt:
        logger.info("cli.interrupted", command=args.command)
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        context.close()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
