"""Main application entry point for herald."""

import asyncio
import sys
from typing import Optional

from herald.app.herald_app import HeraldApp
from herald.briefing.briefings import DAY_END, DAY_START
from herald.channels.base import CallbackChannel
from herald.config.config import load_config
from herald.exceptions import ConfigurationError
from herald.models.reminders import ReminderDomain
from herald.utils.logger import log_info, log_error


TERMINAL_DESTINATION = "terminal"

# Global queue for notifications
notification_queue: Optional[asyncio.Queue] = None


def display_notification(message: str) -> None:
    """Queue a delivered notification for the terminal display task."""
    if notification_queue is None:
        print(f"\n🔔 {message}\n")
        return
    notification_queue.put_nowait(message)


async def notification_display_task():
    """Background task that prints notifications as they arrive."""
    while True:
        try:
            message = await notification_queue.get()
            print(f"\r🔔 {message}")
            print("herald> ", end="", flush=True)
        except asyncio.CancelledError:
            break
        except Exception as e:
            log_error(f"Error displaying notification: {e}")


def print_help():
    print("\nAvailable commands:")
    print("  /briefing day_start|day_end  - Compose and send a briefing")
    print("  /poll <domain>               - Run one reminder tick (calendar, tasks, price_alerts, documents)")
    print("  /stats                       - Show service statistics")
    print("  /help                        - Show this help message")
    print("  /quit                        - Exit")
    print()


async def handle_command(herald: HeraldApp, command: str) -> bool:
    """Run one terminal command; returns False when the loop should end."""
    parts = command.split()
    name, args = parts[0], parts[1:]

    if name in ("/quit", "/exit"):
        return False

    if name == "/help":
        print_help()
    elif name == "/briefing":
        variant = args[0] if args else DAY_START
        if variant not in herald.briefing_variants:
            print(f"\nUnknown briefing '{variant}'. Try {DAY_START} or {DAY_END}.\n")
        else:
            result = await herald.send_briefing(variant)
            print(f"\nBriefing {variant}: delivered={result['delivered']} "
                  f"failed sections={result['failed_sections']}\n")
    elif name == "/poll":
        try:
            domain = ReminderDomain(args[0] if args else "")
        except ValueError:
            print(f"\nUnknown domain. Try one of: {', '.join(d.value for d in ReminderDomain)}\n")
        else:
            result = await herald.poll_now(domain)
            print(f"\n{domain.value}: fetched={result.fetched} delivered={result.delivered} "
                  f"failed={result.failed}\n")
    elif name == "/stats":
        stats = herald.get_stats()
        dispatcher = stats["reminders"]["dispatcher"]
        print("\nReminder Service:")
        print(f"  Running: {'Yes' if stats['reminders']['is_started'] else 'No'}")
        print(f"  Sent: {dispatcher['sent']}  Failed: {dispatcher['failed']}  Dropped: {dispatcher['dropped']}")
        print(f"  Broadcast destinations: {stats['destinations']}")
        if stats["broadcast"]:
            print(f"  Broadcast cycles: {stats['broadcast']['cycles']}")
        print()
    else:
        print(f"\nUnknown command: {command}")
        print("Type /help for available commands.\n")
    return True


async def main():
    """Run the services and a small command loop until /quit."""
    global notification_queue
    notification_queue = asyncio.Queue()

    print("=" * 60)
    print("  HERALD")
    print("  Reminders, briefings and broadcasts")
    print("=" * 60)
    print()

    log_info("Loading configuration...")
    try:
        config = load_config()
    except ConfigurationError as e:
        log_error(f"Failed to load configuration: {e}")
        print(f"Error: {e}")
        return

    if config.channel.bot_token:
        herald = HeraldApp(config=config)
    else:
        # Without a bot token every message is shown in this terminal
        log_info("No bot token configured, delivering to the terminal")
        herald = HeraldApp(
            config=config,
            channel=CallbackChannel(lambda destination, text: None),
            destination=config.channel.chat_id or TERMINAL_DESTINATION,
        )
    herald.register_notification_callback(display_notification)

    display_task = asyncio.create_task(notification_display_task())

    try:
        await herald.startup()
        log_info("Ready")
        print_help()

        while True:
            try:
                user_input = await asyncio.to_thread(input, "herald> ")
            except EOFError:
                # No terminal attached: keep the background services running
                await asyncio.Event().wait()
            user_input = user_input.strip()
            if not user_input:
                continue
            if not user_input.startswith("/"):
                print("Commands start with '/'. Type /help for the list.\n")
                continue
            try:
                if not await handle_command(herald, user_input):
                    break
            except Exception as e:
                log_error(f"Command failed: {e}")
                print(f"\nError: {e}\n")

    except Exception as e:
        log_error(f"Fatal error: {e}")
        import traceback
        log_error(traceback.format_exc())
        print(f"\nFatal error: {e}")

    finally:
        log_info("Shutting down...")
        display_task.cancel()
        try:
            await display_task
        except asyncio.CancelledError:
            pass
        await herald.shutdown()
        print("\nGoodbye!")


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    run()
