#!/usr/bin/env python3
"""
Main application - Console client that finds a nearby stranger and chats with them
"""

import asyncio
import signal
import sys
from typing import Optional

from config import DISPLAY_CONFIG, LOCATION_CONFIG, LOGGING_CONFIG, MATCHING_CONFIG, SERVER_CONFIG
from core.config_validator import validate_startup_config, ConfigValidationError
from core.connection_manager import ConnectionManager
from core.exceptions import SessionError, ConnectionLostError
from core.logging_config import setup_logging, get_logger
from core.navigation import Navigator, Route
from chat import ChatSessionController, ChatMessage, RecentChatsClient
from device import LocationProvider, StaticLocationProvider
from events import event_bus, EventTypes
from matching import PoolJoinCoordinator, MatchResultRouter, SearchPreferences

LEAVE_COMMAND = "/leave"
RECENT_COMMAND = "/recent"
CANCEL_COMMAND = "/cancel"
QUIT_COMMAND = "/quit"


class ConsoleInput:
    """Line reader on stdin that can be cancelled without leaving a thread behind"""

    def __init__(self):
        self.reader: Optional[asyncio.StreamReader] = None

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        self.reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(self.reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    async def readline(self, prompt: str = "") -> Optional[str]:
        """Read one line. Returns None at end of input."""
        if prompt:
            print(prompt, end="", flush=True)
        line = await self.reader.readline()
        if not line:
            return None
        return line.decode(errors="replace").rstrip("\r\n")


class NearbyChatApp:
    """Top-level session owner: the only component that connects and disconnects"""

    def __init__(self,
                 connection: Optional[ConnectionManager] = None,
                 location_provider: Optional[LocationProvider] = None,
                 console: Optional[ConsoleInput] = None):
        self.logger = get_logger(__name__)
        self.event_bus = event_bus
        self.connection = connection or ConnectionManager(event_bus=self.event_bus)
        self.location_provider = location_provider or StaticLocationProvider.from_config(LOCATION_CONFIG)
        self.console = console or ConsoleInput()

        self.navigator = Navigator(root=Route.NAME, event_bus=self.event_bus)
        self.router = MatchResultRouter(self.connection, self.navigator, event_bus=self.event_bus)
        self.recent_chats = RecentChatsClient(SERVER_CONFIG["url"])

        self.navigator.add_notice_listener(self._show_notice)
        self.event_bus.on(EventTypes.CONNECTION_CONNECTED, lambda e: self._show_connection(True))
        self.event_bus.on(EventTypes.CONNECTION_DISCONNECTED, lambda e: self._show_connection(False))

        self.display_name: Optional[str] = None
        self.preferences: Optional[SearchPreferences] = None
        self.active_search: Optional[PoolJoinCoordinator] = None
        self.active_chat: Optional[ChatSessionController] = None

        self.running = False
        self._screen_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Open the console and the event channel"""
        await self.console.open()
        self.running = True
        self.event_bus.emit(EventTypes.SYSTEM_START, {"server": self.connection.url}, source="NearbyChatApp")
        try:
            await self.connection.connect()
        except ConnectionLostError as e:
            # Searches retry connect() on their own
            self.logger.warning(f"Starting offline: {e}")
            self._show_notice(e.user_message)

    async def run(self) -> None:
        """Drive screens until the user quits"""
        await self.start()
        screens = {
            Route.NAME: self._name_screen,
            Route.SETUP: self._setup_screen,
            Route.MATCHING: self._matching_screen,
            Route.CHAT: self._chat_screen,
            Route.RECENT: self._recent_screen,
        }

        while self.running:
            screen = screens[self.navigator.current.route]
            self._screen_task = asyncio.ensure_future(screen())
            try:
                await self._screen_task
            except asyncio.CancelledError:
                if self.running:
                    raise
            except SessionError as e:
                route = self.navigator.current.route.value
                self.logger.error(f"Screen {route} failed: {e}", exc_info=True)
                self.event_bus.emit(EventTypes.SYSTEM_ERROR, {
                    "route": route,
                    "error_type": type(e).__name__,
                    "details": e.details,
                }, source="NearbyChatApp")
                self._show_notice(e.user_message)
            finally:
                self._screen_task = None

    def request_stop(self) -> None:
        """Signal handler entry point"""
        self.logger.info("Shutdown requested")
        self.running = False
        if self._screen_task is not None and not self._screen_task.done():
            self._screen_task.cancel()

    async def stop(self) -> None:
        """Release everything the session owns"""
        self.running = False
        if self.active_search is not None:
            self.active_search.abandon()
            self.active_search = None
        if self.active_chat is not None:
            self.active_chat.close()
            self.active_chat = None

        await self.recent_chats.close()
        await self.connection.disconnect()

        self.event_bus.emit(EventTypes.SYSTEM_STOP, self.connection.get_stats(), source="NearbyChatApp")
        self.logger.info("Nearby chat stopped", extra={"extra_data": self.event_bus.get_stats()})

    async def _read(self, prompt: str = "") -> str:
        line = await self.console.readline(prompt)
        if line is None:
            self.running = False
            raise asyncio.CancelledError()
        return line

    async def _name_screen(self) -> None:
        emojis = DISPLAY_CONFIG["emojis"]
        print(f"\nWelcome! {emojis['wave']}")
        name = await self._read("What should we call you? (leave empty for Anonymous) ")
        self.display_name = name.strip() or None
        self.navigator.push(Route.SETUP, display_name=self.display_name)

    async def _setup_screen(self) -> None:
        colors = DISPLAY_CONFIG["colors"]
        params = self.navigator.current.params
        name = self.display_name or MATCHING_CONFIG["default_display_name"]
        radius_limits = MATCHING_CONFIG["radius_km"]
        duration_limits = MATCHING_CONFIG["duration_min"]

        radius_default = params.get("radius_km", radius_limits["default"])
        duration_default = params.get("duration_min", duration_limits["default"])

        print(f"\nHello, {name}! Configure your matching preferences "
              f"({RECENT_COMMAND} for recent chats, {QUIT_COMMAND} to exit)")

        radius = await self._read(f"Search radius in km [{radius_limits['min']}-{radius_limits['max']}] ({radius_default}): ")
        if await self._handle_menu_command(radius):
            return
        duration = await self._read(
            f"Search duration in minutes [{duration_limits['min']}-{duration_limits['max']}, "
            f"step {duration_limits['step']}] ({duration_default}): ")
        if await self._handle_menu_command(duration):
            return

        try:
            self.preferences = SearchPreferences.create(
                display_name=self.display_name,
                radius_km=radius.strip() or radius_default,
                duration_min=duration.strip() or duration_default,
            )
        except SessionError as e:
            print(f"{colors['error']}{e.user_message}{colors['reset']}")
            return

        self.navigator.push(Route.MATCHING)

    async def _matching_screen(self) -> None:
        colors = DISPLAY_CONFIG["colors"]
        emojis = DISPLAY_CONFIG["emojis"]
        preferences = self.preferences

        print(f"\n{emojis['search']} Radius: {preferences.radius_km} km | Duration: {preferences.duration_min} min "
              f"({CANCEL_COMMAND} to stop searching)")

        if not self.connection.connected:
            try:
                await self.connection.connect()
            except ConnectionLostError:
                # The coordinator reports the failure as an errored attempt
                pass

        coordinator = PoolJoinCoordinator(
            self.connection,
            self.location_provider,
            preferences,
            on_status=lambda status: print(f"{colors['info']}{status}{colors['reset']}"),
            event_bus=self.event_bus,
        )
        self.active_search = coordinator

        try:
            await coordinator.start()
            outcome_task = asyncio.ensure_future(coordinator.wait())
            while not outcome_task.done():
                input_task = asyncio.ensure_future(self.console.readline())
                done, _ = await asyncio.wait({outcome_task, input_task}, return_when=asyncio.FIRST_COMPLETED)
                if input_task in done:
                    line = input_task.result()
                    if line is None or line.strip() == CANCEL_COMMAND:
                        coordinator.abandon()
                        if line is None:
                            self.running = False
                else:
                    input_task.cancel()

            outcome = outcome_task.result()
        finally:
            coordinator.abandon()
            self.active_search = None

        self.active_chat = await self.router.route(outcome, preferences)

    async def _chat_screen(self) -> None:
        colors = DISPLAY_CONFIG["colors"]
        emojis = DISPLAY_CONFIG["emojis"]
        params = self.navigator.current.params

        if self.active_chat is None or self.active_chat.chat_id != params.get("chat_id"):
            # Back from a later screen: rejoin the room this screen shows
            self.active_chat = await self.router.open_chat(params["chat_id"], params["other_display_name"],
                                                           replace=True, preferences=self.preferences)
            if self.active_chat is None:
                return

        chat = self.active_chat
        chat.transcript.listeners.append(self._print_incoming)
        print(f"\n{emojis['chat']} Chatting with {chat.other_display_name} {emojis['online']} Online "
              f"({LEAVE_COMMAND} to leave)")
        for message in chat.messages:
            self._print_message(message)

        try:
            while self.running:
                text = await self._read()
                command = text.strip()
                if command == LEAVE_COMMAND:
                    self.navigator.back()
                    return
                if command == RECENT_COMMAND:
                    self.navigator.replace(Route.RECENT)
                    return
                try:
                    await chat.send(text)
                except SessionError as e:
                    print(f"{colors['error']}{e.user_message}{colors['reset']}")
        finally:
            chat.transcript.listeners.remove(self._print_incoming)
            chat.close()
            self.active_chat = None

    async def _recent_screen(self) -> None:
        colors = DISPLAY_CONFIG["colors"]
        ok = await self.recent_chats.refresh()
        if not ok:
            print(f"{colors['error']}Failed to load chats: {self.recent_chats.last_error}{colors['reset']}")

        chats = self.recent_chats.chats
        print("\nRecent chats")
        if not chats:
            print("  No chats yet")
        for index, chat in enumerate(chats, start=1):
            unread = f" ({chat.unread_count} unread)" if chat.unread_count else ""
            last = f" - {chat.last_message}" if chat.last_message else ""
            print(f"  {index}. {chat.other_display_name}{unread}{last}")

        choice = (await self._read("Pick a chat number, r to refresh, b to go back: ")).strip().lower()
        if choice == "b":
            self.navigator.back()
        elif choice.isdigit() and 1 <= int(choice) <= len(chats):
            selected = chats[int(choice) - 1]
            self.active_chat = await self.router.open_chat(selected.chat_id, selected.other_display_name)

    async def _handle_menu_command(self, line: str) -> bool:
        command = line.strip()
        if command == RECENT_COMMAND:
            self.navigator.push(Route.RECENT)
            return True
        if command == QUIT_COMMAND:
            self.running = False
            return True
        return False

    def _print_incoming(self, message: ChatMessage) -> None:
        if not message.is_mine:
            self._print_message(message)

    def _print_message(self, message: ChatMessage) -> None:
        colors = DISPLAY_CONFIG["colors"]
        color = colors["self"] if message.is_mine else colors["peer"]
        label = "You" if message.is_mine else self.active_chat.other_display_name if self.active_chat else "Peer"
        print(f"{color}{label}: {message.text}{colors['reset']}")

    def _show_notice(self, message: str) -> None:
        colors = DISPLAY_CONFIG["colors"]
        print(f"{colors['info']}{message}{colors['reset']}")

    def _show_connection(self, online: bool) -> None:
        emojis = DISPLAY_CONFIG["emojis"]
        self.logger.debug(f"{emojis['online'] if online else emojis['offline']} socket {'connected' if online else 'disconnected'}")


async def main() -> None:
    app = NearbyChatApp()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop)

    try:
        await app.run()
    except asyncio.CancelledError:
        pass
    finally:
        await app.stop()


def run() -> None:
    """Console entry point"""
    # Setup logging system first so validation warnings are visible
    setup_logging(LOGGING_CONFIG)

    try:
        validate_startup_config()
    except ConfigValidationError as e:
        print(f"❌ {e}")
        print("Please fix the configuration errors and try again.")
        sys.exit(1)

    logger = get_logger(__name__)
    logger.info("Starting nearby chat client")

    try:
        asyncio.run(main())
    except Exception as e:
        logger.error("Nearby chat client crashed", exc_info=True, extra={
            "extra_data": {"error_type": type(e).__name__, "error_message": str(e)}
        })
        sys.exit(1)


if __name__ == "__main__":
    run()
