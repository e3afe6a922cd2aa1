"""REPL for the Enfield CLI."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable

from engine.kernel import actions
from engine.kernel.actions import ActionResult, InvalidMoveError
from engine.kernel.activity import format_relative_time, summarize_activity
from engine.kernel.types import PageNode, World, find_world

from enfield_cli.config import Config
from enfield_cli.sync import ConnectivityMonitor, SyncSession, SyncStatus

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_END_RE = re.compile(r"</p>|<br\s*/?>", re.IGNORECASE)

STATUS_LABELS = {
    SyncStatus.SAVED: "\033[32msaved\033[0m",
    SyncStatus.SAVING: "\033[33msaving…\033[0m",
    SyncStatus.SYNCING: "\033[33msyncing…\033[0m",
    SyncStatus.OFFLINE: "\033[90moffline\033[0m",
}


def plain_text(markup: str) -> str:
    """Rough HTML → text for terminal display."""
    text = _BLOCK_END_RE.sub("\n", markup)
    text = _TAG_RE.sub("", text)
    text = text.replace("&lt;", "<").replace("&gt;", ">").replace("&quot;", '"').replace("&#39;", "'")
    return text.replace("&amp;", "&").strip()


def numbered_pages(nodes: list[PageNode], depth: int = 0) -> list[tuple[PageNode, int]]:
    """Pre-order (page, depth) pairs. Position + 1 is the page's REPL number."""
    rows: list[tuple[PageNode, int]] = []
    for node in nodes:
        rows.append((node, depth))
        rows.extend(numbered_pages(node.children, depth + 1))
    return rows


class Repl:
    """Interactive REPL over a SyncSession."""

    def __init__(
        self,
        config: Config,
        session: SyncSession,
        monitor: ConnectivityMonitor | None = None,
        input_fn: Callable[[str], str] = input,
    ):
        self.config = config
        self.session = session
        self.monitor = monitor
        self.input_fn = input_fn
        self.current_world_id = config.current_world_id
        self.focus_id: str | None = None
        self.running = True
        self._unsubscribe = config.on_change(self._identity_changed)

    # -- state helpers -----------------------------------------------------

    @property
    def world(self) -> World | None:
        worlds = self.session.worlds
        if self.current_world_id:
            world = find_world(worlds, self.current_world_id)
            if world is not None:
                return world
        return worlds[0] if worlds else None

    def _select_world(self, world_id: str | None):
        self.current_world_id = world_id
        self.config.current_world_id = world_id

    def _apply(self, result: ActionResult) -> ActionResult:
        self.session.apply(result)
        if result.focus_id:
            self.focus_id = result.focus_id
        return result

    def _page_at(self, ref: str) -> PageNode | None:
        world = self.world
        if world is None:
            print("  No world selected.")
            return None
        try:
            idx = int(ref) - 1
        except ValueError:
            print(f"  Invalid page number: {ref}")
            return None
        rows = numbered_pages(world.pages)
        if not 0 <= idx < len(rows):
            print("  Invalid page number. Use /tree to see pages.")
            return None
        return rows[idx][0]

    async def _ask(self, prompt: str) -> str:
        return (await asyncio.to_thread(self.input_fn, prompt)).strip()

    async def _confirm(self, question: str) -> bool:
        answer = await self._ask(f"  {question} [y/N] ")
        return answer.lower() in ("y", "yes")

    def _identity_changed(self, user):
        self.session.client.set_identity(self.config.token, user.id if user else None)
        actor = self.config.actor
        print(f"  Now editing as {actor.name} ({actor.id})")

    # -- loop --------------------------------------------------------------

    async def start(self):
        """Run the REPL until /quit or EOF."""
        world = self.world
        if world is not None:
            print(f"enfield > {world.name}  [{STATUS_LABELS[self.session.status]}]")
        else:
            print("enfield > No worlds yet. Use /new <name> to create one.")

        while self.running:
            try:
                line = await self._ask("enfield > ")
                if not line:
                    continue
                if line.startswith("/"):
                    await self._handle_command(line)
                else:
                    print("  Commands start with '/'. Type /help for available commands.")
            except (EOFError, KeyboardInterrupt):
                print()
                break
            except InvalidMoveError as e:
                print(f"  Can't move there: {e}")

        self._unsubscribe()

    async def _handle_command(self, line: str):
        """Handle REPL commands."""
        parts = line.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "/quit":
            self.running = False
            print("Goodbye.")
        elif cmd == "/worlds":
            self._list_worlds()
        elif cmd == "/world":
            self._switch_world(arg)
        elif cmd == "/new":
            self._new_world(arg or None)
        elif cmd == "/rename":
            self._rename_world(arg)
        elif cmd == "/dup":
            self._duplicate_world()
        elif cmd == "/delete":
            await self._delete_world()
        elif cmd == "/tree":
            self._show_tree()
        elif cmd == "/add":
            self._add_page(arg)
        elif cmd == "/title":
            self._retitle_page(arg)
        elif cmd == "/edit":
            self._edit_page(arg)
        elif cmd == "/show":
            self._show_page(arg)
        elif cmd == "/fav":
            self._toggle_favorite(arg)
        elif cmd == "/copy":
            self._copy_page(arg)
        elif cmd == "/rm":
            await self._remove_page(arg)
        elif cmd == "/move":
            self._move_page(arg)
        elif cmd == "/people":
            self._show_people()
        elif cmd == "/unshare":
            self._unshare(arg)
        elif cmd == "/activity":
            self._show_activity(arg)
        elif cmd == "/sync":
            await self._sync()
        elif cmd == "/offline":
            await self._go_offline()
        elif cmd == "/online":
            await self._go_online()
        elif cmd == "/status":
            self._show_status()
        elif cmd == "/login":
            self._login(arg)
        elif cmd == "/logout":
            self._logout()
        elif cmd == "/help":
            self._show_help()
        else:
            print(f"Unknown command: {cmd}")
            print("Type /help for available commands.")

    # -- worlds ------------------------------------------------------------

    def _list_worlds(self):
        worlds = self.session.worlds
        if not worlds:
            print("  No worlds yet. Use /new <name> to create one.")
            return

        current = self.world
        print("  Worlds:")
        for i, world in enumerate(worlds, 1):
            marker = "*" if current is not None and world.id == current.id else " "
            pages = len(numbered_pages(world.pages))
            print(f"  {marker}{i}. {world.name}  ({pages} page{'s' if pages != 1 else ''})")

    def _switch_world(self, index: str):
        if not index:
            print("Usage: /world <number>")
            return
        try:
            idx = int(index) - 1
        except ValueError:
            print("  Invalid number.")
            return
        worlds = self.session.worlds
        if not 0 <= idx < len(worlds):
            print("  Invalid index. Use /worlds to see worlds.")
            return
        self._select_world(worlds[idx].id)
        self.focus_id = None
        print(f"  Switched to: {worlds[idx].name}")

    def _new_world(self, name: str | None):
        result = self._apply(actions.create_world(self.session.worlds, self.config.actor, name))
        self._select_world(result.focus_id)
        print(f"  Created: {self.world.name}")

    def _rename_world(self, name: str):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        if not name:
            print("Usage: /rename <name>")
            return
        self._apply(actions.rename_world(self.session.worlds, world.id, name))
        print(f"  Renamed to: {self.world.name}")

    def _duplicate_world(self):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        result = self._apply(actions.duplicate_world(self.session.worlds, self.config.actor, world.id))
        self._select_world(result.focus_id)
        print(f"  Duplicated as: {self.world.name}")

    async def _delete_world(self):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        if not await self._confirm(f"Delete world “{world.name}” and all its pages?"):
            print("  Cancelled.")
            return
        result = self._apply(actions.delete_world(self.session.worlds, self.config.actor, world.id))
        self._select_world(result.focus_id)
        print(f"  Deleted: {world.name}")

    # -- pages -------------------------------------------------------------

    def _show_tree(self):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        rows = numbered_pages(world.pages)
        print(f"  {world.name}")
        if not rows:
            print("  (no pages yet; /add to create one)")
            return
        width = len(str(len(rows)))
        for i, (page, depth) in enumerate(rows, 1):
            star = " ★" if page.favorite else ""
            focus = ">" if page.id == self.focus_id else " "
            print(f"  {focus}{i:>{width}}. {'  ' * depth}{page.title}{star}")

    def _add_page(self, parent_ref: str):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        parent_id = None
        if parent_ref:
            parent = self._page_at(parent_ref)
            if parent is None:
                return
            parent_id = parent.id
        self._apply(actions.add_page(self.session.worlds, self.config.actor, world.id, parent_id))
        print("  Added page.")
        self._show_tree()

    def _retitle_page(self, arg: str):
        ref, _, title = arg.partition(" ")
        if not ref:
            print("Usage: /title <#> <title>")
            return
        page = self._page_at(ref)
        if page is None:
            return
        result = self._apply(actions.rename_page(self.session.worlds, self.config.actor, self.world.id, page.id, title))
        if len(result.changes) == 1:
            print("  Title unchanged.")
        else:
            print(f"  Renamed: {title.strip() or page.title}")

    def _edit_page(self, arg: str):
        ref, _, text = arg.partition(" ")
        if not ref:
            print("Usage: /edit <#> <text>")
            return
        page = self._page_at(ref)
        if page is None:
            return
        # Escaped newlines let a single input line hold several paragraphs
        self._apply(
            actions.update_page_content(self.session.worlds, self.world.id, page.id, text.replace("\\n", "\n"))
        )
        print(f"  Updated: {page.title}")

    def _show_page(self, ref: str):
        page = self._page_at(ref) if ref else None
        if page is None:
            if not ref:
                print("Usage: /show <#>")
            return
        self.focus_id = page.id
        print()
        print(f"  {page.title}{' ★' if page.favorite else ''}")
        print("  " + "┄" * 40)
        body = plain_text(page.content)
        for line in (body.split("\n") if body else ["(empty)"]):
            print(f"  {line}")
        print()

    def _toggle_favorite(self, ref: str):
        page = self._page_at(ref)
        if page is None:
            return
        self._apply(actions.toggle_favorite(self.session.worlds, self.world.id, page.id))
        print(f"  {'Unstarred' if page.favorite else 'Starred'}: {page.title}")

    def _copy_page(self, ref: str):
        page = self._page_at(ref)
        if page is None:
            return
        self._apply(actions.duplicate_page(self.session.worlds, self.config.actor, self.world.id, page.id))
        print(f"  Copied: {page.title}")
        self._show_tree()

    async def _remove_page(self, ref: str):
        page = self._page_at(ref)
        if page is None:
            return
        nested = len(numbered_pages(page.children))
        question = f"Delete “{page.title}”"
        if nested:
            question += f" and {nested} nested page{'s' if nested != 1 else ''}"
        if not await self._confirm(question + "?"):
            print("  Cancelled.")
            return
        self._apply(actions.delete_page(self.session.worlds, self.config.actor, self.world.id, page.id))
        if self.focus_id == page.id:
            self.focus_id = None
        print(f"  Deleted: {page.title}")

    def _move_page(self, arg: str):
        parts = arg.split()
        if len(parts) != 3 or parts[1] not in ("before", "after"):
            print("Usage: /move <#> before|after <#>")
            return
        page = self._page_at(parts[0])
        target = self._page_at(parts[2]) if page else None
        if page is None or target is None:
            return
        self._apply(
            actions.move_page(
                self.session.worlds, self.config.actor, self.world.id, page.id, target.id, parts[1]
            )
        )
        self._show_tree()

    # -- collaborators and activity ----------------------------------------

    def _show_people(self):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        print(f"  People in {world.name}:")
        for i, person in enumerate(world.collaborators, 1):
            you = " (you)" if person.id == self.config.actor.id else ""
            print(f"  {i}. {person.name}{you}  <{person.email}>  {person.role}")

    def _unshare(self, index: str):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        try:
            person = world.collaborators[int(index) - 1]
        except (ValueError, IndexError):
            print("Usage: /unshare <n>  (see /people)")
            return
        if world.owner_id != self.config.actor.id:
            print("  Only the owner can remove people.")
            return
        result = self._apply(actions.remove_collaborator(self.session.worlds, self.config.actor, world.id, person.id))
        if result.changes:
            print(f"  Removed {person.name}")
        else:
            print(f"  {person.name} can't be removed.")

    def _show_activity(self, arg: str):
        world = self.world
        if world is None:
            print("  No world selected.")
            return
        try:
            n = int(arg) if arg else 10
        except ValueError:
            print("Usage: /activity [n]")
            return
        if not world.activity:
            print("  No activity yet.")
            return
        for entry in world.activity[:n]:
            when = format_relative_time(entry.timestamp)
            context = f"  \033[90m{entry.context}\033[0m" if entry.context else ""
            print(f"  {summarize_activity(entry)}  · {entry.actor_name} · {when}{context}")

    # -- sync --------------------------------------------------------------

    async def _sync(self):
        if not self.session.online:
            print(f"  Offline. {len(self.session.queued)} change(s) waiting.")
            return
        ok = await self.session.flush()
        if ok:
            print("  All changes saved.")
        else:
            print(f"  Sync failed: {self.session.last_error}")

    async def _go_offline(self):
        if self.monitor is not None:
            await self.monitor.stop()
        self.session.set_online(False)
        print("  Working offline. Changes are kept locally.")

    async def _go_online(self):
        task = self.session.set_online(True)
        if task is not None:
            await task
        if self.monitor is not None:
            self.monitor.start()
        self._show_status()

    def _show_status(self):
        session = self.session
        print(f"  Status:  {STATUS_LABELS[session.status]}")
        print(f"  Server:  {self.config.api_url} ({'online' if session.online else 'offline'})")
        print(f"  Pending: {len(session.pending)}  In flight: {len(session.in_flight)}")
        if session.last_synced_at:
            print(f"  Synced:  {format_relative_time(session.last_synced_at)}")
        if session.last_error:
            print(f"  Error:   {session.last_error}")
        actor = self.config.actor
        print(f"  As:      {actor.name} ({actor.id})")

    def _login(self, arg: str):
        user_id, _, name = arg.partition(" ")
        if not user_id:
            print("Usage: /login <user-id> [display name]")
            return
        self.config.sign_in(user_id, name=name.strip() or None)

    def _logout(self):
        if not self.config.is_signed_in:
            print("  Not signed in.")
            return
        self.config.clear_environment()

    def _show_help(self):
        print("""
  Worlds:
    /worlds              - List worlds
    /world <n>           - Switch to world <n>
    /new [name]          - Create a world
    /rename <name>       - Rename the current world
    /dup                 - Duplicate the current world
    /delete              - Delete the current world

  Pages:
    /tree                - Show the page index
    /add [parent#]       - Add a page (under parent#)
    /title <#> <title>   - Rename a page
    /edit <#> <text>     - Replace a page's content (\\n for paragraphs)
    /show <#>            - Print a page
    /fav <#>             - Star or unstar a page
    /copy <#>            - Duplicate a page and its sub-pages
    /rm <#>              - Delete a page and its sub-pages
    /move <#> before|after <#>

  Sharing:
    /people              - List collaborators
    /unshare <n>         - Remove collaborator <n>
    /activity [n]        - Recent activity

  Sync:
    /sync                - Save now
    /offline, /online    - Toggle connectivity
    /status              - Sync status
    /login <id> [name]   - Edit as another user
    /logout              - Edit as the local storyteller

    /help                - Show this help
    /quit                - Exit
""")
