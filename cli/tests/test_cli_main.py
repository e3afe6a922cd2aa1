"""Tests for argument parsing, sign-in and the REPL command loop."""

from __future__ import annotations

import httpx
import pytest

from engine.kernel.page_tree import flatten

from enfield_cli.auth import login, logout
from enfield_cli.config import Config
from enfield_cli.main import parse_args
from enfield_cli.repl import Repl, numbered_pages, plain_text
from enfield_cli.sync import SyncStatus


@pytest.fixture(autouse=True)
def no_env_url(monkeypatch):
    monkeypatch.delenv("ENFIELD_API_URL", raising=False)


@pytest.fixture
def config(tmp_path):
    return Config(config_dir=tmp_path)


def scripted(*lines):
    """input() replacement that replays `lines`, then signals EOF."""
    queue = list(lines)

    def read(prompt=""):
        if not queue:
            raise EOFError
        return queue.pop(0)

    return read


async def run(config, session, *lines):
    repl = Repl(config, session, input_fn=scripted(*lines))
    await repl.start()
    return repl


# ── parse_args ──────────────────────────────────────────────────────────────


class TestParseArgs:
    def test_empty_is_repl(self):
        args = parse_args([])
        assert args["command"] is None
        assert args["offline"] is False

    def test_login_with_options(self):
        args = parse_args(["login", "ada", "--name", "Ada Lovelace", "--api-url", "http://dev:9000"])
        assert args["command"] == "login"
        assert args["user_id"] == "ada"
        assert args["name"] == "Ada Lovelace"
        assert args["api_url"] == "http://dev:9000"

    def test_logout_all(self):
        args = parse_args(["logout", "--all"])
        assert args["command"] == "logout"
        assert args["logout_all"] is True

    def test_unknown_option_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--nope"])

    def test_missing_value_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--api-url"])

    def test_stray_positional_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["worlds"])


# ── login / logout ──────────────────────────────────────────────────────────


@pytest.mark.asyncio(loop_scope="session")
class TestAuth:
    async def test_login_checks_server(self, config, server, capsys):
        server.seed({"id": "w1", "name": "Ashgrove"})
        assert await login(config, "u1", name="Ada", transport=server.transport) is True
        assert config.current_user().id == "u1"
        assert "1 world(s)" in capsys.readouterr().out
        assert server.requests[0].headers["X-User-Id"] == "u1"

    async def test_login_offline_still_signs_in(self, config, server):
        server.down = True
        assert await login(config, "u1", transport=server.transport) is True
        assert config.is_signed_in

    async def test_rejected_identity_is_not_kept(self, config):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"detail": "Not authenticated"}))
        assert await login(config, "u1", token="bad", transport=transport) is False
        assert config.current_user() is None

    async def test_blank_user_id(self, config):
        assert await login(config, "  ") is False

    async def test_logout(self, config):
        assert logout(config) is False
        config.sign_in("u1")
        assert logout(config) is True
        assert config.current_user() is None

    async def test_logout_all(self, tmp_path):
        Config(config_dir=tmp_path).sign_in("a")
        Config("http://other", config_dir=tmp_path).sign_in("b")
        config = Config(config_dir=tmp_path)
        assert logout(config, logout_all=True) is True
        assert config.list_environments() == []


# ── REPL ────────────────────────────────────────────────────────────────────


class TestReplHelpers:
    def test_numbered_pages_is_preorder(self):
        from engine.kernel.page_tree import create_page

        tree = [create_page("A", children=[create_page("A1")]), create_page("B")]
        assert [(p.title, depth) for p, depth in numbered_pages(tree)] == [("A", 0), ("A1", 1), ("B", 0)]

    def test_plain_text(self):
        assert plain_text("<p>Fog &amp; iron</p><p>Second</p>") == "Fog & iron\nSecond"


@pytest.mark.asyncio(loop_scope="session")
class TestRepl:
    async def test_build_a_world(self, config, session, wait_settled):
        await run(config, session, "/new Ashgrove", "/add", "/add 1", "/title 2 Gatehouse", "/quit")
        (world,) = session.worlds
        assert world.name == "Ashgrove"
        assert config.current_world_id == world.id
        (root,) = world.pages
        assert root.title == "Untitled page"
        assert [c.title for c in root.children] == ["Gatehouse"]

        await wait_settled(session)
        assert session.status is SyncStatus.SAVED

    async def test_edit_and_show(self, config, session, capsys):
        await run(config, session, "/new Ashgrove", "/add", "/edit 1 Fog rolls in\\n\\nIron bells", "/show 1")
        page = session.worlds[0].pages[0]
        assert page.content == "<p>Fog rolls in</p><p>Iron bells</p>"
        assert "Iron bells" in capsys.readouterr().out

    async def test_tree_marks_favorites(self, config, session, capsys):
        await run(config, session, "/new Ashgrove", "/add", "/fav 1", "/tree")
        assert session.worlds[0].pages[0].favorite is True
        assert "★" in capsys.readouterr().out

    async def test_remove_needs_confirmation(self, config, session):
        await run(config, session, "/new Ashgrove", "/add", "/rm 1", "n")
        assert len(session.worlds[0].pages) == 1
        await run(config, session, "/rm 1", "y")
        assert session.worlds[0].pages == []

    async def test_delete_last_world_leaves_a_fresh_one(self, config, session):
        await run(config, session, "/new Ashgrove", "/delete", "yes")
        assert [w.name for w in session.worlds] == ["Untitled world"]
        assert config.current_world_id == session.worlds[0].id

    async def test_invalid_move_is_reported(self, config, session, capsys):
        await run(config, session, "/new Ashgrove", "/add", "/add 1", "/move 1 after 2", "/move 2 before 1")
        out = capsys.readouterr().out
        assert "Can't move there" in out
        titles = [p.title for p in flatten(session.worlds[0].pages)]
        assert titles == ["Untitled sub-page", "Untitled page"]

    async def test_copy_page(self, config, session):
        await run(config, session, "/new Ashgrove", "/add", "/title 1 Gate", "/copy 1")
        assert [p.title for p in session.worlds[0].pages] == ["Gate", "Gate copy"]

    async def test_switch_worlds(self, config, session):
        await run(config, session, "/new One", "/new Two", "/world 1", "/rename Uno")
        assert [w.name for w in session.worlds] == ["Uno", "Two"]

    async def test_activity(self, config, session, capsys):
        await run(config, session, "/new Ashgrove", "/add", "/activity")
        out = capsys.readouterr().out
        assert "Created “Untitled page”" in out
        assert "Storyteller" in out

    async def test_offline_toggle(self, config, session, server):
        await run(config, session, "/offline", "/new Ashgrove", "/status")
        assert session.status is SyncStatus.OFFLINE
        assert server.patches == []
        await run(config, session, "/online")
        assert session.status is SyncStatus.SAVED
        assert [w.name for w in server.worlds] == ["Ashgrove"]

    async def test_sync_command(self, config, session, server, capsys):
        await run(config, session, "/new Ashgrove", "/sync")
        assert "All changes saved." in capsys.readouterr().out
        assert len(server.patches) == 1

    async def test_login_switches_identity(self, config, session, server):
        await run(config, session, "/login u2 Grace", "/new Harbor", "/sync")
        assert config.actor.name == "Grace"
        assert session.worlds[0].owner_id == "u2"
        assert server.requests[-1].headers["X-User-Id"] == "u2"

    async def test_unknown_command(self, config, session, capsys):
        await run(config, session, "/frobnicate")
        assert "Unknown command" in capsys.readouterr().out
