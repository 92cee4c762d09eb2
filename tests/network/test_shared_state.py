"""Tests for reference-counted shared session state.

Tests cover:
- attach/release reference counting and close-on-last-release
- Idempotent close that saves cookies and closes the pool once
- Lending the pool through a non-closing wrapper
- Cookie jar loading, corrupt-file handling, and persistence
"""

import logging
from http.cookiejar import Cookie
from unittest.mock import Mock

import httpx
import pytest

from httpsession import SessionStateError, SharedState
from httpsession.cookies import load_cookie_jar, save_cookie_jar
from httpsession.transport import ResolvingTransport


def _cookie(name: str, value: str, domain: str = "api.example.com") -> Cookie:
    return Cookie(
        version=0,
        name=name,
        value=value,
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=False,
        domain_initial_dot=False,
        path="/",
        path_specified=True,
        secure=False,
        expires=None,
        discard=True,
        comment=None,
        comment_url=None,
        rest={},
    )


@pytest.fixture
def jar_path(tmp_path):
    return tmp_path / "state" / "cookie_jar.txt"


@pytest.fixture
def inner_transport():
    return Mock(spec=httpx.BaseTransport)


@pytest.fixture
def shared(session_settings, jar_path, inner_transport):
    state = SharedState(session_settings, cookie_jar_path=jar_path, transport=inner_transport)
    yield state
    state.close()


class TestReferenceCounting:
    def test_attach_and_release(self, shared):
        shared.attach()
        shared.attach()
        assert shared.holders == 2

        shared.release()
        assert shared.holders == 1
        assert not shared.closed

        shared.release()
        assert shared.holders == 0
        assert shared.closed

    def test_attach_after_close_raises(self, shared):
        shared.close()
        with pytest.raises(SessionStateError):
            shared.attach()

    def test_pool_after_close_raises(self, shared):
        shared.close()
        with pytest.raises(SessionStateError):
            shared.pool()

    def test_release_on_closed_state_is_harmless(self, shared):
        shared.attach()
        shared.close()
        shared.release()
        assert shared.holders == 0


class TestClose:
    def test_close_is_idempotent(self, shared, inner_transport, jar_path):
        shared.close()
        shared.close()

        inner_transport.close.assert_called_once_with()
        assert jar_path.exists()

    def test_context_manager(self, session_settings, jar_path, inner_transport):
        with SharedState(session_settings, cookie_jar_path=jar_path, transport=inner_transport) as state:
            assert not state.closed
        assert state.closed
        inner_transport.close.assert_called_once_with()

    def test_save_failure_is_logged(self, session_settings, tmp_path, inner_transport, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        state = SharedState(
            session_settings, cookie_jar_path=blocker / "cookie_jar.txt", transport=inner_transport
        )

        with caplog.at_level(logging.ERROR, logger="httpsession.shared"):
            state.close()

        assert "Failed to save cookie jar" in caplog.text
        inner_transport.close.assert_called_once_with()


class TestPool:
    def test_borrowed_pool_does_not_close_shared_pool(self, shared, inner_transport):
        borrowed = shared.pool()
        request = httpx.Request("GET", "https://api.example.com/")
        inner_transport.handle_request.return_value = httpx.Response(200)

        assert borrowed.handle_request(request).status_code == 200
        borrowed.close()

        inner_transport.handle_request.assert_called_once_with(request)
        inner_transport.close.assert_not_called()

    def test_pool_created_lazily(self, session_settings, jar_path):
        state = SharedState(session_settings, cookie_jar_path=jar_path)
        try:
            state.pool()
            assert isinstance(state._transport, ResolvingTransport)
            assert state._transport.dns_cache is state.dns_cache
            first = state._transport
            state.pool()
            assert state._transport is first
        finally:
            state.close()


class TestCookieJar:
    def test_cookies_saved_on_close_and_reloaded(self, shared, session_settings, jar_path):
        shared.cookies.set_cookie(_cookie("sid", "abc"))
        shared.close()

        reloaded = SharedState(session_settings, cookie_jar_path=jar_path)
        try:
            assert {cookie.name: cookie.value for cookie in reloaded.cookies} == {"sid": "abc"}
        finally:
            reloaded.close()

    def test_missing_file_gives_empty_jar(self, tmp_path):
        jar = load_cookie_jar(tmp_path / "absent.txt")
        assert len(jar) == 0
        assert jar.filename == str(tmp_path / "absent.txt")

    def test_corrupt_file_is_ignored(self, tmp_path, caplog):
        path = tmp_path / "cookie_jar.txt"
        path.write_text("this is not a cookie file\n")

        with caplog.at_level(logging.WARNING, logger="httpsession.cookies"):
            jar = load_cookie_jar(path)

        assert len(jar) == 0
        assert "Ignoring unreadable cookie jar" in caplog.text

    def test_save_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "jar.txt"
        jar = load_cookie_jar(path)
        jar.set_cookie(_cookie("a", "1"))

        save_cookie_jar(jar)

        assert path.read_text().startswith("# Netscape HTTP Cookie File")
