"""Tests for the sessions panel and toast relay."""

from __future__ import annotations

import unittest

from govmail_ai.focus import FocusController
from govmail_ai.models import (
    Role,
    SessionPhase,
    SessionStatus,
    SessionStatusView,
    SubjectContext,
    TranscriptEntry,
)
from govmail_ai.projector import NotificationProjector
from govmail_ai.session_store import SessionStore

try:
    from govmail_ai.widgets import SessionsPanel, ToastRelay, render_rows
except ModuleNotFoundError:
    SessionsPanel = None  # type: ignore[assignment,misc]
    ToastRelay = None  # type: ignore[assignment,misc]
    render_rows = None  # type: ignore[assignment]


def _view(session_id: str, status: SessionStatus, **kwargs) -> SessionStatusView:
    return SessionStatusView(session_id, status, f"Subject {session_id}", **kwargs)


@unittest.skipIf(SessionsPanel is None, "textual is not installed")
class RenderRowsTests(unittest.TestCase):
    """Validate the rich text rendering of projection rows."""

    def test_empty_projection_shows_placeholder(self) -> None:
        assert render_rows is not None
        self.assertEqual(render_rows([]).plain, "No AI sessions yet.")

    def test_one_line_per_session(self) -> None:
        assert render_rows is not None
        text = render_rows(
            [
                _view("a", SessionStatus.THINKING, account="bids@"),
                _view("b", SessionStatus.DONE, assistant_count=2),
            ]
        )
        lines = text.plain.splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn("Subject a", lines[0])
        self.assertIn("bids@", lines[0])
        self.assertIn("(2)", lines[1])


@unittest.skipIf(SessionsPanel is None, "textual is not installed")
class SessionsPanelTests(unittest.IsolatedAsyncioTestCase):
    """Validate the panel follows the projection while mounted."""

    def test_sessions_panel_is_static_subclass(self) -> None:
        from textual.widgets import Static

        assert SessionsPanel is not None
        self.assertTrue(issubclass(SessionsPanel, Static))

    def test_show_before_mount_keeps_rows(self) -> None:
        assert SessionsPanel is not None
        panel = SessionsPanel()
        panel.show([_view("a", SessionStatus.PENDING)])
        self.assertEqual(len(panel.views), 1)
        self.assertEqual(panel.badge_text, "AI (1)")
        self.assertEqual(SessionsPanel().badge_text, "AI")

    async def test_mounted_panel_tracks_store_changes(self) -> None:
        from textual.app import App, ComposeResult

        assert SessionsPanel is not None
        store = SessionStore()
        projector = NotificationProjector(store)

        class _TestApp(App[None]):
            def compose(self) -> ComposeResult:
                yield SessionsPanel(projector, id="sessions")

        app = _TestApp()
        async with app.run_test():
            panel = app.query_one("#sessions", SessionsPanel)
            self.assertEqual(panel.views, [])
            store.create("msg-1", SubjectContext(subject="RFQ"))
            store.update("msg-1", phase=SessionPhase.IN_CONVERSATION, is_busy=True)
            self.assertEqual(
                [view.status for view in panel.views], [SessionStatus.THINKING]
            )


@unittest.skipIf(ToastRelay is None, "textual is not installed")
class ToastRelayTests(unittest.TestCase):
    """Validate toasts are raised when an exchange settles."""

    def setUp(self) -> None:
        assert ToastRelay is not None
        self.store = SessionStore()
        self.projector = NotificationProjector(self.store)
        self.focus = FocusController()
        self.toasts: list[tuple[str, dict]] = []
        self.relay = ToastRelay(
            self.projector,
            lambda message, **kwargs: self.toasts.append((message, kwargs)),
            self.focus,
        )
        for session_id in ("msg-1", "msg-2"):
            self.store.create(session_id, SubjectContext(subject=f"RFQ {session_id}"))
            self.store.update(
                session_id, phase=SessionPhase.IN_CONVERSATION, is_busy=True
            )

    def _settle(self, session_id: str, failed: bool = False) -> None:
        self.store.update(
            session_id,
            is_busy=False,
            transcript=(TranscriptEntry(Role.ASSISTANT, "reply", failed=failed),),
        )

    def test_completion_raises_toast(self) -> None:
        self._settle("msg-1")
        self.assertEqual(self.toasts, [("RFQ msg-1", {"title": "AI replied"})])

    def test_failure_raises_error_toast(self) -> None:
        self._settle("msg-2", failed=True)
        self.assertEqual(self.toasts[0][1]["severity"], "error")

    def test_focused_session_is_skipped(self) -> None:
        self.focus.focus("msg-1")
        self._settle("msg-1")
        self._settle("msg-2")
        self.assertEqual([message for message, _ in self.toasts], ["RFQ msg-2"])

    def test_close_stops_toasts(self) -> None:
        self.relay.close()
        self._settle("msg-1")
        self.assertEqual(self.toasts, [])


if __name__ == "__main__":
    unittest.main()
