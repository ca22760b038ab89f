import asyncio
import base64
import json

from justdraw_workspace.attachments import InMemoryFile
from justdraw_workspace.errors import ExportFailure
from justdraw_workspace.replies import REFINE_PROMPT_PREFIX
from tests.session.base import WorkspaceTestCase


class _RaisingReplies:
    def generate_reply(self, prompt_text, attachments, *, agent) -> str:
        raise RuntimeError("provider offline")


class _RecordingReplies:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, str]] = []

    def generate_reply(self, prompt_text, attachments, *, agent) -> str:
        self.calls.append((prompt_text, len(attachments), agent.id))
        return "ok"


class _ExplodingCanvas:
    def __init__(self) -> None:
        self.elements = []

    async def export_current_view_as_image(self, image_format: str) -> bytes:
        raise ExportFailure("renderer crashed")

    def list_elements(self, scope="all"):
        return list(self.elements)

    def apply_mutation_snapshot(self, snapshot) -> None:
        return


class SessionControllerTests(WorkspaceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._session.select_agent("sketch-partner")

    def test_select_agent_seeds_fresh_transcript(self) -> None:
        self._session.set_composer_value("hello")
        self._session.send_user_message()
        self._session.set_composer_value("draft")

        self.assertTrue(self._session.select_agent("layout-critic"))

        self.assertEqual(1, len(self._session.messages))
        self.assertEqual("system", self._session.messages[0].author)
        self.assertEqual("", self._session.composer_value)
        self.assertEqual("layout-critic", self._session.active_agent.id)

    def test_unknown_agent_clears_and_leaves_agent_unresolved(self) -> None:
        self._session.set_composer_value("draft")
        self.assertFalse(self._session.select_agent("ghost"))

        self.assertEqual((), self._session.messages)
        self.assertEqual("", self._session.composer_value)
        self.assertIsNone(self._session.active_agent)
        self.assertEqual("ghost", self._session.active_agent_id)

    def test_empty_composer_without_attachments_is_noop(self) -> None:
        self._session.set_composer_value("   ")
        self.assertFalse(self._session.send_user_message())
        self.assertEqual(1, len(self._session.messages))

    def test_send_appends_user_and_agent_and_clears_state(self) -> None:
        asyncio.run(self._session.add_attachment(InMemoryFile("a.txt", "text/plain", b"abc")))
        self._session.set_composer_value("  sketch a flowchart  ")

        self.assertTrue(self._session.send_user_message())

        user, agent = self._session.messages[-2:]
        self.assertEqual(3, len(self._session.messages))
        self.assertEqual(("user", "sketch a flowchart"), (user.author, user.content))
        self.assertEqual(1, len(user.attachments))
        self.assertEqual("agent", agent.author)
        self.assertIn("acknowledges: “sketch a flowchart”", agent.content)
        self.assertEqual("", self._session.composer_value)
        self.assertEqual((), self._session.pending_attachments)

    def test_attachments_only_send_is_allowed(self) -> None:
        replies = _RecordingReplies()
        session = self._build_session(reply_generator=replies)
        session.select_agent("sketch-partner")
        asyncio.run(session.add_attachment(InMemoryFile("a.png", "image/png", b"png")))

        self.assertTrue(session.send_user_message())
        self.assertEqual([("", 1, "sketch-partner")], replies.calls)
        self.assertEqual("", session.messages[-2].content)

    def test_sent_message_keeps_snapshot_of_attachments(self) -> None:
        asyncio.run(self._session.add_attachment(InMemoryFile("a.txt", "text/plain", b"abc")))
        self._session.set_composer_value("with file")
        self._session.send_user_message()
        asyncio.run(self._session.add_attachment(InMemoryFile("b.txt", "text/plain", b"def")))

        self.assertEqual(["a.txt"], [a.name for a in self._session.messages[-2].attachments])

    def test_reply_failure_still_appends_exchange(self) -> None:
        session = self._build_session(reply_generator=_RaisingReplies())
        session.select_agent("sketch-partner")
        session.set_composer_value("hello")

        self.assertTrue(session.send_user_message())
        self.assertEqual(["system", "user", "system"], [m.author for m in session.messages])
        self.assertIn("provider offline", session.messages[-1].content)

    def test_send_without_active_agent_is_noop(self) -> None:
        self._session.select_agent("ghost")
        self._session.set_composer_value("hello")
        self.assertFalse(self._session.send_user_message())
        self.assertEqual((), self._session.messages)

    def test_canvas_action_appends_system_message(self) -> None:
        self.assertTrue(self._session.send_canvas_action("align boxes"))
        last = self._session.messages[-1]
        self.assertEqual("system", last.author)
        self.assertEqual("test-model suggests canvas update: align boxes", last.content)
        self.assertEqual([], self._canvas.list_elements())

    def test_canvas_action_without_agent_is_noop(self) -> None:
        self._session.select_agent("ghost")
        self.assertFalse(self._session.send_canvas_action("align boxes"))
        self.assertEqual((), self._session.messages)

    def test_capture_snapshot_attaches_and_offers_download(self) -> None:
        self._canvas.add_element("rectangle", 10, 20, {"text": "Box"})

        attachment = asyncio.run(self._session.capture_snapshot())

        self.assertIsNotNone(attachment)
        self.assertEqual("snapshot.svg", attachment.name)
        self.assertEqual("image/svg+xml", attachment.media_type)
        self.assertIsNotNone(attachment.preview)
        self.assertEqual(1, len(self._downloads))
        name, content = self._downloads[0]
        self.assertTrue(name.startswith("workspace-snapshot-") and name.endswith(".svg"))
        self.assertEqual(content, base64.b64decode(attachment.data))

    def test_capture_snapshot_failure_is_swallowed(self) -> None:
        session = self._build_session(snapshot_format="png")
        self.assertIsNone(asyncio.run(session.capture_snapshot()))
        self.assertEqual((), session.pending_attachments)
        self.assertEqual([], self._downloads)

    def test_inference_context_full_board_sends_prompt_with_image(self) -> None:
        self._canvas.add_element("rectangle", 10, 20, {"text": "Box"}, element_id="shape:a")

        self.assertTrue(asyncio.run(self._session.capture_inference_context()))

        user, agent = self._session.messages[-2:]
        self.assertTrue(user.content.startswith(f"{REFINE_PROMPT_PREFIX} full-board"))
        self.assertIn('"id": "shape:a"', user.content)
        self.assertEqual(["board.svg"], [a.name for a in user.attachments])
        self.assertTrue(agent.content.startswith("Refined structure: "))
        refined = json.loads(agent.content[len("Refined structure: "):])
        self.assertEqual("balanced", refined["layout"])
        self.assertEqual("", self._session.composer_value)
        self.assertEqual((), self._session.pending_attachments)

    def test_inference_context_selection_sends_selected_elements_only(self) -> None:
        self._canvas.add_element("rectangle", 0, 0, element_id="shape:a")
        self._canvas.add_element("ellipse", 50, 50, element_id="shape:b")
        self._canvas.select(["shape:b"])

        asyncio.run(self._session.capture_inference_context())

        user = self._session.messages[-2]
        self.assertIn("hand-drawn selection", user.content)
        self.assertIn("shape:b", user.content)
        self.assertNotIn("shape:a", user.content)
        self.assertEqual((), user.attachments)

    def test_inference_context_without_agent_stages_nothing(self) -> None:
        self._session.select_agent("ghost")
        self._canvas.add_element("rectangle", 0, 0)

        self.assertFalse(asyncio.run(self._session.capture_inference_context()))

        self.assertEqual("", self._session.composer_value)
        self.assertEqual((), self._session.pending_attachments)
        self.assertEqual((), self._session.messages)

    def test_download_attachment_decodes_sent_and_pending_files(self) -> None:
        sent = asyncio.run(self._session.add_attachment(InMemoryFile("notes.txt", "text/plain", b"sent bytes")))
        self._session.send_user_message()
        pending = asyncio.run(self._session.add_attachment(InMemoryFile("dot.png", "image/png", b"\x89PNG")))

        self.assertEqual(sent.id, self._session.download_attachment(sent.id[:8]).id)
        self.assertEqual(pending.id, self._session.download_attachment(pending.id).id)

        self.assertEqual([("notes.txt", b"sent bytes"), ("dot.png", b"\x89PNG")], self._downloads)
        self.assertIsNone(self._session.download_attachment("missing"))
        self.assertEqual(2, len(self._downloads))

    def test_download_attachment_without_sink_is_noop(self) -> None:
        session = self._build_session(download_sink=None)
        session.select_agent("sketch-partner")
        attachment = asyncio.run(session.add_attachment(InMemoryFile("a.txt", "text/plain", b"a")))

        self.assertIsNone(session.download_attachment(attachment.id))

    def test_inference_context_export_failure_still_sends(self) -> None:
        canvas = _ExplodingCanvas()
        session = self._build_session(canvas=canvas)
        session.select_agent("sketch-partner")

        self.assertTrue(asyncio.run(session.capture_inference_context()))
        self.assertEqual((), session.messages[-2].attachments)

    def test_restore_transcript_reloads_persisted_history(self) -> None:
        self._session.set_composer_value("remember me")
        self._session.send_user_message()

        restored = self._build_session()
        restored.select_agent("sketch-partner")
        self.assertEqual(1, len(restored.messages))

        self.assertEqual(3, restored.restore_transcript())
        self.assertEqual("remember me", restored.messages[1].content)

    def test_recording_and_replay_are_mutually_exclusive(self) -> None:
        self._session.start_recording()
        self._canvas.add_element("rectangle", 0, 0)
        self._canvas.add_element("ellipse", 40, 0)
        recording = self._session.stop_recording()
        self._session.select_replay(recording.id)

        self._session.start_recording()
        self.assertFalse(self._session.play_replay())
        self._session.stop_recording()

        self.assertTrue(self._session.play_replay())
        self.assertIsNone(self._session.start_recording())

    def test_recorded_session_replays_canvas_and_chat(self) -> None:
        self._session.start_recording("demo")
        self._canvas.add_element("rectangle", 0, 0, {"text": "Login"}, element_id="login")
        self._session.set_composer_value("tidy the login box")
        self._session.send_user_message()
        self._canvas.move_element("login", 50, 50)
        recording = self._session.stop_recording()

        self.assertEqual(1, len(self._session.recordings))
        self.assertEqual("demo", recording.display_name)
        self.assertEqual(2, len(recording.metadata))

        self._canvas.remove_element("login")
        self.assertEqual(recording.id, self._session.select_replay(recording.id[:8]).id)
        self.assertTrue(self._session.play_replay())
        self._scheduler.run_all()

        element = self._canvas.list_elements()[0]
        self.assertEqual(("login", 50.0), (element.id, element.x))
        chat = [m.content for m in self._session.replay.chat_view]
        self.assertEqual("tidy the login box", chat[0])
        self.assertEqual(2, len(chat))
        self.assertEqual(3, len(self._session.messages))
