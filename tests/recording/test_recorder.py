import unittest
from dataclasses import FrozenInstanceError

from justdraw_workspace.agents import AgentRegistry, StaticModelCatalog
from justdraw_workspace.models import AgentMessage
from justdraw_workspace.recording import Recorder, RecordingArchive
from justdraw_workspace.storage import InMemoryKeyValueStore
from justdraw_workspace.transcript import TranscriptStore


class RecorderTests(unittest.TestCase):
    def setUp(self) -> None:
        storage = InMemoryKeyValueStore()
        self._transcript = TranscriptStore(storage, AgentRegistry(), StaticModelCatalog([], "m"))
        self._transcript.hydrate("sketch-partner")
        self._archive = RecordingArchive(storage)
        self._recorder = Recorder(self._transcript, self._archive)

    def _say(self, *texts: str) -> None:
        self._transcript.append(*(AgentMessage.create("sketch-partner", "user", t) for t in texts))

    def test_start_and_stop_transition_between_idle_and_armed(self) -> None:
        self.assertEqual("idle", self._recorder.state)
        recording = self._recorder.start("demo")
        self.assertEqual("armed", self._recorder.state)
        self.assertIsNone(recording.end_time)

        stopped = self._recorder.stop()

        self.assertEqual(recording.id, stopped.id)
        self.assertEqual("demo", stopped.name)
        self.assertEqual("idle", self._recorder.state)
        self.assertIsNotNone(stopped.end_time)
        self.assertEqual([stopped], list(self._archive.list()))

    def test_start_while_armed_and_stop_while_idle_are_noops(self) -> None:
        self.assertIsNone(self._recorder.stop())
        first = self._recorder.start()
        self.assertIsNone(self._recorder.start())
        self.assertEqual(first.id, self._recorder.current.id)
        self._recorder.stop()
        self.assertIsNone(self._recorder.stop())
        self.assertEqual(1, len(self._archive))

    def test_each_mutation_writes_entry_with_messages_since_previous(self) -> None:
        self._recorder.start()
        self._say("one")
        self._recorder.observe_canvas_mutation({"added": [{"id": "a"}]})
        self._recorder.observe_canvas_mutation({"removed": ["a"]})
        self._say("two", "three")
        self._recorder.observe_canvas_mutation({"added": [{"id": "b"}]})
        recording = self._recorder.stop()

        entries = recording.metadata
        self.assertEqual(3, len(entries))
        self.assertEqual(["one"], [m.content for m in entries[0].chat_messages])
        self.assertEqual([], list(entries[1].chat_messages))
        self.assertEqual(["two", "three"], [m.content for m in entries[2].chat_messages])
        self.assertEqual({"removed": ["a"]}, entries[1].canvas_diff)

    def test_entry_keeps_only_five_most_recent_messages(self) -> None:
        self._recorder.start()
        self._say(*(f"m{i}" for i in range(8)))
        self._recorder.observe_canvas_mutation({"added": []})
        recording = self._recorder.stop()

        self.assertEqual(["m3", "m4", "m5", "m6", "m7"], [m.content for m in recording.metadata[0].chat_messages])

    def test_trailing_messages_are_flushed_on_stop(self) -> None:
        self._recorder.start()
        self._recorder.observe_canvas_mutation({"added": []})
        self._say("after last mutation")
        recording = self._recorder.stop()

        self.assertEqual(2, len(recording.metadata))
        self.assertIsNone(recording.metadata[-1].canvas_diff)
        self.assertEqual("after last mutation", recording.metadata[-1].chat_messages[0].content)

    def test_nothing_captured_while_idle(self) -> None:
        self._say("before")
        self._recorder.observe_canvas_mutation({"added": []})
        self._recorder.start()
        recording = self._recorder.stop()
        self.assertEqual((), recording.metadata)

    def test_messages_after_stop_are_not_observed(self) -> None:
        self._recorder.start()
        recording = self._recorder.stop()
        self._say("late")
        self.assertEqual((), recording.metadata)

    def test_finalized_recording_is_immutable(self) -> None:
        self._recorder.start()
        self._recorder.observe_canvas_mutation({"added": []})
        self.assertEqual(1, len(self._recorder.current.metadata))
        recording = self._recorder.stop()

        self.assertIsInstance(recording.metadata, tuple)
        with self.assertRaises(FrozenInstanceError):
            recording.end_time = None


if __name__ == "__main__":
    unittest.main()
