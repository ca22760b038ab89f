import asyncio
import unittest

from justdraw_workspace.canvas import CanvasCollaborator, InMemoryCanvas
from justdraw_workspace.errors import ExportFailure, MutationApplyFailure


class InMemoryCanvasTests(unittest.TestCase):
    def setUp(self) -> None:
        self._canvas = InMemoryCanvas()
        self.batches: list[dict] = []
        self._canvas.add_listener(self.batches.append)

    def test_satisfies_collaborator_protocol(self) -> None:
        self.assertIsInstance(self._canvas, CanvasCollaborator)

    def test_local_edits_emit_mutation_batches(self) -> None:
        box = self._canvas.add_element("rectangle", 1, 2, {"text": "A"}, element_id="box")
        self._canvas.move_element("box", 5, 6)
        self._canvas.remove_element("box")
        self._canvas.remove_element("box")

        self.assertEqual("box", box.id)
        self.assertEqual(3, len(self.batches))
        self.assertEqual("box", self.batches[0]["added"][0]["id"])
        self.assertEqual(5.0, self.batches[1]["updated"][0]["x"])
        self.assertEqual(["box"], self.batches[2]["removed"])

    def test_selection_scope(self) -> None:
        self._canvas.add_element("rectangle", 0, 0, element_id="a")
        self._canvas.add_element("ellipse", 0, 0, element_id="b")

        self.assertEqual(["b"], self._canvas.select(["b", "ghost"]))
        self.assertEqual(["b"], [e.id for e in self._canvas.list_elements("selected")])
        self.assertEqual(2, len(self._canvas.list_elements()))
        self._canvas.remove_element("b")
        self.assertEqual([], self._canvas.list_elements("selected"))

    def test_apply_snapshot_updates_document_without_emitting(self) -> None:
        self._canvas.add_element("rectangle", 0, 0, element_id="old")
        self.batches.clear()

        self._canvas.apply_mutation_snapshot({
            "added": [{"id": "new", "type": "arrow", "x": 3, "y": 4, "props": {}}],
            "removed": ["old"],
        })

        self.assertEqual(["new"], [e.id for e in self._canvas.list_elements()])
        self.assertEqual([], self.batches)

    def test_apply_malformed_snapshot_raises(self) -> None:
        with self.assertRaises(MutationApplyFailure):
            self._canvas.apply_mutation_snapshot("not a diff")
        with self.assertRaises(MutationApplyFailure):
            self._canvas.apply_mutation_snapshot({"added": [{"type": "arrow"}]})

    def test_svg_export_escapes_text(self) -> None:
        self._canvas.add_element("rectangle", 10, 10, {"text": "<b>&", "fill": "red"})
        image = asyncio.run(self._canvas.export_current_view_as_image("svg")).decode("utf-8")

        self.assertTrue(image.startswith("<svg"))
        self.assertIn("&lt;b&gt;&amp;", image)
        self.assertIn('fill="red"', image)

    def test_raster_export_is_unsupported(self) -> None:
        with self.assertRaises(ExportFailure):
            asyncio.run(self._canvas.export_current_view_as_image("png"))


if __name__ == "__main__":
    unittest.main()
