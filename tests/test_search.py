import io
import json
import sys
import tempfile
import threading
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from core.engine import GameEngine
from core.state import Container, Level, LiquidColor, LiquidLayer
from solver import search
from solver.search import SearchLimits, analyze_level, canonical_state_key, find_hint, solve_containers

R = LiquidColor.RED
B = LiquidColor.BLUE
G = LiquidColor.GREEN


def box(cid, *layers, capacity=4):
    return Container(cid, capacity, tuple(LiquidLayer(c, v) for c, v in layers))


def two_color_puzzle():
    return (box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))


class SolvabilitySearchTestCase(unittest.TestCase):
    def test_solves_small_puzzle_with_shortest_path(self):
        result = solve_containers(two_color_puzzle())
        self.assertEqual("solved", result.status)
        self.assertTrue(result.is_proven_solvable)
        self.assertEqual(2, len(result.solution))
        self.assertEqual(len(result.solution) + 1, len(result.solution_states))

    def test_already_sorted_needs_no_moves(self):
        result = solve_containers((box(0, (R, 4)), box(1)))
        self.assertEqual("solved", result.status)
        self.assertEqual((), result.solution)

    def test_exhausted_frontier_is_proven_unsolvable(self):
        result = solve_containers((box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2))))
        self.assertEqual("proven_unsolvable", result.status)
        self.assertEqual("search_space_exhausted", result.stop_reason)

    def test_budget_stop_is_unknown_not_solved(self):
        result = solve_containers(two_color_puzzle(), SearchLimits(max_expansions=1))
        self.assertEqual("unknown", result.status)
        self.assertEqual("expansion_limit", result.stop_reason)
        self.assertFalse(result.is_proven_solvable)

        result = solve_containers(two_color_puzzle(), SearchLimits(max_states=1))
        self.assertEqual("unknown", result.status)
        self.assertEqual("state_limit", result.stop_reason)

    def test_cancel_event_stops_search(self):
        event = threading.Event()
        event.set()
        result = solve_containers(two_color_puzzle(), cancel_event=event)
        self.assertEqual("unknown", result.status)
        self.assertEqual("cancelled", result.stop_reason)

    def test_canonical_key_ignores_order_and_layer_splits(self):
        a = (box(0, (R, 1), (R, 1), (B, 2)), box(1))
        b = (box(5), box(7, (R, 2), (B, 2)))
        self.assertEqual(canonical_state_key(a), canonical_state_key(b))

    def test_find_hint_returns_first_pour_by_container_id(self):
        engine = GameEngine()
        state = engine.initialize_level(1, [box(10, (R, 2), (B, 2)), box(11, (B, 2), (R, 2)), box(12)])
        hint = find_hint(state)
        self.assertIsNotNone(hint)
        self.assertIn(hint.from_container_id, (10, 11))
        self.assertEqual(12, hint.to_container_id)
        self.assertTrue(engine.validate_pour(state, hint.from_container_id, hint.to_container_id).is_success)

    def test_find_hint_on_lost_state(self):
        engine = GameEngine()
        state = engine.initialize_level(1, [box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2))])
        self.assertIsNone(find_hint(state))

    def test_analyze_level_reports_metrics(self):
        level = Level(1, 1, 3, 2, two_color_puzzle())
        payload = analyze_level(level).to_dict()
        self.assertEqual("solved", payload["status"])
        self.assertTrue(payload["solvable"])
        self.assertEqual(2, payload["metrics"]["solution_len"])
        self.assertIn("expanded_nodes", payload["metrics"])
        self.assertEqual(2, len(payload["solution"]))

    def test_cli_prints_analysis_json(self):
        level = Level(5, 1, 3, 2, two_color_puzzle())
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "level.json"
            path.write_text(json.dumps(level.to_dict()), encoding="utf-8")
            out = io.StringIO()
            with patch.object(sys, "argv", ["search", str(path), "--whole-runs"]):
                with patch.object(search, "configure_logging"), redirect_stdout(out):
                    search.main()
        payload = json.loads(out.getvalue())
        self.assertEqual(5, payload["level_id"])
        self.assertEqual("solved", payload["status"])
        self.assertTrue(payload["signature"].startswith("containers:3|"))


if __name__ == "__main__":
    unittest.main()
