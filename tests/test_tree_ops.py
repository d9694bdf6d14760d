import unittest

from support import entity

from freepare_panel import tree_ops
from freepare_panel.models import (
    EntityNotFoundError,
    EntityValidationError,
    InvalidHierarchyError,
)


def sample_forest():
    return (
        entity(
            "E1",
            "Math",
            "exam",
            0,
            entity(
                "S1",
                "Algebra",
                "subject",
                0,
                entity("T1", "Sets", "topic", 0, entity("P1", "Sets paper", "paper", 0)),
                entity("P2", "Algebra paper", "paper", 1),
            ),
            entity("S2", "Geometry", "subject", 1),
            entity("S3", "Calculus", "subject", 2),
        ),
        entity("E2", "Physics", "exam", 1),
    )


def positions(nodes):
    return [(n.id, n.position) for n in nodes]


class QueryTests(unittest.TestCase):
    def test_find_path_runs_from_root(self):
        self.assertEqual(tree_ops.find_path(sample_forest(), "P1"), ["E1", "S1", "T1", "P1"])

    def test_find_node_and_parent(self):
        forest = sample_forest()
        self.assertEqual(tree_ops.find_node(forest, "T1").name, "Sets")
        self.assertEqual(tree_ops.find_parent_id(forest, "T1"), "S1")
        self.assertIsNone(tree_ops.find_parent_id(forest, "E2"))

    def test_missing_id_raises_not_found(self):
        with self.assertRaises(EntityNotFoundError):
            tree_ops.find_node(sample_forest(), "nope")

    def test_count_nodes(self):
        self.assertEqual(tree_ops.count_nodes(sample_forest()), 8)


class InsertTests(unittest.TestCase):
    def test_insert_appends_with_next_position(self):
        forest = sample_forest()
        updated = tree_ops.insert_child(forest, "E1", entity("S9", "Statistics", "subject", 7))
        children = tree_ops.find_node(updated, "E1").children
        self.assertEqual(children[-1].id, "S9")
        self.assertEqual(children[-1].position, 3)
        self.assertEqual(tree_ops.count_nodes(updated), tree_ops.count_nodes(forest) + 1)

    def test_insert_at_root(self):
        updated = tree_ops.insert_child((), None, entity("E1", "Math", "exam", 5))
        self.assertEqual(positions(updated), [("E1", 0)])

    def test_insert_leaves_the_old_snapshot_alone(self):
        forest = sample_forest()
        tree_ops.insert_child(forest, "S2", entity("T9", "Angles", "topic"))
        self.assertEqual(forest, sample_forest())

    def test_insert_under_missing_parent(self):
        with self.assertRaises(EntityNotFoundError):
            tree_ops.insert_child(sample_forest(), "ghost", entity("P9", "x", "paper"))

    def test_insert_rejects_bad_hierarchy(self):
        forest = sample_forest()
        with self.assertRaises(InvalidHierarchyError):
            tree_ops.insert_child(forest, "P1", entity("P9", "x", "paper"))
        with self.assertRaises(InvalidHierarchyError):
            tree_ops.insert_child(forest, "T1", entity("S9", "x", "subject"))
        with self.assertRaises(InvalidHierarchyError):
            tree_ops.insert_child(forest, None, entity("S9", "x", "subject"))


class RemoveAndReinsertTests(unittest.TestCase):
    def test_remove_reports_parent_and_position(self):
        removed = tree_ops.remove_node(sample_forest(), "S2")
        self.assertEqual(removed.parent_id, "E1")
        self.assertEqual(removed.original_position, 1)
        self.assertEqual(removed.node.name, "Geometry")
        self.assertEqual(positions(tree_ops.find_node(removed.forest, "E1").children), [("S1", 0), ("S3", 1)])

    def test_leaf_round_trip_restores_forest(self):
        forest = sample_forest()
        removed = tree_ops.remove_node(forest, "P2")
        restored = tree_ops.reinsert_node(
            removed.forest, removed.parent_id, removed.node, removed.original_position
        )
        self.assertEqual(restored, forest)

    def test_subtree_round_trip_restores_forest(self):
        forest = sample_forest()
        removed = tree_ops.remove_node(forest, "S1")
        self.assertFalse(tree_ops.contains(removed.forest, "P1"))
        restored = tree_ops.reinsert_node(
            removed.forest, removed.parent_id, removed.node, removed.original_position
        )
        self.assertEqual(restored, forest)

    def test_root_round_trip(self):
        forest = sample_forest()
        removed = tree_ops.remove_node(forest, "E1")
        self.assertIsNone(removed.parent_id)
        self.assertEqual(positions(removed.forest), [("E2", 0)])
        self.assertEqual(tree_ops.reinsert_node(removed.forest, None, removed.node, 0), forest)

    def test_reinsert_past_the_end_appends(self):
        forest = sample_forest()
        updated = tree_ops.reinsert_node(forest, "E1", entity("S9", "Stats", "subject"), 99)
        self.assertEqual(positions(tree_ops.find_node(updated, "E1").children)[-1], ("S9", 3))

    def test_reinsert_under_vanished_parent(self):
        removed = tree_ops.remove_node(sample_forest(), "S1")
        with self.assertRaises(EntityNotFoundError):
            tree_ops.reinsert_node(removed.forest, "T1", entity("P9", "x", "paper"), 0)

    def test_remove_missing_id(self):
        with self.assertRaises(EntityNotFoundError):
            tree_ops.remove_node(sample_forest(), "nope")


class RenameTests(unittest.TestCase):
    def test_rename_keeps_id_and_position(self):
        updated = tree_ops.rename_node(sample_forest(), "S2", "Geometry II")
        node = tree_ops.find_node(updated, "S2")
        self.assertEqual((node.name, node.position), ("Geometry II", 1))

    def test_blank_name_rejected(self):
        with self.assertRaises(EntityValidationError):
            tree_ops.rename_node(sample_forest(), "S2", "   ")

    def test_rename_missing_id(self):
        with self.assertRaises(EntityNotFoundError):
            tree_ops.rename_node(sample_forest(), "nope", "x")

    def test_update_ignores_structural_fields(self):
        updated = tree_ops.update_node(sample_forest(), "S1", name="Algebra I", children=(), position=9)
        node = tree_ops.find_node(updated, "S1")
        self.assertEqual(node.name, "Algebra I")
        self.assertEqual(len(node.children), 2)
        self.assertEqual(node.position, 0)


class ReorderTests(unittest.TestCase):
    def test_reorder_assigns_dense_positions(self):
        updated = tree_ops.reorder_siblings(sample_forest(), "E1", ["S3", "S1", "S2"])
        self.assertEqual(
            positions(tree_ops.find_node(updated, "E1").children), [("S3", 0), ("S1", 1), ("S2", 2)]
        )

    def test_reorder_is_idempotent(self):
        once = tree_ops.reorder_siblings(sample_forest(), "E1", ["S2", "S3", "S1"])
        twice = tree_ops.reorder_siblings(once, "E1", ["S2", "S3", "S1"])
        self.assertEqual(once, twice)

    def test_reorder_requires_a_permutation(self):
        forest = sample_forest()
        for bad in (["S1", "S2"], ["S1", "S2", "S2"], ["S1", "S2", "E2"]):
            with self.subTest(bad=bad), self.assertRaises(EntityValidationError):
                tree_ops.reorder_siblings(forest, "E1", bad)

    def test_reorder_roots(self):
        updated = tree_ops.reorder_siblings(sample_forest(), None, ["E2", "E1"])
        self.assertEqual(positions(updated), [("E2", 0), ("E1", 1)])

    def test_move_b_before_a(self):
        forest = (entity("X", "Parent", "exam", 0, entity("A", "A", "subject", 0), entity("B", "B", "subject", 1)),)
        updated = tree_ops.move_sibling(forest, "B", "A")
        nodes = {n.id: n.position for n in tree_ops.find_node(updated, "X").children}
        self.assertEqual(nodes, {"A": 1, "B": 0})

    def test_move_down_shifts_between(self):
        updated = tree_ops.move_sibling(sample_forest(), "S1", "S3")
        self.assertEqual(
            positions(tree_ops.find_node(updated, "E1").children), [("S2", 0), ("S3", 1), ("S1", 2)]
        )

    def test_move_across_parents_rejected(self):
        with self.assertRaises(EntityValidationError):
            tree_ops.move_sibling(sample_forest(), "P1", "P2")


class PayloadTests(unittest.TestCase):
    def test_groups_are_sorted_by_position(self):
        forest = tree_ops.forest_from_payload(
            [
                {"_id": "E2", "name": "Physics", "type": "exam", "position": 1},
                {
                    "_id": "E1",
                    "name": "Math",
                    "type": "exam",
                    "position": 0,
                    "children": [
                        {"_id": "S2", "name": "B", "type": "subject", "position": 1},
                        {"_id": "S1", "name": "A", "type": "subject", "position": 0},
                    ],
                },
            ]
        )
        self.assertEqual([n.id for n in forest], ["E1", "E2"])
        self.assertEqual([n.id for n in forest[0].children], ["S1", "S2"])

    def test_empty_payload(self):
        self.assertEqual(tree_ops.forest_from_payload([]), ())
        self.assertEqual(tree_ops.forest_from_payload(None), ())


if __name__ == "__main__":
    unittest.main()
