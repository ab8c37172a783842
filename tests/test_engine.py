import math
import unittest

from floatpath.engine import (
    FloatPathScheduler,
    annotate_activities,
    compute_metrics,
    schedule_network,
    summarize_float_paths,
)
from floatpath.models import Activity, Relationship
from floatpath.network import EPSILON, MAX_ITERATIONS


def chain_activities():
    return [
        Activity("A1", "Activity 1", "2024-01-01", "2024-01-10", is_critical=True),
        Activity("A2", "Activity 2", "2024-01-15", "2024-01-25", is_critical=True),
        Activity("A3", "Activity 3", "2024-01-30", "2024-02-05", is_critical=True),
    ]


def chain_relationships():
    return [
        Relationship("A1", "A2", "FS", 0),
        Relationship("A2", "A3", "FS", 0),
    ]


def mixed_network():
    activities = [
        Activity("S", "Start", "2024-03-01", "2024-03-03"),
        Activity("A", "A", "2024-03-03", "2024-03-08"),
        Activity("B", "B", "2024-03-02", "2024-03-05"),
        Activity("C", "C", "2024-03-04", "2024-03-09"),
        Activity("D", "D", "2024-03-10", "2024-03-12"),
        Activity("E", "E", "2024-03-01", "2024-03-04"),
    ]
    relationships = [
        Relationship("S", "A", "FS", 0),
        Relationship("S", "B", "SS", 1),
        Relationship("A", "C", "FF", 2),
        Relationship("B", "C", "SF", 3),
        Relationship("C", "D", "FS", -1),
        Relationship("B", "D", "FS", 0),
        Relationship("E", "D", "SS", 2),
    ]
    return activities, relationships


class TestFloatPathScheduler(unittest.TestCase):
    def test_linear_chain_is_path_one(self):
        result = schedule_network(chain_activities(), chain_relationships())
        metrics = result.metrics_by_id()

        self.assertTrue(result.converged)
        self.assertEqual(result.finish_activity_id, "A3")
        self.assertEqual(metrics["A1"].es, 0)
        self.assertEqual(metrics["A1"].ef, 9)
        self.assertEqual(metrics["A2"].es, 9)
        self.assertEqual(metrics["A2"].ef, 19)
        self.assertEqual(metrics["A3"].es, 19)
        self.assertEqual(metrics["A3"].ef, 25)

        for act_id in ("A1", "A2", "A3"):
            self.assertEqual(metrics[act_id].total_float_days, 0)
            self.assertEqual(metrics[act_id].float_path_number, 1)
        self.assertEqual(set(result.float_paths()[1]), {"A1", "A2", "A3"})

    def test_parallel_activity_gets_its_own_path(self):
        activities = chain_activities() + [
            Activity("B1", "Parallel Activity 1", "2024-01-05", "2024-01-12", is_critical=False)
        ]
        result = schedule_network(activities, chain_relationships())
        b1 = result.metrics_by_id()["B1"]

        self.assertNotEqual(b1.float_path_number, 1)
        self.assertEqual(b1.total_float_days, 14)
        self.assertFalse(b1.is_critical)

        annotated = {a.id: a for a in annotate_activities(activities, result)}
        self.assertFalse(annotated["B1"].is_critical)
        self.assertTrue(annotated["A2"].is_critical)
        self.assertEqual(annotated["B1"].float_path_number, b1.float_path_number)

    def test_two_driving_predecessors_open_a_second_path(self):
        activities = [
            Activity("X", "X", "2024-01-01", "2024-01-05"),
            Activity("Y", "Y", "2024-01-01", "2024-01-05"),
            Activity("Z", "Z", "2024-01-10", "2024-01-12"),
        ]
        relationships = [Relationship("X", "Z", "FS", 0), Relationship("Y", "Z", "FS", 0)]
        metrics = {m.activity_id: m for m in compute_metrics(activities, relationships)}

        self.assertEqual(metrics["Z"].es, 4)
        self.assertEqual(metrics["Z"].float_path_number, 1)
        self.assertEqual(metrics["X"].float_path_number, 1)
        self.assertEqual(metrics["Y"].float_path_number, 2)

    def test_negative_lag_allows_earlier_start(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-06"),
            Activity("B", "B", "2024-01-01", "2024-01-04"),
        ]
        metrics = {m.activity_id: m for m in compute_metrics(activities, [Relationship("A", "B", "SS", -2)])}

        self.assertEqual(metrics["A"].es, 0)
        self.assertEqual(metrics["B"].es, -2)
        self.assertEqual(metrics["B"].ef, 1)

    def test_start_to_start_with_lag(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-11"),
            Activity("B", "B", "2024-01-01", "2024-01-06"),
        ]
        metrics = {m.activity_id: m for m in compute_metrics(activities, [Relationship("A", "B", "SS", 3)])}

        self.assertEqual(metrics["B"].es, 3)
        self.assertEqual(metrics["B"].ef, 8)
        self.assertEqual(metrics["A"].total_float_days, 0)
        self.assertEqual(metrics["B"].total_float_days, 2)
        self.assertEqual(metrics["B"].free_float_days, 2)
        self.assertEqual(metrics["A"].free_float_days, 0)

    def test_finish_to_finish_drives_successor(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-11"),
            Activity("B", "B", "2024-01-01", "2024-01-04"),
        ]
        metrics = {m.activity_id: m for m in compute_metrics(activities, [Relationship("A", "B", "FF", 2)])}

        self.assertEqual(metrics["B"].es, 9)
        self.assertEqual(metrics["B"].ef, 12)
        self.assertEqual(metrics["A"].lf, 10)
        self.assertEqual(metrics["A"].total_float_days, 0)
        self.assertEqual(metrics["A"].float_path_number, 1)
        self.assertEqual(metrics["B"].float_path_number, 1)

    def test_start_to_finish(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-06"),
            Activity("B", "B", "2024-01-01", "2024-01-04"),
        ]
        relationships = [Relationship("A", "B", "SF", 4)]

        late = {m.activity_id: m for m in compute_metrics(activities, relationships)}
        self.assertEqual(late["B"].es, 1)
        self.assertEqual(late["B"].ef, 4)
        self.assertEqual(late["A"].total_float_days, 0)
        self.assertEqual(late["B"].total_float_days, 1)
        self.assertEqual(late["B"].free_float_days, 1)
        self.assertEqual(late["A"].free_float_days, 0)
        self.assertNotEqual(late["B"].float_path_number, 1)

        early = {m.activity_id: m for m in compute_metrics(activities, relationships, free_float_basis="early")}
        self.assertEqual(early["A"].free_float_days, 0)

    def test_free_float_basis(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-03"),
            Activity("B", "B", "2024-01-03", "2024-01-04"),
            Activity("C", "C", "2024-01-01", "2024-01-11"),
            Activity("D", "D", "2024-01-11", "2024-01-12"),
        ]
        relationships = [
            Relationship("A", "B"),
            Relationship("B", "D"),
            Relationship("C", "D"),
        ]

        late = {m.activity_id: m for m in compute_metrics(activities, relationships)}
        early = {m.activity_id: m for m in compute_metrics(activities, relationships, free_float_basis="early")}

        self.assertEqual(late["A"].total_float_days, 7)
        self.assertEqual(late["B"].total_float_days, 7)
        self.assertEqual(late["A"].free_float_days, 7)
        self.assertEqual(early["A"].free_float_days, 0)
        self.assertEqual(early["B"].free_float_days, 7)
        self.assertEqual(early["C"].free_float_days, 0)

    def test_free_float_basis_start_and_finish_links(self):
        # C drives D, so the A-B chain carries all the slack
        cases = [("SS", 1, 8), ("FF", 1, 7)]
        for rel_type, lag, total_float in cases:
            with self.subTest(rel_type=rel_type):
                activities = [
                    Activity("A", "A", "2024-01-01", "2024-01-03"),
                    Activity("B", "B", "2024-01-03", "2024-01-04"),
                    Activity("C", "C", "2024-01-01", "2024-01-11"),
                    Activity("D", "D", "2024-01-11", "2024-01-12"),
                ]
                relationships = [
                    Relationship("A", "B", rel_type, lag),
                    Relationship("B", "D"),
                    Relationship("C", "D"),
                ]
                late = {m.activity_id: m for m in compute_metrics(activities, relationships)}
                early = {
                    m.activity_id: m
                    for m in compute_metrics(activities, relationships, free_float_basis="early")
                }

                self.assertEqual(late["A"].total_float_days, total_float)
                self.assertEqual(late["B"].total_float_days, total_float)
                self.assertEqual(late["A"].free_float_days, total_float)
                self.assertEqual(early["A"].free_float_days, 0)
                self.assertEqual(early["B"].free_float_days, total_float)
                self.assertEqual(early["D"].free_float_days, 0)

    def test_relationship_constraints_are_satisfied(self):
        activities, relationships = mixed_network()
        result = schedule_network(activities, relationships)
        metrics = result.metrics_by_id()
        self.assertTrue(result.converged)

        for rel in relationships:
            pred = metrics[rel.predecessor_id]
            succ = metrics[rel.successor_id]
            if rel.relation_type == "FS":
                self.assertGreaterEqual(succ.es, pred.ef + rel.lag - EPSILON)
            elif rel.relation_type == "SS":
                self.assertGreaterEqual(succ.es, pred.es + rel.lag - EPSILON)
            elif rel.relation_type == "FF":
                self.assertGreaterEqual(succ.ef, pred.ef + rel.lag - EPSILON)
            else:
                self.assertGreaterEqual(succ.ef, pred.es + rel.lag - EPSILON)

    def test_float_properties_on_acyclic_network(self):
        activities, relationships = mixed_network()
        result = schedule_network(activities, relationships)
        metrics = result.metrics_by_id()

        self.assertEqual(metrics[result.finish_activity_id].total_float_days, 0)
        for m in result.metrics:
            self.assertGreaterEqual(m.total_float_days, -EPSILON)
            self.assertGreaterEqual(m.free_float_days, 0)
            self.assertLessEqual(m.free_float_days, m.total_float_days + EPSILON)
            if m.float_path_number == 1:
                self.assertTrue(m.is_critical)

    def test_idempotent(self):
        activities, relationships = mixed_network()
        first = compute_metrics(activities, relationships)
        second = compute_metrics(activities, relationships)
        self.assertEqual(first, second)

    def test_inputs_are_not_mutated(self):
        activities = chain_activities()
        relationships = [Relationship("A1", "A2", None, None), Relationship("A2", "A3")]
        before_acts = [a.to_dict() for a in activities]

        result = schedule_network(activities, relationships)
        annotate_activities(activities, result, relationships)

        self.assertEqual([a.to_dict() for a in activities], before_acts)
        self.assertIsNone(relationships[0].relation_type)
        self.assertIsNone(activities[0].total_float_days)

    def test_empty_input(self):
        result = schedule_network([], [])
        self.assertEqual(result.metrics, [])
        self.assertEqual(compute_metrics([]), [])
        self.assertTrue(result.converged)
        self.assertIsNone(result.finish_activity_id)

    def test_dangling_relationships_are_ignored(self):
        relationships = chain_relationships() + [Relationship("A3", "GHOST", "FS", 0)]
        self.assertEqual(
            compute_metrics(chain_activities(), relationships),
            compute_metrics(chain_activities(), chain_relationships()),
        )

    def test_malformed_dates_are_rejected(self):
        activities = chain_activities() + [Activity("BAD", "Bad", "not-a-date", "2024-01-05")]
        result = schedule_network(activities, chain_relationships() + [Relationship("BAD", "A3")])

        self.assertEqual([(e.activity_id, e.field) for e in result.errors], [("BAD", "start")])
        self.assertNotIn("BAD", result.metrics_by_id())
        for m in result.metrics:
            for value in (m.es, m.ef, m.ls, m.lf, m.total_float_days, m.free_float_days):
                self.assertFalse(math.isnan(value))

        annotated = {a.id: a for a in annotate_activities(activities, result)}
        self.assertIsNone(annotated["BAD"].float_path_number)

    def test_duplicate_ids_are_rejected(self):
        activities = chain_activities() + [Activity("A1", "Again", "2024-01-01", "2024-01-02")]
        result = schedule_network(activities, chain_relationships())
        self.assertEqual([(e.activity_id, e.field) for e in result.errors], [("A1", "id")])
        self.assertEqual(len(result.metrics), 3)

    def test_annotation_keeps_duplicate_ids_apart(self):
        activities = [
            Activity("A", "first", "2024-01-01", "2024-01-05"),
            Activity("B", "b", "2024-01-06", "2024-01-08"),
            Activity("A", "dup", "2024-03-01", "2024-03-05"),
        ]
        relationships = [Relationship("A", "B")]
        result = schedule_network(activities, relationships)
        annotated = annotate_activities(activities, result, relationships)

        self.assertEqual(
            [(a.id, a.name, a.start) for a in annotated],
            [("A", "first", "2024-01-01"), ("B", "b", "2024-01-06"), ("A", "dup", "2024-03-01")],
        )
        self.assertEqual(annotated[0].total_float_days, 0)
        self.assertEqual(annotated[0].successors, ["B"])
        self.assertEqual(annotated[1].predecessors, ["A"])
        self.assertIsNone(annotated[2].total_float_days)
        self.assertIsNone(annotated[2].float_path_number)
        self.assertEqual(annotated[2].successors, [])

    def test_cycle_reports_non_convergence(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-03"),
            Activity("B", "B", "2024-01-03", "2024-01-05"),
        ]
        relationships = [Relationship("A", "B"), Relationship("B", "A")]
        result = schedule_network(activities, relationships)

        self.assertFalse(result.topological_order_complete)
        self.assertFalse(result.forward_converged)
        self.assertFalse(result.converged)
        self.assertEqual(result.forward_iterations, MAX_ITERATIONS)
        self.assertEqual(set(result.cycle), {"A", "B"})
        self.assertEqual(len(result.metrics), 2)
        self.assertTrue(any("did not converge" in line for line in result.calculation_log))

    def test_duration_days_overrides_dates(self):
        activities = [
            Activity("A", "A", "2024-01-01", "2024-01-03", duration_days=5),
            Activity("B", "B", "2024-01-02", "2024-01-04"),
        ]
        metrics = {m.activity_id: m for m in compute_metrics(activities, [Relationship("A", "B")])}
        self.assertEqual(metrics["A"].duration_days, 5)
        self.assertEqual(metrics["B"].es, 5)

    def test_invalid_options(self):
        with self.assertRaises(ValueError):
            FloatPathScheduler([], free_float_basis="sideways")
        with self.assertRaises(ValueError):
            FloatPathScheduler([], max_iterations=0)

    def test_summary_and_dataframe(self):
        activities = chain_activities() + [Activity("B1", "B1", "2024-01-05", "2024-01-12")]
        result = schedule_network(activities, chain_relationships())

        paths = summarize_float_paths(result.metrics)
        self.assertEqual(paths[0].number, 1)
        self.assertEqual(paths[0].activity_ids, ["A1", "A2", "A3"])
        self.assertTrue(paths[0].is_critical)
        self.assertFalse(paths[1].is_critical)

        df = result.to_dataframe()
        self.assertEqual(list(df["ID"]), ["A1", "A2", "A3", "B1"])
        self.assertEqual(list(df["Critical"]), ["Yes", "Yes", "Yes", "No"])


if __name__ == "__main__":
    unittest.main()
