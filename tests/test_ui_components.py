import unittest

import matplotlib

matplotlib.use("Agg")

import pandas as pd

from floatpath.engine import annotate_activities, schedule_network
from floatpath.models import Activity, ActivityMetrics, Relationship, ScheduleResult
from floatpath.ui_components import (
    activities_from_frame,
    activities_to_frame,
    analyze_relationship_conflicts,
    build_report_html,
    compute_network_health,
)
from floatpath.ui_styles import THEMES, get_active_theme, get_theme_css, path_color


def chain():
    activities = [
        Activity("A1", "Activity 1", "2024-01-01", "2024-01-10"),
        Activity("A2", "Activity 2", "2024-01-15", "2024-01-25"),
        Activity("A3", "Activity 3", "2024-01-30", "2024-02-05"),
    ]
    relationships = [Relationship("A1", "A2", "FS", 0), Relationship("A2", "A3", "FS", 0)]
    return activities, relationships


class TestUIComponents(unittest.TestCase):
    def test_frame_round_trip_drops_blank_ids(self):
        activities, _ = chain()
        df = activities_to_frame(activities)
        self.assertEqual(list(df.columns), ["ID", "Name", "Start", "Finish", "Duration"])

        df.loc[len(df)] = [None, "orphan", "2024-01-01", "2024-01-02", None]
        df.loc[0, "Duration"] = 4
        restored = activities_from_frame(df)

        self.assertEqual([a.id for a in restored], ["A1", "A2", "A3"])
        self.assertEqual(restored[0].duration_days, 4.0)
        self.assertIsNone(restored[1].duration_days)

    def test_no_conflicts_on_computed_schedule(self):
        activities, relationships = chain()
        result = schedule_network(activities, relationships)
        self.assertTrue(analyze_relationship_conflicts(result, relationships).empty)

        health = compute_network_health(result, relationships)
        self.assertEqual(health["score"], 100)
        self.assertEqual(health["status"], "Healthy")
        self.assertEqual(health["total_relations"], 2)

    def test_conflict_detection(self):
        result = ScheduleResult(metrics=[
            ActivityMetrics("A", 5, 0, 0, 1, es=0, ef=5, ls=0, lf=5),
            ActivityMetrics("B", 5, 0, 0, 1, es=3, ef=8, ls=3, lf=8),
        ])
        relationships = [Relationship("A", "B", "FS", 0), Relationship("A", "B", "SS", 1)]

        conflicts = analyze_relationship_conflicts(result, relationships)
        self.assertEqual(len(conflicts), 1)
        row = conflicts.iloc[0]
        self.assertEqual((row["Activity"], row["Predecessor"], row["Type"]), ("B", "A", "FS"))
        self.assertEqual(row["Violation"], 2)

        health = compute_network_health(result, relationships)
        self.assertEqual(health["conflicts"], 1)
        self.assertEqual(health["score"], 50)
        self.assertEqual(health["status"], "At Risk")

        result.forward_converged = False
        self.assertEqual(compute_network_health(result, relationships)["status"], "Critical")

    def test_report_html(self):
        activities, relationships = chain()
        result = schedule_network(activities, relationships)
        theme = get_active_theme("Warm Clay")

        report = build_report_html(
            "<Plant>", annotate_activities(activities, result), relationships, result, theme
        )
        self.assertIn("<!DOCTYPE html>", report)
        self.assertIn("&lt;Plant&gt;", report)
        self.assertIn("A1 &rarr; A2 &rarr; A3", report)
        self.assertIn("data:image/png;base64,", report)
        self.assertIn("<li>None</li>", report)

    def test_themes(self):
        theme = get_active_theme("Nordic Blue")
        self.assertEqual(path_color(theme, 1), theme["critical"])
        self.assertNotEqual(path_color(theme, 2), theme["critical"])
        self.assertEqual(path_color(theme, 0), theme["noncritical"])
        self.assertEqual(path_color(theme, None), theme["noncritical"])
        self.assertIs(get_active_theme("missing"), THEMES["Warm Clay"])
        css = get_theme_css(theme)
        self.assertIn(theme["accent"], css)
        self.assertNotIn("__FP_", css)


if __name__ == "__main__":
    unittest.main()
