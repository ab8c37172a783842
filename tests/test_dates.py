import unittest

import pandas as pd

from floatpath.dates import day_offset, days_between, parse_date, project_baseline


class TestDates(unittest.TestCase):
    def test_parse_date(self):
        self.assertEqual(parse_date("2024-01-05"), pd.Timestamp("2024-01-05"))
        self.assertEqual(parse_date("2024-01-05T12:00:00"), pd.Timestamp("2024-01-05 12:00"))
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date("not-a-date"))

    def test_timezone_is_normalized_to_utc(self):
        self.assertEqual(parse_date("2024-01-05T02:00:00+02:00"), pd.Timestamp("2024-01-05 00:00"))

    def test_day_arithmetic(self):
        start = pd.Timestamp("2024-01-01")
        self.assertEqual(days_between(start, pd.Timestamp("2024-01-02 12:00")), 1.5)
        self.assertEqual(days_between(start, pd.Timestamp("2023-12-30")), 0)
        self.assertEqual(day_offset(pd.Timestamp("2023-12-31"), start), -1)
        self.assertEqual(project_baseline([pd.Timestamp("2024-02-01"), start, None]), start)
        self.assertIsNone(project_baseline([]))


if __name__ == "__main__":
    unittest.main()
