import unittest

from propertyops_db.migrations import (
    ApplyFailure,
    ExecutionReport,
    MigrationError,
    MissingPrerequisite,
    Outcome,
)


class TestExecutionReport(unittest.TestCase):

    def setUp(self):
        self.report = ExecutionReport()

    def test_records_in_order(self):
        """Results come back in the order they were recorded."""
        self.report.record("create_users", Outcome.APPLIED, "table users created")
        self.report.record("create_units", Outcome.SKIPPED, "already present")
        self.report.record("add_units_ical_url", Outcome.FAILED, "target table 'units' does not exist",
                           MissingPrerequisite("target table 'units' does not exist"))

        self.assertEqual([r.step_name for r in self.report],
                         ["create_users", "create_units", "add_units_ical_url"])
        self.assertEqual(len(self.report), 3)
        self.assertEqual(self.report.outcome_of("create_units"), Outcome.SKIPPED)
        self.assertIsNone(self.report.outcome_of("create_projects"))
        self.assertEqual(self.report.results[2].error_kind, "MissingPrerequisite")

    def test_summary_counts_every_outcome(self):
        self.assertEqual(self.report.summary(), {"Applied": 0, "Skipped": 0, "Failed": 0})
        self.assertTrue(self.report.succeeded)

        self.report.record("a", Outcome.APPLIED, "table a created")
        self.report.record("b", Outcome.APPLIED, "table b created")
        self.report.record("c", Outcome.FAILED, "boom", ApplyFailure("boom"))

        self.assertEqual(self.report.summary(), {"Applied": 2, "Skipped": 0, "Failed": 1})
        self.assertEqual(self.report.failed_steps(), ["c"])
        self.assertFalse(self.report.succeeded)

    def test_closed_report_rejects_records(self):
        self.report.record("a", Outcome.APPLIED, "table a created")
        self.report.close()

        self.assertTrue(self.report.closed)
        with self.assertRaises(MigrationError):
            self.report.record("b", Outcome.APPLIED, "table b created")
        self.assertEqual(len(self.report), 1)

    def test_format_line(self):
        applied = self.report.record("create_users", Outcome.APPLIED, "table users created")
        failed = self.report.record("add_units_ical_url", Outcome.FAILED, "no units",
                                    MissingPrerequisite("no units"))

        self.assertEqual(applied.format_line(), "✅ Applied create_users: table users created")
        self.assertEqual(failed.format_line(), "❌ Failed  add_units_ical_url: no units [MissingPrerequisite]")


if __name__ == '__main__':
    unittest.main()
