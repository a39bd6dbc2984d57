import unittest

from audit_engine.exceptions import InvalidOverrideError
from audit_engine.ruleset.models import Dimension, RulesetContext, Scope
from audit_engine.ruleset.store import InMemoryOverrideStore
from tests import FIXED_TIME, fixed_clock, make_draft


class TestInMemoryOverrideStore(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryOverrideStore(clock=fixed_clock)
        self.changes = []
        self.store.subscribe(self.changes.append)
        self.context = RulesetContext(vertical="education", app_id="app-1")

    def test_create_assigns_ids_and_notifies(self):
        record = self.store.create_override(
            make_draft(Scope.VERTICAL, Dimension.TOKEN_RELEVANCE, "spanish", 3, scope_key="education"))

        self.assertEqual(record.id, 1)
        self.assertEqual(record.created_at, FIXED_TIME)
        self.assertEqual(len(self.changes), 1)
        self.assertEqual(self.changes[0].action, "create")
        self.assertEqual(self.changes[0].scope_key, "education")

    def test_list_active_filters_by_context(self):
        self.store.create_override(make_draft(Scope.BASE, Dimension.STOPWORD, "app", True))
        self.store.create_override(
            make_draft(Scope.VERTICAL, Dimension.STOPWORD, "learn", True, scope_key="finance"))
        self.store.create_override(
            make_draft(Scope.APP, Dimension.STOPWORD, "daily", True, scope_key="app-1"))

        keys = [o.key for o in self.store.list_active_overrides(self.context)]
        self.assertEqual(keys, ["app", "daily"])

    def test_update_validates_and_logs(self):
        record = self.store.create_override(
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 1, scope_key="app-1"))

        updated = self.store.update_override(record.id, author="bob", value=2)
        self.assertEqual(updated.value, 2)
        self.assertEqual(updated.author, "bob")

        with self.assertRaises(InvalidOverrideError):
            self.store.update_override(record.id, value=9)
        with self.assertRaises(InvalidOverrideError):
            self.store.update_override(record.id, key="other")

        log = self.store.audit_log(record.id)
        self.assertEqual([e["action"] for e in log], ["create", "update"])
        self.assertEqual((log[1]["old_value"], log[1]["new_value"]), (1, 2))

    def test_deactivate_and_delete(self):
        record = self.store.create_override(
            make_draft(Scope.APP, Dimension.TOKEN_RELEVANCE, "spanish", 1, scope_key="app-1"))

        self.store.deactivate_override(record.id)
        self.assertEqual(self.store.list_active_overrides(self.context), [])
        self.assertFalse(self.store.get_override(record.id).active)

        self.store.delete_override(record.id)
        self.assertIsNone(self.store.get_override(record.id))
        self.assertEqual([c.action for c in self.changes], ["create", "deactivate", "delete"])

        with self.assertRaises(InvalidOverrideError):
            self.store.deactivate_override(record.id)

    def test_failing_listener_does_not_break_writes(self):
        def broken(change):
            raise RuntimeError("listener down")

        self.store.subscribe(broken)
        record = self.store.create_override(make_draft(Scope.BASE, Dimension.STOPWORD, "app", True))
        self.assertIsNotNone(self.store.get_override(record.id))

    def test_versions_are_numbered_per_context(self):
        other = RulesetContext(vertical="finance")
        self.store.record_version(self.context, "h1", [])
        self.store.record_version(other, "h2", [])
        v2 = self.store.record_version(self.context, "h3", [], notes="second")

        self.assertEqual(v2.version, 2)
        self.assertEqual(self.store.get_version(self.context, 2).version_hash, "h3")
        self.assertIsNone(self.store.get_version(other, 2))
        self.assertEqual(len(self.store.list_versions(other)), 1)


if __name__ == '__main__':
    unittest.main()
