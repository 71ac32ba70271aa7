import tempfile
import unittest
from src.models.results import COUNT_UNAVAILABLE, TableCompareResult
from src.services.comparator import TableComparator
from sqlite_fixtures import (
    TrackingSQLiteConnector, connector_config, create_database, create_table, make_registry, open_sqlite,
)

class TestTableComparator(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.local_path = create_database(self.tmp.name, "local.db")
        self.remote_path = create_database(self.tmp.name, "remote.db")
        create_table(self.local_path, "users", rows=100)
        create_table(self.local_path, "orders", rows=50)
        create_table(self.remote_path, "users", rows=98)
        create_table(self.remote_path, "orders", rows=50)
        self.local = await open_sqlite(self.local_path)
        self.remote = await open_sqlite(self.remote_path)

    async def asyncTearDown(self):
        self.local.close()
        self.remote.close()
        self.tmp.cleanup()

    async def test_compare_counts(self):
        results = await TableComparator().compare(self.local, self.remote, ["users", "orders"])
        self.assertEqual(results, [
            TableCompareResult("users", 100, 98),
            TableCompareResult("orders", 50, 50),
        ])
        self.assertTrue(results[0].diverged)
        self.assertFalse(results[1].diverged)

    async def test_failed_count_uses_sentinel(self):
        create_table(self.local_path, "local_only", rows=7)
        results = await TableComparator().compare(self.local, self.remote, ["users", "local_only", "orders"])
        self.assertEqual([result.table_name for result in results], ["users", "local_only", "orders"])
        broken = results[1]
        self.assertEqual(broken.local_count, 7)
        self.assertEqual(broken.remote_count, COUNT_UNAVAILABLE)
        self.assertIn("remote", broken.error_message)
        self.assertIn("local_only", broken.error_message)
        self.assertEqual(results[0].error_message, "")
        self.assertEqual(results[2], TableCompareResult("orders", 50, 50))

    async def test_order_preserved_with_bounded_workers(self):
        names = []
        for index in range(8):
            name = f"t{index}"
            create_table(self.local_path, name, rows=index)
            create_table(self.remote_path, name, rows=index * 2)
            names.append(name)
        names.reverse()
        results = await TableComparator(max_workers=2).compare(self.local, self.remote, names)
        self.assertEqual([result.table_name for result in results], names)
        for result in results:
            index = int(result.table_name[1:])
            self.assertEqual((result.local_count, result.remote_count), (index, index * 2))

    async def test_in_flight_tables_never_exceed_max_workers(self):
        names = []
        for index in range(8):
            name = f"t{index}"
            create_table(self.local_path, name, rows=index)
            create_table(self.remote_path, name, rows=index)
            names.append(name)
        tracking = TrackingSQLiteConnector(count_delay=0.05)
        local = await open_sqlite(self.local_path, make_registry(tracking), connector_config(self.local_path, "tracking"))
        try:
            results = await TableComparator(max_workers=3).compare(local, self.remote, names)
        finally:
            local.close()

        self.assertEqual(len(results), 8)
        self.assertLessEqual(tracking.peak, 3)
        self.assertEqual(tracking.peak, 3)

    async def test_empty_table_list(self):
        self.assertEqual(await TableComparator().compare(self.local, self.remote, []), [])

if __name__ == "__main__":
    unittest.main()
