import tempfile
import unittest
from src.models.errors import QueryError, SchemaError
from src.services.introspector import SchemaIntrospector
from sqlite_fixtures import create_database, create_table, open_sqlite

class TestSchemaIntrospector(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = create_database(self.tmp.name, "local.db")
        create_table(self.path, "users", rows=12)
        create_table(self.path, "events", rows=3, primary_key=False)
        self.connection = await open_sqlite(self.path)
        self.introspector = SchemaIntrospector()

    async def asyncTearDown(self):
        self.connection.close()
        self.tmp.cleanup()

    async def test_introspect(self):
        descriptor = await self.introspector.introspect(self.connection, "users")
        self.assertEqual(descriptor.table_name, "users")
        self.assertEqual(descriptor.column_names, ["id", "name", "amount"])
        self.assertEqual(descriptor.primary_key, ["id"])
        name = descriptor.columns[1]
        self.assertEqual(name.declared_type, "VARCHAR(64)")
        self.assertFalse(name.nullable)
        self.assertEqual(name.ordinal, 2)

    async def test_introspect_without_key(self):
        descriptor = await self.introspector.introspect(self.connection, "events")
        self.assertEqual(descriptor.primary_key, [])

    async def test_missing_table(self):
        with self.assertRaises(SchemaError):
            await self.introspector.introspect(self.connection, "ghost")

    async def test_count(self):
        self.assertEqual(await self.introspector.count(self.connection, "users"), 12)
        self.assertEqual(await self.introspector.count(self.connection, "events"), 3)

    async def test_count_missing_table(self):
        with self.assertRaises(QueryError) as ctx:
            await self.introspector.count(self.connection, "ghost")
        self.assertIn("ghost", str(ctx.exception))

    async def test_tables(self):
        self.assertEqual(await self.introspector.tables(self.connection), ["events", "users"])

if __name__ == "__main__":
    unittest.main()
