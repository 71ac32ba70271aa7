import unittest
from src.connectors.mysql import MySQLConnector
from src.connectors.postgresql import PostgreSQLConnector
from src.connectors.registry import DriverRegistry, registry
from src.connectors.sqlite import SQLiteConnector
from src.models.errors import UnsupportedEngine

class TestDriverRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = DriverRegistry([MySQLConnector(), PostgreSQLConnector(), SQLiteConnector()])

    def test_resolve_aliases(self):
        self.assertIsInstance(self.registry.resolve("postgres"), PostgreSQLConnector)
        self.assertIsInstance(self.registry.resolve("PostgreSQL"), PostgreSQLConnector)
        self.assertIsInstance(self.registry.resolve(" pg "), PostgreSQLConnector)
        self.assertIsInstance(self.registry.resolve("mariadb"), MySQLConnector)
        self.assertIsInstance(self.registry.resolve("sqlite3"), SQLiteConnector)

    def test_unknown_engine(self):
        with self.assertRaises(UnsupportedEngine) as ctx:
            self.registry.resolve("mongo")
        self.assertIn("mongo", str(ctx.exception))
        self.assertEqual(ctx.exception.kind, "UnsupportedEngine")

    def test_missing_driver(self):
        partial = DriverRegistry([SQLiteConnector()], missing={"sqlserver": "pyodbc"})
        with self.assertRaises(UnsupportedEngine) as ctx:
            partial.resolve("SQLServer")
        self.assertIn("pyodbc", str(ctx.exception))

    def test_supported_types(self):
        self.assertEqual(self.registry.supported_types(), ["mysql", "postgres", "sqlite"])

    def test_read_only(self):
        with self.assertRaises(TypeError):
            self.registry._connectors["mongo"] = SQLiteConnector()

    def test_process_registry_has_sqlite(self):
        self.assertIsInstance(registry.resolve("sqlite"), SQLiteConnector)

if __name__ == "__main__":
    unittest.main()
