import json
import os
import tempfile
import unittest
from src.config.loader import (
    load_default_config, load_local_config, load_request, load_settings, parse_request,
)
from src.models.config import PASSWORD_MASK

REMOTE = {"db_type": "postgres", "host": "db", "port": 5432, "user": "u", "password": "pw", "db_name": "app"}

class TestLoadSettings(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings({})
        self.assertEqual(settings.batch_size, 1000)
        self.assertEqual(settings.max_concurrent_tasks, 4)
        self.assertEqual(settings.log_level, "INFO")

    def test_from_env(self):
        settings = load_settings({
            "SYNC_BATCH_SIZE": "250", "SYNC_MAX_CONCURRENT_TASKS": "2",
            "SYNC_CONNECT_TIMEOUT": "3", "LOG_LEVEL": "debug",
        })
        self.assertEqual((settings.batch_size, settings.max_concurrent_tasks, settings.connect_timeout),
                         (250, 2, 3))
        self.assertEqual(settings.log_level, "DEBUG")

    def test_invalid(self):
        with self.assertRaises(ValueError):
            load_settings({"SYNC_BATCH_SIZE": "many"})
        with self.assertRaises(ValueError):
            load_settings({"SYNC_BATCH_SIZE": "0"})

class TestDefaultConfig(unittest.TestCase):
    def test_default_port(self):
        config = load_default_config({"SYNC_DB_TYPE": "postgres", "SYNC_DB_HOST": "cloud"})
        self.assertEqual(config["port"], 5432)
        self.assertEqual(config["host"], "cloud")
        self.assertEqual(config["password"], "")

    def test_masks_password(self):
        config = load_default_config({"SYNC_DB_PORT": "3306", "SYNC_DB_PASSWORD": "secret"})
        self.assertEqual(config["port"], 3306)
        self.assertEqual(config["password"], PASSWORD_MASK)

    def test_local_defaults_to_sqlite(self):
        config = load_local_config({})
        self.assertEqual((config.db_type, config.db_name), ("sqlite", "data.db"))

class TestLoadRequest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, content):
        path = os.path.join(self.tmp.name, "sync.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_load(self):
        local = {"db_type": "sqlite", "db_name": "local.db"}
        path = self.write(json.dumps({"local": local, "remote": REMOTE, "tables": ["users", "orders"]}))
        request = load_request(path)
        self.assertEqual(request.local.db_type, "sqlite")
        self.assertEqual(request.remote.password, "pw")
        self.assertEqual(request.tables, ["users", "orders"])

    def test_local_from_env(self):
        request = parse_request({"remote": REMOTE}, {"LOCAL_DB_TYPE": "mysql", "LOCAL_DB_NAME": "orange"})
        self.assertEqual((request.local.db_type, request.local.db_name), ("mysql", "orange"))
        self.assertIsNone(request.tables)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_request(os.path.join(self.tmp.name, "absent.json"))

    def test_bad_json(self):
        with self.assertRaises(ValueError):
            load_request(self.write("{not json"))

    def test_missing_remote(self):
        with self.assertRaises(ValueError):
            parse_request({"tables": ["users"]})

    def test_bad_tables(self):
        with self.assertRaises(ValueError):
            parse_request({"remote": REMOTE, "tables": "users"})

if __name__ == "__main__":
    unittest.main()
