import unittest

from fastapi.testclient import TestClient

from portfwd.api import create_app
from portfwd.engine import ForwardingEngine
from portfwd.rules import Rule


class TestControlApi(unittest.TestCase):
    def setUp(self):
        self.engine = ForwardingEngine([Rule(8080, "127.0.0.1", 9090), Rule(2222, "10.0.0.5", 22)])
        for rule in self.engine.rules:
            self.engine.state.register_rule(rule)
        self.client = TestClient(create_app(self.engine))

    def test_root_reports_status(self):
        body = self.client.get("/").json()
        self.assertEqual(body["service"], "portfwd")
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["rule_count"], 2)
        self.assertEqual(body["active_connections"], 0)

    def test_rules_lists_counters(self):
        rules = self.client.get("/rules").json()["rules"]
        self.assertEqual([r["local_port"] for r in rules], [2222, 8080])
        self.assertEqual(rules[1]["remote"], "127.0.0.1:9090")
        self.assertEqual(rules[1]["accepted"], 0)

    def test_connections_reflect_state(self):
        self.engine.state.open_connection("abc", 8080, "127.0.0.1:5000")
        body = self.client.get("/connections").json()
        self.assertEqual(body["count"], 1)
        self.assertEqual(body["connections"][0]["client"], "127.0.0.1:5000")

    def test_system_metrics(self):
        body = self.client.get("/system/metrics").json()
        for key in ("pid", "threads", "rss_mb", "cpu_percent", "memory_percent"):
            self.assertIn(key, body)

    def test_shutdown_fires_once(self):
        first = self.client.post("/shutdown", json={"reason": "maintenance"}).json()
        self.assertTrue(first["fired"])
        self.assertEqual(first["reason"], "maintenance")
        self.assertTrue(self.engine.shutdown.is_set())
        second = self.client.post("/shutdown").json()
        self.assertFalse(second["fired"])
        self.assertEqual(second["reason"], "maintenance")
        self.assertEqual(self.client.get("/").json()["status"], "stopping")


if __name__ == "__main__":
    unittest.main()
