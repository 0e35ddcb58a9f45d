import dataclasses
import unittest

from portfwd.rules import Rule


class TestRule(unittest.TestCase):
    def test_remote_address(self):
        rule = Rule(local_port=8080, remote_host="127.0.0.1", remote_port=9090)
        self.assertEqual(rule.remote_address, "127.0.0.1:9090")
        self.assertEqual(rule.protocol, "tcp")
        self.assertEqual(rule.describe(), ":8080 -> 127.0.0.1:9090")

    def test_immutable(self):
        rule = Rule(8080, "example.com", 80)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            rule.local_port = 9000

    def test_rejects_out_of_range_ports(self):
        for local, remote in [(0, 80), (65536, 80), (80, 0), (80, 70000)]:
            with self.assertRaises(ValueError):
                Rule(local, "example.com", remote)

    def test_rejects_non_integer_port(self):
        with self.assertRaises(ValueError):
            Rule("8080", "example.com", 80)
        with self.assertRaises(ValueError):
            Rule(True, "example.com", 80)

    def test_rejects_empty_host_and_unknown_protocol(self):
        with self.assertRaises(ValueError):
            Rule(8080, "", 80)
        with self.assertRaises(ValueError):
            Rule(8080, "example.com", 80, protocol="udp")

    def test_equal_rules_compare_equal(self):
        self.assertEqual(Rule(1, "h", 2), Rule(1, "h", 2))
        self.assertEqual(len({Rule(1, "h", 2), Rule(1, "h", 2)}), 1)


if __name__ == "__main__":
    unittest.main()
