"""Tests for Caddy-compatible address parsing"""

import unittest

from devalias_cli.address import normalize_upstream, parse_address, validate_hostname, validate_ip
from devalias_cli.errors import ConfigError


class ParseAddressTests(unittest.TestCase):
    def test_host_and_port(self):
        addr = parse_address("127.0.0.1:4000")
        self.assertEqual(addr.scheme, "")
        self.assertEqual(addr.host, "127.0.0.1")
        self.assertEqual(addr.port, "4000")
        self.assertEqual(addr.port_number(), 4000)

    def test_scheme_without_port(self):
        addr = parse_address("https://secure.local")
        self.assertEqual(addr.scheme, "https")
        self.assertEqual(addr.host, "secure.local")
        self.assertEqual(addr.port, "")
        self.assertEqual(addr.port_number(443), 443)

    def test_path_is_split_off(self):
        addr = parse_address("http://api.local:8080/v1/users")
        self.assertEqual(addr.host, "api.local")
        self.assertEqual(addr.port, "8080")
        self.assertEqual(addr.path, "/v1/users")
        self.assertEqual(str(addr), "http://api.local:8080/v1/users")

    def test_port_only(self):
        addr = parse_address(":4000")
        self.assertEqual(addr.host, "")
        self.assertEqual(addr.port, "4000")

    def test_ipv6(self):
        addr = parse_address("[::1]:9000")
        self.assertEqual(addr.host, "::1")
        self.assertEqual(addr.join_host_port(), "[::1]:9000")

        bare = parse_address("::1")
        self.assertEqual(bare.host, "::1")
        self.assertEqual(bare.port, "")

    def test_whitespace_is_trimmed(self):
        self.assertEqual(parse_address("  api.local:80 ").host, "api.local")

    def test_invalid_port(self):
        with self.assertRaises(ConfigError):
            parse_address("api.local:abc")
        with self.assertRaises(ConfigError):
            parse_address("api.local:70000")

    def test_disallowed_scheme(self):
        with self.assertRaises(ConfigError):
            parse_address("ftp://files.local:21")


class NormalizeUpstreamTests(unittest.TestCase):
    def test_shorthand_ports(self):
        self.assertEqual(normalize_upstream(4000), "127.0.0.1:4000")
        self.assertEqual(normalize_upstream("4000"), "127.0.0.1:4000")
        self.assertEqual(normalize_upstream(":4000"), "127.0.0.1:4000")

    def test_full_targets_unchanged(self):
        self.assertEqual(normalize_upstream("example.com:443"), "example.com:443")
        self.assertEqual(normalize_upstream("https://example.com"), "https://example.com")

    def test_bool_rejected(self):
        with self.assertRaises(ConfigError):
            normalize_upstream(True)


class HostnameValidationTests(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(validate_hostname("api.local"), (True, None))
        self.assertEqual(validate_hostname("my-app.test"), (True, None))

    def test_invalid(self):
        self.assertFalse(validate_hostname("")[0])
        self.assertFalse(validate_hostname("bad host")[0])
        self.assertFalse(validate_hostname("api.local\n127.0.0.1 evil")[0])
        self.assertFalse(validate_hostname("-bad.local")[0])
        self.assertFalse(validate_hostname("a..local")[0])
        self.assertFalse(validate_hostname("a" * 64 + ".local")[0])

    def test_validate_ip(self):
        self.assertTrue(validate_ip("127.0.0.1"))
        self.assertTrue(validate_ip("::1"))
        self.assertFalse(validate_ip("256.1.1.1"))
        self.assertFalse(validate_ip("localhost"))


if __name__ == "__main__":
    unittest.main()
