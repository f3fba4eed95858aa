"""
Tests for host name helpers
"""

import pytest

from orgtenancy.utils.hosts import compose_host, extract_subdomain, is_valid_domain, is_valid_subdomain, normalize_host


class TestNormalizeHost:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("acme.csr.example.com", "acme.csr.example.com"),
            ("Acme.CSR.Example.com", "acme.csr.example.com"),
            ("acme.csr.example.com:8443", "acme.csr.example.com"),
            ("acme.csr.example.com.", "acme.csr.example.com"),
            ("  localhost:8000 ", "localhost"),
            ("[::1]:8000", "[::1]"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_host(raw) == expected


class TestSubdomainLabels:
    @pytest.mark.parametrize("label", ["acme", "a", "green-earth", "org42", "9lives", "a" * 63])
    def test_valid_labels(self, label):
        assert is_valid_subdomain(label)

    @pytest.mark.parametrize("label", ["", "-acme", "acme-", "Acme", "ac_me", "a.b", "a" * 64, "café"])
    def test_invalid_labels(self, label):
        assert not is_valid_subdomain(label)


class TestExtractSubdomain:
    def test_round_trip(self):
        host = compose_host("acme", "csr.example.com")
        assert host == "acme.csr.example.com"
        assert extract_subdomain(host, "csr.example.com") == "acme"

    def test_port_and_case_are_ignored(self):
        assert extract_subdomain("ACME.csr.example.com:443", "CSR.example.com") == "acme"

    def test_central_domain_has_no_subdomain(self):
        assert extract_subdomain("csr.example.com", "csr.example.com") is None

    def test_nested_labels_are_rejected(self):
        assert extract_subdomain("a.b.csr.example.com", "csr.example.com") is None

    def test_other_domain_is_rejected(self):
        assert extract_subdomain("acme.example.org", "csr.example.com") is None

    def test_suffix_must_be_on_label_boundary(self):
        assert extract_subdomain("evilcsr.example.com", "csr.example.com") is None

    def test_invalid_characters_are_rejected(self):
        assert extract_subdomain("ac_me.csr.example.com", "csr.example.com") is None

    def test_empty_inputs(self):
        assert extract_subdomain("", "csr.example.com") is None
        assert extract_subdomain("acme.csr.example.com", "") is None


class TestDomainNames:
    @pytest.mark.parametrize("host", ["donate.acme.org", "Give.Acme.ORG", "a.b.c.example.com", "acme.org:443"])
    def test_valid_domains(self, host):
        assert is_valid_domain(host)

    @pytest.mark.parametrize("host", ["", "localhost", "bad_host.org", "-acme.org", "acme..org", "a" * 64 + ".org"])
    def test_invalid_domains(self, host):
        assert not is_valid_domain(host)
