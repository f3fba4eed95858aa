"""
Host name helpers used by tenant resolution and provisioning.

Examples:
    >>> normalize_host("Acme.CSR.example.com:8443")
    'acme.csr.example.com'
    >>> extract_subdomain("acme.csr.example.com", "csr.example.com")
    'acme'
    >>> compose_host("acme", "csr.example.com")
    'acme.csr.example.com'
"""

import re

# A single DNS label: lowercase alphanumerics and hyphens, no leading or
# trailing hyphen, at most 63 characters.
SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")

_LABEL_CHARS = re.compile(r"^[a-z0-9-]+$")


def normalize_host(host: str | None) -> str:
    """Lower-case a Host header value and strip port and trailing dot."""
    if not host:
        return ""
    host = host.strip().lower()
    if host.startswith("["):
        # IPv6 literal, e.g. "[::1]:8000"
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    host = host.split(":", 1)[0]
    return host.rstrip(".")


def is_valid_subdomain(label: str) -> bool:
    return bool(label) and SUBDOMAIN_PATTERN.match(label) is not None


def is_valid_domain(host: str) -> bool:
    """A fully qualified host name: at least two valid labels and at most 253 characters."""
    host = normalize_host(host)
    if not host or len(host) > 253:
        return False
    labels = host.split(".")
    return len(labels) >= 2 and all(is_valid_subdomain(label) for label in labels)


def extract_subdomain(host: str, central_domain: str) -> str | None:
    """
    Strip ``central_domain`` from ``host`` and return the remaining label.

    Returns None when the host is not directly under the central domain,
    when the remainder contains a dot, or when it has characters outside
    ``[a-z0-9-]``.
    """
    host = normalize_host(host)
    central_domain = normalize_host(central_domain)
    if not host or not central_domain or host == central_domain:
        return None
    suffix = "." + central_domain
    if not host.endswith(suffix):
        return None
    label = host[: -len(suffix)]
    if not label or "." in label or not _LABEL_CHARS.match(label):
        return None
    return label


def compose_host(subdomain: str, central_domain: str) -> str:
    return f"{subdomain}.{normalize_host(central_domain)}"
