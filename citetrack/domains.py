"""Domain normalization and parent-domain resolution."""

from __future__ import annotations

from urllib.parse import urlsplit

# Compound TLDs where the last two labels are the public suffix, not the domain.
COMPOUND_TLDS: frozenset[str] = frozenset(
    {
        "co.uk",
        "co.jp",
        "co.kr",
        "co.nz",
        "co.za",
        "co.in",
        "co.id",
        "com.au",
        "com.br",
        "com.cn",
        "com.mx",
        "com.sg",
        "com.tw",
        "com.hk",
        "org.uk",
        "net.au",
        "ac.uk",
        "gov.uk",
    }
)


def strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def extract_domain(url: str) -> str:
    """Return the lowercase hostname of ``url`` without a leading ``www.``.

    Strings that do not parse as an absolute URL are returned unchanged.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return url
    # Scheme-relative URLs and hosts with whitespace are not absolute URLs.
    if not parts.scheme or not host or any(ch.isspace() for ch in host):
        return url
    return strip_www(host.lower())


def normalize_domain(value: str) -> str:
    """Best-effort normalization of a user-supplied domain (tags, owned domains)."""
    cleaned = value.strip().lower()
    if "://" in cleaned:
        cleaned = extract_domain(cleaned)
    return strip_www(cleaned)


def normalize_domains(values: list[str]) -> list[str]:
    """Normalize a list of domains, keeping order and dropping blanks."""
    result: list[str] = []
    for value in values:
        domain = normalize_domain(value)
        if domain:
            result.append(domain)
    return result


def parent_domain(domain: str) -> str:
    """Strip one subdomain level without splitting a compound TLD.

    ``docs.example.co.uk`` -> ``example.co.uk``; ``blog.example.com`` -> ``example.com``.
    """
    parts = domain.split(".")
    if len(parts) <= 2:
        return domain

    last_two = ".".join(parts[-2:])
    if last_two in COMPOUND_TLDS and len(parts) > 3:
        return ".".join(parts[-3:])
    return last_two
