"""Domain name helpers."""

import re

CLOUDFRONT_LABEL_RE = re.compile(r"^d[a-z0-9]{13}$")


def extract_root_domain(domain: str) -> str:
    """Last two labels of ``domain`` (``api.staging.example.com`` -> ``example.com``)."""
    parts = domain.rstrip(".").split(".")
    if len(parts) < 2:
        return domain.rstrip(".")
    return ".".join(parts[-2:])


def is_cloudfront_domain_label(label: str) -> bool:
    """Whether ``label`` looks like the ``dxxxx`` part of a ``*.cloudfront.net`` domain."""
    return bool(CLOUDFRONT_LABEL_RE.match(label.lower()))
