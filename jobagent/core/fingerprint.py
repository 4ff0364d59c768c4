import re

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
SEPARATOR = "__"


def slugify(value: str) -> str:
    return _NON_ALNUM_RUN.sub("-", value.lower()).strip("-")


def fingerprint(company: str, title: str) -> str:
    """Stable dedup key for a posting: ``<company-slug>__<title-slug>``."""
    return f"{slugify(company or '')}{SEPARATOR}{slugify(title or '')}"
