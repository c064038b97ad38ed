# caforge/common/utils.py
import datetime
import re

_NON_ALNUM_RUN = re.compile(r"[^A-Za-z0-9]+")
_IPV4_LITERAL = re.compile(r"([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})")


def now_utc() -> datetime.datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def derive_file_stem(common_name: str) -> str:
    """
    Turn a CommonName into a file stem: every run of non-alphanumeric
    characters becomes one hyphen, leading/trailing hyphens are dropped.
      "api.company.com" -> "api-company-com"
    """
    return _NON_ALNUM_RUN.sub("-", common_name).strip("-")


def match_ipv4_literal(value: str):
    """
    Return the four octets as ints if `value` is a dotted-quad of decimal
    numbers, else None. Octet range is not checked here.
    """
    m = _IPV4_LITERAL.fullmatch(value)
    if not m:
        return None
    return [int(g) for g in m.groups()]
