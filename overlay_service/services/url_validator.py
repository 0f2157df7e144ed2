from collections.abc import Iterable
from urllib.parse import SplitResult, urlsplit

from overlay_service.core.exceptions import HostNotAllowedError, InvalidProtocolError

ALLOWED_SCHEMES = ("http", "https")


def build_allow_list(hosts: Iterable[str]) -> frozenset[str]:
    return frozenset(host for host in hosts if host)


def _raw_hostname(netloc: str) -> str:
    # urlsplit().hostname lowercases, the allow-list compares hosts as received
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        return host[1:].partition("]")[0]
    return host.partition(":")[0]


def validate_image_url(url: str, allowed_hosts: frozenset[str]) -> SplitResult:
    """Accept ``url`` only if it is http(s) and its host is allow-listed.

    Matching is exact string equality: no wildcards and no subdomains.
    """
    try:
        parsed = urlsplit(url)
        parsed.port  # non-numeric or out-of-range ports raise ValueError
    except ValueError as e:
        raise InvalidProtocolError() from e

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise InvalidProtocolError()

    hostname = _raw_hostname(parsed.netloc)
    if not hostname:
        raise InvalidProtocolError()
    if hostname not in allowed_hosts:
        raise HostNotAllowedError(hostname)
    return parsed
