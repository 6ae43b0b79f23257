"""
Target URL validation for render requests.

Runs before any browser work: the service must never be usable as an open proxy
or as a way to reach hosts on the private network behind it. Validation is a pure
function of the requested URL, the inbound request's host and static policy; it
performs no DNS lookups.
"""
import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING
from urllib.parse import urlsplit

from prerender_service.core.exceptions import ConfigurationError, InvalidInputError, SecurityRejectedError

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager

ALLOWED_SCHEMES = ("http", "https")

PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)

REMOTE_HOSTS_NEVER = "never"
REMOTE_HOSTS_ALWAYS = "always"
REMOTE_HOSTS_LOCAL_ONLY = "local-only"
REMOTE_HOST_POLICIES = (REMOTE_HOSTS_NEVER, REMOTE_HOSTS_ALWAYS, REMOTE_HOSTS_LOCAL_ONLY)


class RejectionReason(str, Enum):
    INVALID_URL = "InvalidURL"
    CROSS_ORIGIN_DENIED = "CrossOriginDenied"
    PRIVATE_NETWORK_DENIED = "PrivateNetworkDenied"


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a target URL.

    Attributes:
        approved (bool): True when every check passed.
        reason (Optional[RejectionReason]): The first failed check, if any.
        detail (str): Human-readable explanation for logs.
        malformed (bool): True when the URL could not be parsed as an absolute URL at all,
                          as opposed to a well-formed URL that policy refuses.
    """
    approved: bool
    reason: Optional[RejectionReason] = None
    detail: str = ""
    malformed: bool = False

    def raise_for_rejection(self) -> None:
        """
        Raises the error matching this result; does nothing for an approved result.

        Raises:
            InvalidInputError: For malformed URLs (answered with 400).
            SecurityRejectedError: For policy rejections (answered with 403).
        """
        if self.approved:
            return
        if self.malformed:
            raise InvalidInputError(self.detail)
        raise SecurityRejectedError(self.reason, self.detail)


APPROVED = ValidationResult(approved=True)


@dataclass(frozen=True)
class SecurityPolicy:
    """
    Static policy consulted by `validate_target_url`.

    Attributes:
        allow_remote_hosts (str): 'never', 'always' or 'local-only'.
        allow_private_networks (bool): Exempts loopback/private targets (local development).
        local_mode (bool): True when running with the local/development deployment profile.
    """
    allow_remote_hosts: str = REMOTE_HOSTS_NEVER
    allow_private_networks: bool = False
    local_mode: bool = False

    def __post_init__(self):
        if self.allow_remote_hosts not in REMOTE_HOST_POLICIES:
            raise ConfigurationError(
                f"Unsupported allow_remote_hosts policy: {self.allow_remote_hosts!r}. "
                f"Must be one of {', '.join(REMOTE_HOST_POLICIES)}."
            )

    @property
    def remote_hosts_allowed(self) -> bool:
        if self.allow_remote_hosts == REMOTE_HOSTS_ALWAYS:
            return True
        if self.allow_remote_hosts == REMOTE_HOSTS_LOCAL_ONLY:
            return self.local_mode
        return False

    @classmethod
    def from_config(cls, config: Optional['ConfigurationManager']) -> 'SecurityPolicy':
        if config is None:
            return cls()
        return cls(
            allow_remote_hosts=str(config.get("security.allow_remote_hosts", REMOTE_HOSTS_NEVER)).lower(),
            allow_private_networks=bool(config.get("security.allow_private_networks", False)),
            local_mode=not config.is_production,
        )


def _strip_port(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("["):
        # [::1]:8080
        return host[1:].split("]", 1)[0]
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def is_private_host(hostname: str) -> bool:
    """
    Returns True for loopback names/addresses and the RFC 1918 private ranges.

    Only literal addresses and the `localhost` name are recognized; hostnames are
    not resolved.
    """
    hostname = hostname.strip().lower().rstrip(".")
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    if address.is_loopback or address.is_unspecified:
        return True
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
        if address.is_loopback:
            return True
    return any(address in network for network in PRIVATE_NETWORKS)


def validate_target_url(target_url: Optional[str], request_host: str, policy: SecurityPolicy) -> ValidationResult:
    """
    Validates a requested render target.

    Checks, in order, stopping at the first failure:
    1. The URL is absolute with an http/https scheme (InvalidURL).
    2. The target host equals the inbound request host, unless remote hosts are allowed (CrossOriginDenied).
    3. The target is not loopback or private-network, unless exempted (PrivateNetworkDenied).

    Args:
        target_url (Optional[str]): The URL requested for rendering.
        request_host (str): The Host of the inbound request, with or without a port.
        policy (SecurityPolicy): The static security policy.

    Returns:
        ValidationResult: APPROVED, or the rejection with its reason.
    """
    if not target_url or not target_url.strip():
        return ValidationResult(False, RejectionReason.INVALID_URL, "Missing target URL.", malformed=True)

    try:
        parts = urlsplit(target_url.strip())
        hostname = parts.hostname
        # Accessing .port validates it and raises ValueError for out-of-range values.
        parts.port
    except ValueError as e:
        return ValidationResult(False, RejectionReason.INVALID_URL, f"Malformed target URL: {e}", malformed=True)

    if not parts.scheme:
        return ValidationResult(
            False, RejectionReason.INVALID_URL,
            f"Target URL is not absolute: {target_url!r}", malformed=True,
        )

    # file:, data:, javascript: and friends are refused even without a host.
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return ValidationResult(
            False, RejectionReason.INVALID_URL,
            f"Unsupported protocol '{parts.scheme}' in target URL.",
        )

    if not hostname:
        return ValidationResult(
            False, RejectionReason.INVALID_URL,
            f"Target URL has no host: {target_url!r}", malformed=True,
        )

    if not policy.remote_hosts_allowed and hostname.lower() != _strip_port(request_host or ""):
        return ValidationResult(
            False, RejectionReason.CROSS_ORIGIN_DENIED,
            f"Target host '{hostname}' does not match request host '{request_host}'.",
        )

    if not policy.allow_private_networks and is_private_host(hostname):
        return ValidationResult(
            False, RejectionReason.PRIVATE_NETWORK_DENIED,
            f"Target host '{hostname}' is a loopback or private network address.",
        )

    return APPROVED
