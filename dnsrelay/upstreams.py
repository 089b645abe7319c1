"""Upstream configuration: parsing and domain-based upstream selection."""

from __future__ import annotations

import ipaddress
import logging
import string
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from dnsrelay.arpa import extract_reversed_addr

logger = logging.getLogger(__name__)

# The key of UpstreamConfig.domain_reserved_upstreams holding the upstreams
# used only for names consisting of a single label.
UNQUALIFIED_NAMES = "unqualified_names"

_MAX_NAME_LEN = 253
_MAX_LABEL_LEN = 63
_LABEL_CHARS = frozenset(string.ascii_letters + string.digits + "-")
_ALNUM = frozenset(string.ascii_letters + string.digits)


class NoUpstreamsError(ValueError):
    """Raised when no upstreams are configured at all."""

    def __init__(self, message: str = "no upstream specified") -> None:
        super().__init__(message)


class ParseError(ValueError):
    """An error in a single line of an upstream configuration."""

    def __init__(self, idx: int, err: BaseException) -> None:
        super().__init__(f"parsing error at index {idx}: {err}")
        self.idx = idx
        self.err = err
        self.__cause__ = err


class UpstreamsConfigError(ValueError):
    """Several errors found in an upstream configuration.

    The partially built configuration, if any, is kept in config.
    """

    def __init__(
        self,
        errors: list[BaseException],
        config: UpstreamConfig | None = None,
        message: str | None = None,
    ) -> None:
        joined = "\n".join(str(e) for e in errors)
        super().__init__(f"{message}: {joined}" if message else joined)
        self.errors = list(errors)
        self.config = config


@dataclass
class UpstreamConfig:
    """Maps domain names to the upstreams that resolve them."""

    upstreams: list[Any] = field(default_factory=list)
    domain_reserved_upstreams: dict[str, list[Any]] = field(default_factory=dict)
    specified_domain_upstreams: dict[str, list[Any]] = field(default_factory=dict)
    subdomain_exclusions: set[str] = field(default_factory=set)

    def upstreams_for_domain(self, fqdn: str) -> list[Any]:
        """Return the upstreams for fqdn, the most specific domain winning."""
        if not self.domain_reserved_upstreams:
            return self.upstreams

        fqdn = fqdn.lower()
        if fqdn in self.subdomain_exclusions:
            return self._lookup_subdomain_exclusion(fqdn)

        ups = self._lookup(fqdn)
        if ups is not None:
            return ups

        _, _, fqdn = fqdn.partition(".")
        if not fqdn:
            fqdn = UNQUALIFIED_NAMES

        while fqdn:
            ups = self._lookup(fqdn)
            if ups is not None:
                return ups
            _, _, fqdn = fqdn.partition(".")

        return self.upstreams

    def upstreams_for_ds(self, fqdn: str) -> list[Any]:
        """Like upstreams_for_domain, but matches fqdn without its first label."""
        _, _, parent = fqdn.partition(".")
        if not parent:
            return self.upstreams
        return self.upstreams_for_domain(parent)

    def _lookup_subdomain_exclusion(self, host: str) -> list[Any]:
        ups = self.specified_domain_upstreams.get(host)
        if ups:
            return ups

        _, _, parent = host.partition(".")
        ups = self.domain_reserved_upstreams.get(parent)
        if ups:
            return ups

        return self.upstreams

    def _lookup(self, name: str) -> list[Any] | None:
        if name not in self.domain_reserved_upstreams:
            return None
        # An empty list means the domain was excluded from reserved upstreams.
        return self.domain_reserved_upstreams[name] or self.upstreams

    def validate(self) -> None:
        """Raise an error unless at least one default upstream is configured."""
        if self.upstreams:
            return
        if not self.domain_reserved_upstreams and not self.specified_domain_upstreams:
            raise NoUpstreamsError()
        raise ValueError("no default upstreams specified")

    def close(self) -> None:
        """Close every upstream, raising the collected errors if any fail."""
        errors: list[BaseException] = _close_all(self.upstreams)
        for spec in (self.domain_reserved_upstreams, self.specified_domain_upstreams):
            for domain in sorted(spec):
                errors.extend(_close_all(spec[domain]))

        if errors:
            raise UpstreamsConfigError(errors, message="failed to close some upstreams")


def _close_all(upstreams: Iterable[Any]) -> list[BaseException]:
    errors: list[BaseException] = []
    for u in upstreams:
        try:
            u.close()
        except Exception as err:  # noqa: BLE001 - collected and re-raised
            errors.append(err)
    return errors


def _validate_label(label: str) -> None:
    if not label:
        raise ValueError("domain name label is empty")
    if len(label) > _MAX_LABEL_LEN:
        raise ValueError(f"domain name label {label!r} is too long")
    first, last = label[0], label[-1]
    if first not in _ALNUM and first != "_":
        raise ValueError(f"domain name label {label!r} has a bad first character")
    if any(c not in _LABEL_CHARS for c in label[1:]):
        raise ValueError(f"domain name label {label!r} has a bad character")
    if len(label) > 1 and last not in _ALNUM:
        raise ValueError(f"domain name label {label!r} has a bad last character")


def _validate_domain_name(name: str) -> None:
    if not name:
        raise ValueError("domain name is empty")
    if len(name) > _MAX_NAME_LEN:
        raise ValueError(f"domain name {name!r} is too long")
    for label in name.split("."):
        _validate_label(label)


def split_config_line(line: str) -> tuple[list[str], list[str]]:
    """Split a configuration line into upstream addresses and domains.

    Domains are lower-cased and fully qualified; an empty domain stands for
    unqualified names.  Lines without a domain specification yield no domains.
    """
    if not line.startswith("[/"):
        return [line], []

    domains_part, sep, upstreams_part = line[len("[/"):].partition("/]")
    if not sep or not upstreams_part:
        raise ValueError("wrong upstream format")

    domains: list[str] = []
    for conf_host in domains_part.split("/"):
        if not conf_host:
            domains.append(UNQUALIFIED_NAMES)
            continue

        host = conf_host[2:] if conf_host.startswith("*.") else conf_host
        _validate_domain_name(host)
        domains.append((conf_host + ".").lower())

    upstreams = upstreams_part.split()
    if not upstreams:
        raise ValueError("wrong upstream format")

    return upstreams, domains


class _ConfigParser:
    def __init__(self, factory: Callable[[str], Any]) -> None:
        self.factory = factory
        self.index: dict[str, Any] = {}
        self.upstreams: list[Any] = []
        self.domain_reserved: dict[str, list[Any]] = {}
        self.specified: dict[str, list[Any]] = {}
        self.subdomains_only: dict[str, list[Any]] = {}
        self.exclusions: set[str] = set()

    def parse(self, lines: Iterable[str]) -> tuple[UpstreamConfig, list[ParseError]]:
        errors: list[ParseError] = []
        for idx, line in enumerate(lines):
            try:
                self._parse_line(idx, line)
            except Exception as err:  # noqa: BLE001 - reported per line
                errors.append(ParseError(idx, err))

        # Wildcard specifications override the upper level domain ones.
        self.domain_reserved.update(self.subdomains_only)

        config = UpstreamConfig(
            upstreams=self.upstreams,
            domain_reserved_upstreams=self.domain_reserved,
            specified_domain_upstreams=self.specified,
            subdomain_exclusions=self.exclusions,
        )
        return config, errors

    def _parse_line(self, idx: int, line: str) -> None:
        if not line or line.startswith("#"):
            return

        upstreams, domains = split_config_line(line)
        if upstreams[0] == "#" and domains:
            self._exclude(domains)
            return

        for address in upstreams:
            self._specify(domains, address, idx)

    def _specify(self, domains: list[str], address: str, idx: int) -> None:
        upstream = self.index.get(address)
        if upstream is None:
            try:
                upstream = self.factory(address)
            except Exception as err:
                raise ValueError(f"cannot prepare the upstream: {err}") from err
            self.index[address] = upstream

        if not domains:
            self.upstreams.append(upstream)
            logger.debug("set upstream: idx %d, addr %s", idx, address)
            return

        self._include(upstream, domains)
        logger.debug(
            "upstream is reserved: idx %d, addr %s, domains %d",
            idx,
            address,
            len(domains),
        )

    def _exclude(self, domains: list[str]) -> None:
        for host in domains:
            if host.startswith("*."):
                trimmed = host[2:]
                self.exclusions.add(trimmed)
                self.subdomains_only[trimmed] = []
                continue

            self.domain_reserved[host] = []
            self.specified[host] = []

    def _include(self, upstream: Any, domains: list[str]) -> None:
        for host in domains:
            if host.startswith("*."):
                host = host[2:]
                self.exclusions.add(host)
                logger.debug("domain is added to exclusions list: %s", host)
                self.subdomains_only.setdefault(host, []).append(upstream)
            else:
                self.specified.setdefault(host, []).append(upstream)

            self.domain_reserved.setdefault(host, []).append(upstream)


def parse_upstreams_config(
    lines: Iterable[str], factory: Callable[[str], Any]
) -> UpstreamConfig:
    """Parse upstream configuration lines.

    factory builds an upstream from its address; each address is built once.
    Empty lines and lines starting with "#" are skipped.  If any line is
    invalid, UpstreamsConfigError is raised holding a ParseError for each bad
    line and the partially filled configuration.
    """
    config, errors = _ConfigParser(factory).parse(lines)
    if errors:
        raise UpstreamsConfigError(errors, config=config)
    return config


def _contains(private_subnets, addr) -> bool:
    if callable(private_subnets):
        return bool(private_subnets(addr))
    return any(
        addr in ipaddress.ip_network(net)
        for net in private_subnets
        if ipaddress.ip_network(net).version == addr.version
    )


def validate_private_config(config: UpstreamConfig | None, private_subnets) -> None:
    """Check config as a private reverse-DNS upstream configuration.

    private_subnets is a predicate on addresses or an iterable of networks.
    Every reserved domain must be a reversed address within a private subnet.
    """
    if config is None:
        raise ValueError("upstream config is nil")
    config.validate()

    errors: list[BaseException] = []
    for domain in sorted(config.domain_reserved_upstreams):
        try:
            pref = extract_reversed_addr(domain)
        except ValueError as err:
            errors.append(err)
            continue

        if pref.prefixlen == 0:
            # Subdomains of the ARPA root zones are allowed.
            continue
        if not _contains(private_subnets, pref.network_address):
            errors.append(ValueError(f'reversed subnet in "{domain}" is not private'))

    if errors:
        raise UpstreamsConfigError(errors, config=config)