"""Transport negotiation for IMAP accounts.

Tries (port, security configuration) pairs from most to least secure
until the server accepts a login, learning from the server's
diagnostics which options are unworkable on each port.
"""

import asyncio
import contextlib
import re
import ssl
from dataclasses import dataclass
from enum import Enum, IntFlag

import aioimaplib
import structlog

from imapstream.core.logging import sanitize_for_log
from imapstream.core.network import DEFAULT_ENDPOINTS, NetworkStatus, check_network
from imapstream.exceptions import NetworkOfflineError

logger = structlog.get_logger(__name__)

PLAINTEXT_PORT = 143
CLOSE_TIMEOUT = 5

TLS_UNAVAILABLE = "Unable to negotiate TLS with this server"


class NegotiationFlag(IntFlag):
    NONE = 0
    # Skip the network reachability check. Faster, but connection errors
    # are harder to diagnose.
    MUST_GO_FASTER = 1


_globals = NegotiationFlag.NONE


def set_global(flag: NegotiationFlag) -> None:
    """Turn on a process-wide negotiation flag."""
    global _globals
    _globals |= flag


def clear_global(flag: NegotiationFlag) -> None:
    """Turn off a process-wide negotiation flag."""
    global _globals
    _globals &= ~flag


def get_globals() -> NegotiationFlag:
    return _globals


class SecurityOption(str, Enum):
    SSL = "ssl"
    TLS = "tls"
    SECURE = "secure"
    VALIDATE_CERT = "validate-cert"
    NOVALIDATE_CERT = "novalidate-cert"


# Most secure first
CONFIGURATIONS: tuple[tuple[SecurityOption, ...], ...] = (
    (SecurityOption.SSL, SecurityOption.SECURE, SecurityOption.VALIDATE_CERT),
    (SecurityOption.SSL, SecurityOption.SECURE, SecurityOption.NOVALIDATE_CERT),
    (SecurityOption.TLS, SecurityOption.SECURE),
    (SecurityOption.TLS, SecurityOption.SECURE, SecurityOption.NOVALIDATE_CERT),
    (),
)


@dataclass(frozen=True)
class TransportConfig:
    """One concrete way of reaching the server."""

    host: str
    port: int
    options: tuple[SecurityOption, ...] = ()

    @property
    def uses_ssl(self) -> bool:
        return SecurityOption.SSL in self.options

    @property
    def uses_tls(self) -> bool:
        return SecurityOption.TLS in self.options

    @property
    def validates_cert(self) -> bool:
        return SecurityOption.NOVALIDATE_CERT not in self.options

    @property
    def descriptor(self) -> str:
        """Human readable form, e.g. ``{imap.example.com:993/imap/ssl/secure/validate-cert}``."""
        parts = ["imap", *(option.value for option in self.options)]
        return f"{{{self.host}:{self.port}/{'/'.join(parts)}}}"

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.validates_cert:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


class FailureAction(Enum):
    ABANDON_PORT = "abandon_port"
    DISABLE_SSL = "disable_ssl"
    DISABLE_TLS = "disable_tls"
    ABORT = "abort"


# Evaluated in order against every diagnostic line; first match wins
CLASSIFICATION_RULES: tuple[tuple[re.Pattern[str], FailureAction], ...] = (
    (re.compile(r": Connection refused$", re.IGNORECASE), FailureAction.ABANDON_PORT),
    (re.compile(r": SSL negotiation failed$", re.IGNORECASE), FailureAction.DISABLE_SSL),
    (re.compile(r"^Unable to negotiate TLS with this server$", re.IGNORECASE), FailureAction.DISABLE_TLS),
    (re.compile(r"Authentication failed|AUTHENTICATIONFAILED"), FailureAction.ABORT),
)


def classify(line: str) -> FailureAction | None:
    """Map one server or transport diagnostic line to a negotiation action."""
    for pattern, action in CLASSIFICATION_RULES:
        if pattern.search(line):
            return action
    return None


@dataclass
class NegotiationResult:
    client: aioimaplib.IMAP4
    config: TransportConfig


def _decode_lines(lines: list) -> list[str]:
    decoded = []
    for line in lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        decoded.append(str(line).strip())
    return [line for line in decoded if line]


class TransportNegotiator:
    """Find a port and security configuration the server accepts."""

    def __init__(
        self,
        host: str,
        timeout: float = 30,
        check_endpoints: tuple[tuple[str, int], ...] | list[tuple[str, int]] = DEFAULT_ENDPOINTS,
        check_timeout: float = 3.0,
    ) -> None:
        self.host = host
        self.timeout = timeout
        self.check_endpoints = check_endpoints
        self.check_timeout = check_timeout

    async def preflight(self) -> None:
        """Run the reachability check unless MUST_GO_FASTER is set.

        Raises:
            NetworkOfflineError: If the check reports the network offline.
        """
        if get_globals() & NegotiationFlag.MUST_GO_FASTER:
            return
        status = await check_network(self.check_endpoints, timeout=self.check_timeout)
        if status == NetworkStatus.OFFLINE:
            logger.error("imap_network_offline", host=self.host)
            raise NetworkOfflineError()
        if status == NetworkStatus.DEGRADED:
            logger.warning("imap_network_degraded", host=self.host)

    async def negotiate(
        self, ports: list[int], username: str, password: str
    ) -> NegotiationResult | None:
        """Try every candidate configuration on every port, in order.

        Failures are classified and absorbed here. Returns None when all
        candidates failed or the server rejected the credentials.
        """
        for port in ports:
            disabled: set[SecurityOption] = set()
            for options in CONFIGURATIONS:
                # Assume no SSL support on the plaintext port
                if port == PLAINTEXT_PORT and SecurityOption.SSL in options:
                    continue
                if disabled.intersection(options):
                    continue

                config = TransportConfig(self.host, port, options)
                logger.debug("imap_negotiation_attempt", configuration=config.descriptor)
                client, diagnostics = await self._attempt(config, username, password)
                if client is not None:
                    logger.info("imap_negotiated", configuration=config.descriptor, user=username)
                    return NegotiationResult(client=client, config=config)

                logger.debug(
                    "imap_negotiation_attempt_failed",
                    configuration=config.descriptor,
                    diagnostics=[sanitize_for_log(line) for line in diagnostics],
                )
                action = self._react(diagnostics, disabled)
                if action is FailureAction.ABANDON_PORT:
                    logger.info("imap_port_abandoned", host=self.host, port=port)
                    break
                if action is FailureAction.ABORT:
                    # Wrong credentials; more attempts only risk a lockout
                    logger.warning("imap_authentication_failed", host=self.host, user=username)
                    return None

        logger.warning("imap_negotiation_exhausted", host=self.host, ports=list(ports))
        return None

    def _react(
        self, diagnostics: list[str], disabled: set[SecurityOption]
    ) -> FailureAction | None:
        """Apply the classification table to every line of one failed attempt.

        Disabling actions accumulate; abandoning the port or aborting
        stops the scan and is returned to the caller.
        """
        for line in diagnostics:
            action = classify(line)
            if action is FailureAction.DISABLE_SSL:
                disabled.add(SecurityOption.SSL)
            elif action is FailureAction.DISABLE_TLS:
                disabled.add(SecurityOption.TLS)
            elif action is not None:
                return action
        return None

    async def _attempt(
        self, config: TransportConfig, username: str, password: str
    ) -> tuple[aioimaplib.IMAP4 | None, list[str]]:
        """Connect, upgrade and log in without selecting a mailbox.

        Returns the authenticated client, or None with the diagnostic
        lines explaining the failure.
        """
        client = None
        prefix = f"{config.host}:{config.port}"
        try:
            if config.uses_ssl:
                client = aioimaplib.IMAP4_SSL(
                    host=config.host,
                    port=config.port,
                    timeout=self.timeout,
                    ssl_context=config.ssl_context(),
                )
            else:
                client = aioimaplib.IMAP4(host=config.host, port=config.port, timeout=self.timeout)

            # Refused connections and handshake errors surface here
            await client.wait_hello_from_server()

            if config.uses_tls and not await self._starttls(client, config):
                await self._discard(client)
                return None, [TLS_UNAVAILABLE]

            response = await client.login(username, password)
            if response.result != "OK":
                await self._discard(client)
                return None, _decode_lines(response.lines) or [f"{prefix}: login {response.result}"]

            return client, []

        except ConnectionRefusedError:
            diagnostics = [f"{prefix}: Connection refused"]
        except ssl.SSLError as e:
            diagnostics = [f"{prefix}: SSL negotiation failed", str(e)]
        except asyncio.TimeoutError:
            diagnostics = [f"{prefix}: Timed out"]
        except Exception as e:
            diagnostics = [f"{prefix}: {e}"]

        if client is not None:
            await self._discard(client)
        return None, diagnostics

    async def _starttls(self, client: aioimaplib.IMAP4, config: TransportConfig) -> bool:
        if not client.has_capability("STARTTLS"):
            return False
        try:
            response = await client.starttls(ssl_context=config.ssl_context())
        except Exception as e:
            logger.debug("imap_starttls_failed", configuration=config.descriptor, error=str(e))
            return False
        return response.result == "OK"

    async def _discard(self, client: aioimaplib.IMAP4) -> None:
        with contextlib.suppress(Exception):
            await asyncio.wait_for(client.logout(), CLOSE_TIMEOUT)
