"""Connection helpers for the fulfillment server.

This module centralizes creation of the gRPC channel and applies small
normalization rules to the configured address, so that values copied from a
browser (with scheme or trailing slash) still work.
"""

from __future__ import annotations

import collections

import grpc

from fulfillment.core.settings import Settings


class ConnectionSetupError(RuntimeError):
    """Raised when the gRPC channel can't be created from the settings."""


class _ClientCallDetails(
    collections.namedtuple(
        "_ClientCallDetails",
        ("method", "timeout", "metadata", "credentials", "wait_for_ready", "compression"),
    ),
    grpc.ClientCallDetails,
):
    pass


class _TokenInterceptor(grpc.UnaryUnaryClientInterceptor):
    """Adds the bearer token to the metadata of every call."""

    def __init__(self, token: str) -> None:
        self._header = ("authorization", f"Bearer {token}")

    def intercept_unary_unary(self, continuation, client_call_details, request):
        metadata = list(client_call_details.metadata or [])
        metadata.append(self._header)
        details = _ClientCallDetails(
            client_call_details.method,
            client_call_details.timeout,
            metadata,
            client_call_details.credentials,
            getattr(client_call_details, "wait_for_ready", None),
            getattr(client_call_details, "compression", None),
        )
        return continuation(details, request)


def _sanitize_address(address: str | None) -> tuple[str | None, bool]:
    """
    Normalize a server address.

    - Removes the `https://` or `http://` scheme (the latter implies plaintext)
    - Removes trailing slashes

    Returns the address and whether the scheme asked for plaintext.
    """
    if not address:
        return address, False
    plaintext = False
    value = address.strip()
    if value.startswith("http://"):
        value = value[len("http://"):]
        plaintext = True
    elif value.startswith("https://"):
        value = value[len("https://"):]
    return value.rstrip("/"), plaintext


def get_channel(settings: Settings) -> grpc.Channel:
    """
    Create and return a gRPC channel for the configured server.

    The channel uses TLS unless plaintext is requested, and adds the bearer
    token, if any, to every call.

    Raises:
        ConnectionSetupError: If there is no address configured.
    """
    address, plaintext = _sanitize_address(settings.address)
    if not address:
        raise ConnectionSetupError(
            "There is no server address, set the FULFILLMENT_ADDRESS environment variable."
        )
    if plaintext or settings.plaintext:
        channel = grpc.insecure_channel(address)
    else:
        channel = grpc.secure_channel(address, grpc.ssl_channel_credentials())
    if settings.token:
        channel = grpc.intercept_channel(channel, _TokenInterceptor(settings.token))
    return channel
