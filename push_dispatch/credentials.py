"""
Household Push Dispatch: Delivery Credentials
=============================================

What:  Immutable credential values and the closed DeliveryProtocol variant.
How:   Settings.build_delivery_protocol() turns environment configuration into
       exactly one of LegacyKey or ServiceAccount; the dispatcher branches on
       the variant once per run, never per token.

Protocols:
    LegacyKey       → POST https://fcm.googleapis.com/fcm/send
                      Authorization: key=<server-key>
    ServiceAccount  → POST https://fcm.googleapis.com/v1/projects/<id>/messages:send
                      Authorization: Bearer <minted access token>
"""

import hashlib
from dataclasses import dataclass, field
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from push_dispatch.exceptions import ConfigurationError


def mask_token(token: str) -> str:
    """Device tokens are credentials; logs and reports only ever see a prefix."""
    return f"{token[:12]}…" if len(token) > 12 else token


def normalize_private_key(raw: str) -> str:
    """
    Turn an environment-supplied PEM into a parseable one.

    Secrets managers usually store the key on one line with literal "\\n"
    sequences, sometimes wrapped in quotes. Both are undone here.
    """
    key = raw.strip()
    if len(key) >= 2 and key[0] == key[-1] and key[0] in ("'", '"'):
        key = key[1:-1]
    return key.replace("\\n", "\n")


@dataclass(frozen=True)
class SigningCredential:
    """
    Service-account identity used to self-sign OAuth assertions.

    Attributes:
        client_email:    JWT issuer (iss claim), e.g. firebase-adminsdk@proj.iam.gserviceaccount.com
        project_id:      FCM project; part of the v1 send URL
        private_key_pem: PKCS8 RSA private key, real newlines
    """

    client_email: str
    project_id: str
    private_key_pem: str = field(repr=False)

    @property
    def cache_key(self) -> str:
        """Identity for the access-token cache; never exposes the key itself."""
        digest = hashlib.sha256(self.private_key_pem.encode("utf-8")).hexdigest()[:16]
        return f"{self.client_email}:{digest}"

    def load_private_key(self) -> rsa.RSAPrivateKey:
        """
        Parse the PEM into an RSA key object.

        Raises:
            ConfigurationError: PEM is malformed or not an RSA key.
        """
        try:
            key = serialization.load_pem_private_key(
                self.private_key_pem.encode("utf-8"),
                password=None,
            )
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                message="FCM private key could not be parsed",
                context={"client_email": self.client_email, "error": str(e)},
            ) from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ConfigurationError(
                message="FCM private key is not an RSA key",
                context={"client_email": self.client_email},
            )
        return key


@dataclass(frozen=True)
class LegacyKey:
    """Static FCM server key for the legacy HTTP protocol."""

    server_key: str = field(repr=False)
    name: str = field(default="legacy_key", init=False)


@dataclass(frozen=True)
class ServiceAccount:
    """Signed-JWT path: access tokens are minted from this credential."""

    credential: SigningCredential
    name: str = field(default="service_account", init=False)


DeliveryProtocol = Union[LegacyKey, ServiceAccount]
