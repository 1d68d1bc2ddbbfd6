"""
Flowkit - Google Cloud KMS Signer

Remote signing with asymmetric keys held in Google Cloud KMS.
The Google client libraries are imported on first use.
"""

import hashlib
import os
import re
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from ..constants import GOOGLE_CREDENTIALS_ENV
from ..errors import InvalidKeyError, NetworkError
from .crypto import SCALAR_LENGTH, Signer


RESOURCE_PATTERN = re.compile(
    r"^projects/(?P<project>[^/]+)/locations/(?P<location>[^/]+)/keyRings/(?P<key_ring>[^/]+)"
    r"/cryptoKeys/(?P<key>[^/]+)/cryptoKeyVersions/(?P<version>[^/]+)$"
)


@dataclass(frozen=True)
class KMSResource:
    """Parsed KMS crypto key version resource id."""
    project_id: str
    location_id: str
    key_ring_id: str
    key_id: str
    key_version: str

    @classmethod
    def parse(cls, resource_id: str) -> "KMSResource":
        """
        Parse ``projects/…/locations/…/keyRings/…/cryptoKeys/…/cryptoKeyVersions/…``.

        Raises:
            InvalidKeyError: If the id does not have that shape.
        """
        match = RESOURCE_PATTERN.match(resource_id.strip())
        if not match:
            raise InvalidKeyError(f"invalid KMS resource ID: {resource_id}")
        return cls(
            project_id=match.group("project"),
            location_id=match.group("location"),
            key_ring_id=match.group("key_ring"),
            key_id=match.group("key"),
            key_version=match.group("version"),
        )

    @property
    def name(self) -> str:
        return (
            f"projects/{self.project_id}/locations/{self.location_id}/keyRings/{self.key_ring_id}"
            f"/cryptoKeys/{self.key_id}/cryptoKeyVersions/{self.key_version}"
        )


def check_credentials(resource: KMSResource) -> None:
    """
    Check that KMS signing can find credentials locally.

    Raises:
        InvalidKeyError: If neither a service account file nor a project id
            is available.
    """
    if os.environ.get(GOOGLE_CREDENTIALS_ENV):
        return
    if resource.project_id:
        return
    raise InvalidKeyError(
        "could not get GOOGLE_APPLICATION_CREDENTIALS, no google service account JSON provided "
        "but private key type is KMS"
    )


class KMSSigner(Signer):
    """
    Signer backed by a KMS asymmetric signing key.

    KMS signs the SHA2-256 digest of the message; the DER signature is
    converted to r||s.
    """

    def __init__(self, resource: KMSResource, client=None):
        """
        Initialize the signer.

        Args:
            resource: Key version to sign with.
            client: Optional ``KeyManagementServiceClient``; created from
                application-default credentials when omitted.

        Raises:
            InvalidKeyError: If credentials cannot be loaded.
        """
        self.resource = resource
        self._public_key: Optional[bytes] = None

        if client is None:
            from google.auth.exceptions import DefaultCredentialsError
            from google.cloud import kms

            try:
                client = kms.KeyManagementServiceClient()
            except DefaultCredentialsError as e:
                raise InvalidKeyError(f"could not create KMS client: {e}")
        self._client = client

    @property
    def public_key(self) -> bytes:
        if self._public_key is None:
            response = self._call("get_public_key", {"name": self.resource.name})
            key = serialization.load_pem_public_key(response.pem.encode())
            point = key.public_bytes(
                serialization.Encoding.X962,
                serialization.PublicFormat.UncompressedPoint
            )
            self._public_key = point[1:]
        return self._public_key

    def sign(self, message: bytes) -> bytes:
        digest = hashlib.sha256(message).digest()
        response = self._call(
            "asymmetric_sign",
            {"name": self.resource.name, "digest": {"sha256": digest}}
        )
        r, s = decode_dss_signature(response.signature)
        return r.to_bytes(SCALAR_LENGTH, "big") + s.to_bytes(SCALAR_LENGTH, "big")

    def _call(self, method: str, request: dict):
        from google.api_core.exceptions import GoogleAPIError

        try:
            return getattr(self._client, method)(request=request)
        except GoogleAPIError as e:
            raise NetworkError(f"KMS {method} failed: {e}", {"resource": self.resource.name})

    def __repr__(self) -> str:
        return f"KMSSigner({self.resource.name})"
