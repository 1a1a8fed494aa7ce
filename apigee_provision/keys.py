"""
JWT signing key material: a fresh RSA key and self-signed certificate.
"""
import datetime
import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .credentials import Credential
from .errors import ConfigurationMissing, TransientRemoteFailure

logger = logging.getLogger(__name__)

SUBJECT_NAME = "remote-service"
CLOCK_SKEW = datetime.timedelta(minutes=5)
# fixed; cryptography rejects a zero serial
SERIAL_NUMBER = 1
DEFAULT_KEY_ID = "1"


@dataclass
class KeyMaterial:
    certificate: str
    private_key: str
    key_id: str = DEFAULT_KEY_ID

    def validate(self) -> "KeyMaterial":
        missing: List[str] = []
        if not self.private_key:
            missing.append("private key")
        if not self.certificate:
            missing.append("certificate")
        if not self.key_id:
            missing.append("key id")
        if missing:
            raise ConfigurationMissing(missing)
        return self

    def kvm_entries(self) -> List[dict]:
        return [
            {"name": "private_key", "value": self.private_key},
            {"name": "certificate1", "value": self.certificate},
            {"name": "certificate1_kid", "value": self.key_id},
        ]


def _add_years(moment: datetime.datetime, years: int) -> datetime.datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 -> Mar 1
        return moment.replace(year=moment.year + years, month=3, day=1)


def generate(key_strength: int = 2048, expiration_years: int = 1, key_id: str = DEFAULT_KEY_ID) -> KeyMaterial:
    """
    Generate an RSA key pair and a self-signed CA certificate.

    The certificate is backdated five minutes to absorb clock skew between
    systems; its subject key identifier is the SHA-256 of the public modulus.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_strength)
    public_key = private_key.public_key()

    modulus = public_key.public_numbers().n
    modulus_bytes = modulus.to_bytes((modulus.bit_length() + 7) // 8, "big")
    subject_key_id = hashlib.sha256(modulus_bytes).digest()

    now = datetime.datetime.now(datetime.timezone.utc)
    name = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, SUBJECT_NAME),
        x509.NameAttribute(NameOID.COMMON_NAME, SUBJECT_NAME),
    ])

    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(public_key)
        .serial_number(SERIAL_NUMBER)
        .not_valid_before(now - CLOCK_SKEW)
        .not_valid_after(_add_years(now, expiration_years))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier(subject_key_id), critical=False)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=True,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")

    logger.debug(f"generated {key_strength}-bit key, certificate valid {expiration_years} year(s)")
    return KeyMaterial(certificate=cert_pem, private_key=key_pem, key_id=key_id)


def rotate(
    remote_service_url: str,
    credential: Credential,
    material: KeyMaterial,
    session: Optional[requests.Session] = None,
    timeout: float = 60.0,
) -> None:
    """Register new key material with a deployed remote-service proxy"""
    material.validate()
    session = session or requests.Session()
    url = f"{remote_service_url.rstrip('/')}/rotate"
    payload = {
        "private_key": material.private_key,
        "certificate": material.certificate,
        "kid": material.key_id,
    }
    logger.info(f"rotating key to kid {material.key_id} at {url}")
    try:
        response = session.post(url, json=payload, auth=(credential.key, credential.secret), timeout=timeout)
    except requests.RequestException as exc:
        raise TransientRemoteFailure(f"POST {url}", None, str(exc)) from exc
    if not 200 <= response.status_code < 300:
        raise TransientRemoteFailure(f"rotate key {material.key_id}", response.status_code, response.text)
    logger.info(f"key {material.key_id} rotated")
