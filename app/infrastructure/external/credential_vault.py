# app/infrastructure/external/credential_vault.py
import logging
import os
import secrets
from contextlib import contextmanager
from typing import Iterator

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

import config
from app.domain.models.issuer import Issuer
from app.domain.ports.credential_vault import CredentialVault, UnlockedCredential

logger = logging.getLogger(__name__)

CERTIFICATE_FILENAME = "certificado.p12"


def _master_key(master_key: str) -> bytes:
    return master_key.ljust(32, "0")[:32].encode("utf-8")


def encrypt_password(password: str, master_key: str = config.CERTIFICATE_MASTER_KEY) -> str:
    """AES-256-CBC con IV aleatorio. Formato: "ivhex:cipherhex"."""
    iv = secrets.token_bytes(16)
    padder = padding.PKCS7(128).padder()
    data = padder.update(password.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_master_key(master_key)), modes.CBC(iv)).encryptor()
    return iv.hex() + ":" + (encryptor.update(data) + encryptor.finalize()).hex()


def decrypt_password(encrypted: str, master_key: str = config.CERTIFICATE_MASTER_KEY) -> str:
    iv_hex, cipher_hex = encrypted.split(":", 1)
    decryptor = Cipher(algorithms.AES(_master_key(master_key)), modes.CBC(bytes.fromhex(iv_hex))).decryptor()
    data = decryptor.update(bytes.fromhex(cipher_hex)) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return (unpadder.update(data) + unpadder.finalize()).decode("utf-8")


class FileCredentialVault(CredentialVault):
    """
    Certificados en CERTIFICATES_DIR/<ruc>/certificado.p12 y contraseña
    cifrada en la tabla de empresas.
    """

    def __init__(self, base_dir: str = config.CERTIFICATES_DIR, master_key: str = config.CERTIFICATE_MASTER_KEY):
        self.base_dir = base_dir
        self.master_key = master_key

    def certificate_path(self, issuer: Issuer) -> str:
        return os.path.join(self.base_dir, issuer.ruc, CERTIFICATE_FILENAME)

    def has_valid_credential(self, issuer: Issuer) -> bool:
        return issuer.certificate_active and os.path.exists(self.certificate_path(issuer))

    @contextmanager
    def unlock(self, issuer: Issuer) -> Iterator[UnlockedCredential]:
        path = self.certificate_path(issuer)
        if not self.has_valid_credential(issuer):
            raise FileNotFoundError(f"Certificado no disponible para RUC {issuer.ruc}")
        if not issuer.certificate_password:
            raise ValueError(f"La empresa {issuer.ruc} no tiene contraseña de certificado")

        with open(path, "rb") as f:
            credential = UnlockedCredential(
                path=path,
                pkcs12=f.read(),
                password=decrypt_password(issuer.certificate_password, self.master_key),
            )
        try:
            yield credential
        finally:
            credential.pkcs12 = b""
            credential.password = ""
