"""
Fragment codec

Authenticated encryption of request fragments (a path with its query, or a
request body) under the shared secret. A token is the hex IV and the hex
ciphertext-with-tag joined by a single colon:

    <24 hex chars of IV>:<hex of ciphertext || 16-byte GCM tag>

This is the same framing the browser side produces with WebCrypto AES-GCM.
"""

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .secret_models import KEY_LENGTHS, Secret


class FragmentError(Exception):
    """Base exception for fragment encoding and decoding"""
    pass


class FragmentFormatError(FragmentError):
    """Raised when a token is not ``ivHex:payloadHex`` with valid lengths"""
    pass


class AuthenticationFailure(FragmentError):
    """Raised when a token cannot be decrypted under the current secret"""
    pass


class FragmentCodec:
    """
    Encode and decode fragment tokens.

    The AES variant follows the key length: 16, 24 or 32 bytes select
    AES-128/192/256-GCM.
    """

    IV_LENGTH = 12
    TAG_LENGTH = 16
    SEPARATOR = ":"

    @classmethod
    def _cipher(cls, secret: Secret) -> AESGCM:
        key = secret.value
        if len(key) not in KEY_LENGTHS:
            raise AuthenticationFailure("Decryption failed")
        return AESGCM(key)

    @classmethod
    def encode(cls, secret: Secret, plaintext: str) -> str:
        """
        Encrypt a string into a fragment token.

        A fresh random IV is drawn on every call, so encoding the same
        plaintext twice yields different tokens.

        Args:
            secret: Shared secret to encrypt under
            plaintext: Text to encrypt (encoded as UTF-8)

        Returns:
            Token in ``ivHex:payloadHex`` form
        """
        iv = secrets.token_bytes(cls.IV_LENGTH)
        # AESGCM appends the 16-byte tag to the ciphertext
        payload = cls._cipher(secret).encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}{cls.SEPARATOR}{payload.hex()}"

    @classmethod
    def decode(cls, secret: Secret, token: str) -> str:
        """
        Decrypt a fragment token.

        Args:
            secret: Shared secret the token was encrypted under
            token: Token in ``ivHex:payloadHex`` form

        Returns:
            Decrypted plaintext

        Raises:
            FragmentFormatError: If the token is structurally invalid
            AuthenticationFailure: If the tag does not verify or the
                plaintext is not UTF-8
        """
        parts = token.split(cls.SEPARATOR)
        if len(parts) != 2:
            raise FragmentFormatError("Invalid token format. Expected ivHex:payloadHex.")

        iv_hex, payload_hex = parts
        try:
            iv = bytes.fromhex(iv_hex)
            payload = bytes.fromhex(payload_hex)
        except ValueError:
            raise FragmentFormatError("Token is not valid hex")

        if len(iv) != cls.IV_LENGTH:
            raise FragmentFormatError(
                f"Invalid IV length: {len(iv)}. Must be {cls.IV_LENGTH} bytes."
            )
        if len(payload) < cls.TAG_LENGTH:
            raise FragmentFormatError("Payload is too short to contain an authentication tag")

        try:
            plaintext = cls._cipher(secret).decrypt(iv, payload, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            raise AuthenticationFailure("Decryption failed")
