"""
Codec Configuration — Key derivation and cipher settings.

Reads optional overrides from environment variables:
    DAYNOTES_KDF_ITERATIONS = <integer, PBKDF2 rounds>
    DAYNOTES_CIPHER_BACKEND = aesgcm | chacha20
    DAYNOTES_SALT_SIZE = <integer, bytes of random salt>

Security Note:
    Never log passwords, salts or derived key material.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("daynotes.codec")

DEFAULT_KDF_ITERATIONS = 10000
DEFAULT_SALT_SIZE = 16

# Envelope version tag for each supported AEAD backend.
CIPHER_VERSIONS = {
    "aesgcm": "v1",
    "chacha20": "v2",
}


class CodecConfig(BaseModel):
    """Validated codec configuration."""

    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=1000)
    cipher_backend: str = Field(default="aesgcm")
    salt_size: int = Field(default=DEFAULT_SALT_SIZE, ge=8, le=64)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_VERSIONS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @property
    def envelope_version(self) -> str:
        """Version tag written into new envelopes."""
        return CIPHER_VERSIONS[self.cipher_backend]

    @classmethod
    def from_env(cls) -> "CodecConfig":
        """Create CodecConfig by loading values from environment.

        Returns:
            Populated CodecConfig instance.
        """
        config = cls(
            kdf_iterations=int(
                os.environ.get("DAYNOTES_KDF_ITERATIONS", DEFAULT_KDF_ITERATIONS)
            ),
            cipher_backend=os.environ.get("DAYNOTES_CIPHER_BACKEND", "aesgcm"),
            salt_size=int(
                os.environ.get("DAYNOTES_SALT_SIZE", DEFAULT_SALT_SIZE)
            ),
        )
        logger.debug(
            "Codec config: backend=%s iterations=%d",
            config.cipher_backend, config.kdf_iterations,
        )
        return config


_default_config: CodecConfig | None = None


def get_config() -> CodecConfig:
    """Return the process-wide default config, loading it on first use."""
    global _default_config
    if _default_config is None:
        _default_config = CodecConfig.from_env()
    return _default_config
