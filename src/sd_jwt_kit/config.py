"""Environment-driven defaults for sd-jwt-kit."""

import os


def _get_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return int(val)


def _get_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return float(val)


class Settings:
    hash_alg: str = os.getenv("SD_JWT_HASH_ALG", "sha-256")
    salt_bytes: int = _get_int("SD_JWT_SALT_BYTES", 16)

    # Issuer metadata resolution
    http_timeout_seconds: float = _get_float("SD_JWT_HTTP_TIMEOUT", 10.0)
    metadata_path: str = os.getenv("SD_JWT_METADATA_PATH", "/.well-known/jwt-vc-issuer")

    # Freshness window for key-binding and envelope iat
    iat_offset_seconds: int = _get_int("SD_JWT_IAT_OFFSET", 300)


settings = Settings()
