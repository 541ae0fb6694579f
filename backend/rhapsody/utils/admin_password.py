from __future__ import annotations

import base64
import hashlib
import hmac
import secrets


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _pbkdf2_sha256(secret: str, *, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)


def generate_admin_password_hash(plaintext_password: str, *, iterations: int = 210_000) -> str:
    """生成 ADMIN_PASSWORD_HASH：对 sha256(明文) 的 hex 再做 PBKDF2。

    格式：pbkdf2_sha256$<iterations>$<salt_b64>$<hash_b64>
    """
    if not plaintext_password:
        raise ValueError("password 不能为空")
    if iterations <= 0:
        raise ValueError("iterations 必须 > 0")

    salt = secrets.token_bytes(16)
    dk = _pbkdf2_sha256(sha256_hex(plaintext_password), salt=salt, iterations=iterations)
    salt_b64 = base64.b64encode(salt).decode("utf-8")
    hash_b64 = base64.b64encode(dk).decode("utf-8")
    return f"pbkdf2_sha256${iterations}${salt_b64}${hash_b64}"


def verify_pbkdf2_sha256_hash(secret: str, stored: str) -> bool:
    if not secret or not stored:
        return False
    try:
        scheme, iterations_raw, salt_b64, hash_b64 = stored.split("$", 3)
        iterations = int(iterations_raw)
        if scheme != "pbkdf2_sha256" or iterations <= 0:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(hash_b64)
    except ValueError:
        return False
    actual = _pbkdf2_sha256(secret, salt=salt, iterations=iterations)
    return hmac.compare_digest(actual, expected)


def verify_admin_password_hash(
    password_hash: str,
    *,
    configured_hash: str | None,
    plaintext: str | None,
) -> bool:
    """校验客户端传来的 sha256 hex；优先使用 ADMIN_PASSWORD_HASH。"""
    if not password_hash:
        return False
    if configured_hash:
        return verify_pbkdf2_sha256_hash(password_hash, configured_hash)
    if not plaintext:
        return False
    # sha256 hex 本身就是可重放口令，必须常量时间比较
    return hmac.compare_digest(sha256_hex(plaintext), password_hash)
