"""
Content fingerprinting.

Stable cache keys derived from media locators (URLs).
"""

import hashlib


def fingerprint(locator: str) -> str:
    """
    Детерминированный хэш локатора для имени файла в кэше.

    Args:
        locator: URL медиа ресурса (без изменений между lookup и записью)

    Returns:
        SHA256 в hex (64 символа)
    """
    return hashlib.sha256(locator.encode("utf-8")).hexdigest()
