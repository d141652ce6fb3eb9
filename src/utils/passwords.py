# src/utils/passwords.py
import base64
import logging
import random

logger = logging.getLogger(__name__)

PASSWORD_BYTES = 12


def generate_password(num_bytes=PASSWORD_BYTES):
    """
    `openssl rand -base64 12`와 같은 형태의 임의 비밀번호를 만듭니다.

    운영체제가 안전한 난수원을 제공하지 않으면 약한 난수로 대체하고 경고를 남깁니다.
    """
    try:
        import secrets
        raw = secrets.token_bytes(num_bytes)
    except NotImplementedError:
        logger.warning("No cryptographically strong random source available; falling back to a weaker generator.")
        rng = random.Random()
        raw = bytes(rng.getrandbits(8) for _ in range(num_bytes))
    return base64.b64encode(raw).decode("ascii")
