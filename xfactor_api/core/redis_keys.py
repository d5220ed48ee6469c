"""Redis key schema. Namespace: {env}:{service}:{module}:..."""

import os

ENV = os.getenv("ENV", "dev")


def key_otp(email: str) -> str:
    return f"{ENV}:api:auth:otp:{email.lower()}"


def key_refresh_token(jti: str) -> str:
    return f"{ENV}:api:auth:rt:{jti}"


def key_user_refresh_tokens(user_id: str) -> str:
    return f"{ENV}:api:auth:rt:uid:{user_id}"


def key_rate_limit(scope: str, identifier: str) -> str:
    return f"{ENV}:rl:{scope}:{identifier}"
