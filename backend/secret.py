import json
import logging
import os
import time
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN", "TOKEN")
SECRET_JSON_KEYS = ("token", "GITHUB_TOKEN", "github_token")

# Token fetched from AWS, cached across warm invocations
_TOKEN_CACHE = {"value": None, "exp": 0.0}


def _ttl_seconds() -> int:
    return int(os.environ.get("SECRETS_TTL_SECONDS", "300"))


def _token_from_secrets_manager(secret_id: str) -> Optional[str]:
    sm = boto3.client("secretsmanager")
    resp = sm.get_secret_value(SecretId=secret_id)
    secret_str = resp.get("SecretString")
    if secret_str is None:
        # boto3 hands SecretBinary back as raw bytes
        secret_str = resp["SecretBinary"].decode("utf-8", errors="replace")
    try:
        parsed = json.loads(secret_str)
    except json.JSONDecodeError:
        return secret_str.strip() or None  # plain string secret
    if not isinstance(parsed, dict):
        return None
    for key in SECRET_JSON_KEYS:
        if parsed.get(key):
            return parsed[key]
    return None


def _token_from_ssm(param_name: str) -> Optional[str]:
    ssm = boto3.client("ssm")
    resp = ssm.get_parameter(Name=param_name, WithDecryption=True)
    return resp["Parameter"].get("Value") or None


def resolve_github_token() -> Optional[str]:
    """
    Return the GitHub token, or None when none is configured.

    Lookup order: GITHUB_TOKEN / GH_TOKEN / TOKEN, then the Secrets Manager
    secret named by GITHUB_TOKEN_SECRET_ID, then the SSM parameter named by
    GITHUB_TOKEN_SSM_PARAM. Tokens from AWS are cached for SECRETS_TTL_SECONDS.
    """
    for name in TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            return token

    now = time.time()
    if _TOKEN_CACHE["value"] and now < _TOKEN_CACHE["exp"]:
        return _TOKEN_CACHE["value"]

    token = None
    secret_id = os.environ.get("GITHUB_TOKEN_SECRET_ID")
    ssm_param = os.environ.get("GITHUB_TOKEN_SSM_PARAM")
    try:
        if secret_id:
            token = _token_from_secrets_manager(secret_id)
        if not token and ssm_param:
            token = _token_from_ssm(ssm_param)
    except (ClientError, BotoCoreError) as e:
        logger.warning("Could not read GitHub token from AWS: %s", e)
        token = None

    if token:
        _TOKEN_CACHE.update({"value": token, "exp": now + _ttl_seconds()})
    return token


def clear_token_cache():
    _TOKEN_CACHE.update({"value": None, "exp": 0.0})
