from __future__ import annotations

import secrets

from starlette.requests import HTTPConnection

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
USER_ID_HEADER = "X-User-Id"
INTERNAL_TOKEN_QUERY_PARAM = "token"
USER_ID_QUERY_PARAM = "user_id"


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


def parse_forwarded_user_id(raw_value: str | None) -> int | None:
    if raw_value is None:
        return None
    candidate = raw_value.strip()
    if not candidate.isdigit():
        return None
    user_id = int(candidate)
    return user_id if user_id > 0 else None


def read_gateway_credentials(
    connection: HTTPConnection,
    *,
    allow_query: bool = False,
) -> tuple[str | None, str | None]:
    token = connection.headers.get(INTERNAL_TOKEN_HEADER)
    user_id = connection.headers.get(USER_ID_HEADER)
    if allow_query:
        token = token or connection.query_params.get(INTERNAL_TOKEN_QUERY_PARAM)
        user_id = user_id or connection.query_params.get(USER_ID_QUERY_PARAM)
    return token, user_id


def resolve_gateway_user_id(
    connection: HTTPConnection,
    *,
    expected_token: str,
    allow_query: bool = False,
) -> int | None:
    token, raw_user_id = read_gateway_credentials(connection, allow_query=allow_query)
    if not is_valid_internal_token(expected_token=expected_token, received_token=token):
        return None
    return parse_forwarded_user_id(raw_user_id)
