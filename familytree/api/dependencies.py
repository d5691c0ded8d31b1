"""Request-scoped dependencies: a per-request DB connection and the caller."""

from __future__ import annotations

import sqlite3
from typing import Iterator, Optional

from fastapi import Depends, Header, Request

from familytree.db.connection import get_connection
from familytree.db.members import get_user_by_external_id
from familytree.db.models import User
from familytree.errors import AuthenticationMissing


def get_db(request: Request) -> Iterator[sqlite3.Connection]:
    """Open a connection for one request and close it afterwards.

    Readers never share a connection with another request's open sync batch,
    so they only see committed data.
    """
    conn = get_connection(request.app.state.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_caller(
    authorization: Optional[str] = Header(default=None),
    conn: sqlite3.Connection = Depends(get_db),
) -> User:
    """Resolve ``Authorization: Bearer <external id>`` to an internal user.

    Token verification belongs to the auth provider in front of this service;
    by the time a request arrives here the bearer value is the provider's
    subject identifier.
    """
    if not authorization:
        raise AuthenticationMissing()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationMissing()

    user = get_user_by_external_id(conn, token.strip())
    if user is None:
        raise AuthenticationMissing("User not found")
    return user
