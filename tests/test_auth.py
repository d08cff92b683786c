"""Tests for token verification and first-seen user creation."""

import base64
import json
import time
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import asyncpg
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from auth import (
    FirebaseTokenVerifier, IdentityManager, InvalidTokenError, SharedSecretVerifier,
    TokenVerificationError, bearer_token, display_name
)
from errors import ConflictError, UnauthenticatedError

SECRET = 'test-secret'
PROJECT_ID = 'market-test'
CERTS_URL = 'https://certs.example/keys'


def user_row(**overrides):
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    row = {
        'id': uuid.uuid4(),
        'firebase_uid': 'uid-1',
        'email': 'ada@example.com',
        'name': 'Ada',
        'role': 'user',
        'profile_picture': '',
        'phone': '',
        'street': '',
        'city': '',
        'state': '',
        'zip_code': '',
        'country': '',
        'created_at': now,
        'updated_at': now
    }
    row.update(overrides)
    return row


def unsigned_token(header, claims):
    """Token with the given header and claims and a junk signature."""
    def encode(part):
        raw = json.dumps(part).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b'=').decode()
    return f"{encode(header)}.{encode(claims)}.c2ln"


@pytest.fixture(scope='module')
def rsa_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption()
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    return private_pem, public_pem


def certs_session(certs, cache_control='public, max-age=600'):
    response = MagicMock()
    response.json.return_value = certs
    response.headers = {'Cache-Control': cache_control}
    session = MagicMock()
    session.get.return_value = response
    return session


def firebase_token(private_pem, kid='key-1', **overrides):
    now = int(time.time())
    claims = {
        'iss': f'https://securetoken.google.com/{PROJECT_ID}',
        'aud': PROJECT_ID,
        'sub': 'uid-1',
        'user_id': 'uid-1',
        'email': 'ada@example.com',
        'iat': now,
        'exp': now + 3600
    }
    claims.update(overrides)
    return jwt.encode(claims, private_pem, algorithm='RS256', headers={'kid': kid})


def test_shared_secret_round_trip():
    verifier = SharedSecretVerifier(SECRET)
    claims = verifier.verify(verifier.issue('uid-1', 'ada@example.com', name='Ada'))

    assert claims['uid'] == 'uid-1'
    assert claims['email'] == 'ada@example.com'
    assert claims['name'] == 'Ada'


def test_shared_secret_rejects_expired_token():
    verifier = SharedSecretVerifier(SECRET)
    with pytest.raises(TokenVerificationError):
        verifier.verify(verifier.issue('uid-1', 'ada@example.com', expires_in=-10))


def test_shared_secret_rejects_other_secret():
    token = SharedSecretVerifier('other').issue('uid-1', 'ada@example.com')
    with pytest.raises(TokenVerificationError):
        SharedSecretVerifier(SECRET).verify(token)


def test_token_without_email_is_rejected():
    token = jwt.encode({'sub': 'uid-1', 'exp': int(time.time()) + 60}, SECRET, algorithm='HS256')
    with pytest.raises(TokenVerificationError):
        SharedSecretVerifier(SECRET).verify(token)


def test_shared_secret_requires_secret():
    with pytest.raises(ValueError):
        SharedSecretVerifier('')


def test_firebase_token_verified_and_certs_cached(rsa_key):
    """Test a valid token passes and certificates are fetched once."""
    private_pem, public_pem = rsa_key
    session = certs_session({'key-1': public_pem})
    verifier = FirebaseTokenVerifier(PROJECT_ID, CERTS_URL, session=session)

    claims = verifier.verify(firebase_token(private_pem))
    verifier.verify(firebase_token(private_pem))

    assert claims['uid'] == 'uid-1'
    session.get.assert_called_once_with(CERTS_URL, timeout=10)


def test_firebase_token_for_other_project(rsa_key):
    private_pem, public_pem = rsa_key
    verifier = FirebaseTokenVerifier(PROJECT_ID, CERTS_URL, session=certs_session({'key-1': public_pem}))
    with pytest.raises(TokenVerificationError):
        verifier.verify(firebase_token(private_pem, aud='someone-else'))


def test_firebase_unknown_key(rsa_key):
    private_pem, public_pem = rsa_key
    verifier = FirebaseTokenVerifier(PROJECT_ID, CERTS_URL, session=certs_session({'key-1': public_pem}))
    with pytest.raises(TokenVerificationError) as exc:
        verifier.verify(firebase_token(private_pem, kid='rotated'))
    assert 'unknown key' in str(exc.value)


def test_firebase_rejects_symmetric_algorithm():
    session = certs_session({})
    verifier = FirebaseTokenVerifier(PROJECT_ID, CERTS_URL, session=session)
    token = unsigned_token({'alg': 'HS256', 'kid': 'key-1'}, {'sub': 'uid-1'})

    with pytest.raises(TokenVerificationError):
        verifier.verify(token)
    session.get.assert_not_called()


def test_firebase_rejects_garbage():
    verifier = FirebaseTokenVerifier(PROJECT_ID, CERTS_URL, session=certs_session({}))
    with pytest.raises(TokenVerificationError):
        verifier.verify('not-a-token')


@pytest.mark.parametrize("header,message", [
    (None, "No authorization token provided"),
    ('', "No authorization token provided"),
    ('Basic abc', "Invalid token format"),
    ('Bearer', "Invalid token format"),
])
def test_bearer_token_without_credentials(header, message):
    with pytest.raises(UnauthenticatedError) as exc:
        bearer_token(None, header)
    assert exc.value.message == message
    assert exc.value.status_code == 401


def test_bearer_token_with_blank_credentials():
    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials='   ')
    with pytest.raises(UnauthenticatedError) as exc:
        bearer_token(credentials, 'Bearer    ')
    assert exc.value.message == "Invalid token format"


def test_bearer_token():
    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials='abc.def.ghi')
    assert bearer_token(credentials, 'Bearer abc.def.ghi') == 'abc.def.ghi'


def test_display_name():
    assert display_name({'name': ' Ada L ', 'email': 'ada@example.com'}) == 'Ada L'
    assert display_name({'email': 'grace@example.com'}) == 'grace'


@pytest.mark.asyncio
async def test_existing_user_is_returned(pool, conn):
    row = user_row()
    conn.fetchrow.return_value = row

    user = await IdentityManager(pool).get_or_create_user({'uid': 'uid-1', 'email': 'ada@example.com'})

    assert user['id'] == str(row['id'])
    assert conn.fetchrow.call_count == 1


@pytest.mark.asyncio
async def test_first_seen_user_is_created(pool, conn):
    """Test a new subject gets a row named after the email local-part."""
    conn.fetchrow.side_effect = [None, user_row(name='ada', email='ada@example.com')]

    user = await IdentityManager(pool).get_or_create_user(
        {'uid': 'uid-1', 'email': 'Ada@Example.com'}
    )

    insert_sql, uid, email, name, picture = conn.fetchrow.call_args.args
    assert 'ON CONFLICT (firebase_uid) DO NOTHING' in insert_sql
    assert (uid, email, name, picture) == ('uid-1', 'ada@example.com', 'Ada', '')
    assert user['role'] == 'user'


@pytest.mark.asyncio
async def test_concurrent_first_request_reuses_row(pool, conn):
    """Test losing the insert race reads back the winner's row."""
    row = user_row()
    conn.fetchrow.side_effect = [None, None, row]

    user = await IdentityManager(pool).get_or_create_user({'uid': 'uid-1', 'email': 'ada@example.com'})

    assert user['id'] == str(row['id'])
    assert conn.fetchrow.call_count == 3


@pytest.mark.asyncio
async def test_email_owned_by_other_account(pool, conn):
    conn.fetchrow.side_effect = [None, asyncpg.UniqueViolationError('users_email_key')]
    with pytest.raises(ConflictError) as exc:
        await IdentityManager(pool).get_or_create_user({'uid': 'uid-2', 'email': 'ada@example.com'})
    assert exc.value.message == "Email is already registered to another account"


@pytest.mark.asyncio
async def test_authenticate_with_bad_token(pool, conn):
    manager = IdentityManager(pool, verifier=SharedSecretVerifier(SECRET))
    with pytest.raises(InvalidTokenError) as exc:
        await manager.authenticate('garbage')
    assert exc.value.status_code == 401
    conn.fetchrow.assert_not_called()


@pytest.mark.asyncio
async def test_authenticate_resolves_user(pool, conn):
    verifier = SharedSecretVerifier(SECRET)
    conn.fetchrow.return_value = user_row()

    claims, user = await IdentityManager(pool, verifier=verifier).authenticate(
        verifier.issue('uid-1', 'ada@example.com')
    )

    assert claims['uid'] == 'uid-1'
    assert user['email'] == 'ada@example.com'
