"""Tests for profile and admin user management."""

import uuid
from datetime import datetime, timezone

import asyncpg
import pytest

from errors import ValidationError
from users import EmailInUseError, UserManager, UserNotFoundError, format_user

USER_ID = uuid.uuid4()


def user_row(**overrides):
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    row = {
        'id': USER_ID,
        'firebase_uid': 'uid-1',
        'email': 'ada@example.com',
        'name': 'Ada',
        'role': 'user',
        'profile_picture': '/uploads/old.png',
        'phone': None,
        'street': 'Main St 1',
        'city': 'Oslo',
        'state': None,
        'zip_code': '0150',
        'country': 'Norway',
        'created_at': now,
        'updated_at': now
    }
    row.update(overrides)
    return row


class FakeImages:

    def __init__(self):
        self.deleted = []

    async def save(self, upload):
        return f'/uploads/{upload}'

    async def delete(self, ref):
        self.deleted.append(ref)


def test_format_user_nests_address():
    user = format_user(user_row())
    assert user['address'] == {
        'street': 'Main St 1',
        'city': 'Oslo',
        'state': '',
        'zipCode': '0150',
        'country': 'Norway'
    }
    assert user['phone'] == ''
    assert user['firebaseUid'] == 'uid-1'


@pytest.mark.asyncio
async def test_update_profile_maps_address_fields(pool, conn):
    conn.fetchval.return_value = ''
    conn.fetchrow.return_value = user_row(city='Bergen')

    await UserManager(pool, images=FakeImages()).update_profile(
        USER_ID, name=' Ada L ', address={'city': 'Bergen', 'zipCode': '5003'}
    )

    sql, user_id, *values = conn.fetchrow.call_args.args
    assert sql.startswith('UPDATE users SET name = $2, city = $3, zip_code = $4')
    assert values == ['Ada L', 'Bergen', '5003']


@pytest.mark.asyncio
async def test_new_profile_picture_replaces_old_file(pool, conn):
    images = FakeImages()
    conn.fetchval.return_value = '/uploads/old.png'
    conn.fetchrow.return_value = user_row(profile_picture='/uploads/new.png')

    user = await UserManager(pool, images=images).update_profile(USER_ID, profile_picture='new.png')

    assert user['profilePicture'] == '/uploads/new.png'
    assert images.deleted == ['/uploads/old.png']


@pytest.mark.asyncio
async def test_update_profile_of_missing_user(pool, conn):
    conn.fetchval.return_value = None
    with pytest.raises(UserNotFoundError):
        await UserManager(pool, images=FakeImages()).update_profile(USER_ID, name='Ada')


@pytest.mark.asyncio
async def test_update_profile_rejects_blank_name(pool, conn):
    with pytest.raises(ValidationError) as exc:
        await UserManager(pool, images=FakeImages()).update_profile(USER_ID, name='   ')
    assert exc.value.message == "Name cannot be empty"


@pytest.mark.asyncio
async def test_admin_sets_role(pool, conn):
    conn.fetchrow.return_value = user_row(role='admin')
    user = await UserManager(pool, images=FakeImages()).update_user(str(USER_ID), role='admin')
    assert user['role'] == 'admin'


@pytest.mark.asyncio
async def test_admin_rejects_unknown_role(pool, conn):
    with pytest.raises(ValidationError) as exc:
        await UserManager(pool, images=FakeImages()).update_user(str(USER_ID), role='owner')
    assert exc.value.message == "Invalid role"


@pytest.mark.asyncio
async def test_email_taken_by_another_user(pool, conn):
    conn.fetchrow.side_effect = asyncpg.UniqueViolationError('users_email_key')
    with pytest.raises(EmailInUseError):
        await UserManager(pool, images=FakeImages()).update_user(str(USER_ID), email='grace@example.com')


@pytest.mark.asyncio
async def test_delete_missing_user(pool, conn):
    conn.fetchval.return_value = None
    with pytest.raises(UserNotFoundError):
        await UserManager(pool, images=FakeImages()).delete_user(str(USER_ID))
