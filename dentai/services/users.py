import uuid
from datetime import datetime, timezone

import bcrypt

from dentai.schemas.user import CurrentUser, User, UserRole
from dentai.store import USERS, RecordStore
from dentai.utils.exceptions import AppException, NotFoundError
from dentai.utils.locks import KeyedLocks

# one registration or profile change per email at a time
_email_locks = KeyedLocks()


def _hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


async def _by_email(store: RecordStore, email: str) -> User | None:
    return next(
        (User.model_validate(r) for r in await store.get(USERS) if r["email"] == email),
        None,
    )


async def authenticate(store: RecordStore, email: str, password: str) -> User:
    user = await _by_email(store, email)
    if user is None or not bcrypt.checkpw(password.encode(), user.password_hash.encode()):
        raise AppException("Invalid credentials", status_code=400)

    user = user.model_copy(update={"last_login_at": datetime.now(timezone.utc)})
    await store.put(USERS, [user.model_dump(mode="json")])
    return user


async def register(store: RecordStore, name: str, email: str, password: str) -> User:
    """Self-registration always creates a patient; doctors are provisioned."""
    email = email.strip().lower()
    async with _email_locks.hold(email):
        if await _by_email(store, email) is not None:
            raise AppException("Email already registered", status_code=409)

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            role=UserRole.PATIENT,
            name=name.strip(),
            email=email,
            password_hash=_hash(password),
            registered_at=now,
            last_login_at=now,
        )
        await store.put(USERS, [user.model_dump(mode="json")])
    return user


async def update_profile(
    store: RecordStore,
    user_id: str,
    name: str | None = None,
    email: str | None = None,
) -> User:
    record = await store.find(USERS, user_id)
    if record is None:
        raise NotFoundError("User", user_id)
    user = User.model_validate(record)

    updates = {}
    if name is not None:
        updates["name"] = name.strip()
    if email is None or email.strip().lower() == user.email:
        if updates:
            user = user.model_copy(update=updates)
            await store.put(USERS, [user.model_dump(mode="json")])
        return user

    email = email.strip().lower()
    async with _email_locks.hold(email):
        if await _by_email(store, email) is not None:
            raise AppException("Email already registered", status_code=409)
        user = user.model_copy(update={**updates, "email": email})
        await store.put(USERS, [user.model_dump(mode="json")])
    return user


async def resolve_user(store: RecordStore, user_id: str) -> CurrentUser:
    record = await store.find(USERS, user_id) if user_id else None
    if record is None:
        raise AppException("Unknown or missing user", status_code=401)
    user = User.model_validate(record)
    return CurrentUser(id=user.id, name=user.name, role=user.role)
