import uuid
from datetime import datetime, timezone

import bcrypt

from dentai.schemas.user import User, UserRole
from dentai.store import USERS, RecordStore


SEED_PATIENT_ID = str(uuid.uuid5(uuid.NAMESPACE_DNS, "user-patient-001"))
SEED_DOCTOR_ID = str(uuid.uuid5(uuid.NAMESPACE_DNS, "user-doctor-001"))
SEED_PASSWORD = "demo123"

SEED_USERS = [
    {"id": SEED_PATIENT_ID, "role": UserRole.PATIENT, "name": "Alex Patient", "email": "patient@demo.com"},
    {"id": SEED_DOCTOR_ID, "role": UserRole.DOCTOR, "name": "Dr. Lee", "email": "doctor@demo.com"},
]


async def seed_data(store: RecordStore) -> None:
    if await store.get(USERS):
        return

    password_hash = bcrypt.hashpw(SEED_PASSWORD.encode(), bcrypt.gensalt()).decode()
    now = datetime.now(timezone.utc)
    users = [
        User(**u, password_hash=password_hash, registered_at=now).model_dump(mode="json")
        for u in SEED_USERS
    ]
    await store.put(USERS, users)
