#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone

from sqlalchemy import select

from carepoints.audit import log_audit
from carepoints.db import SessionLocal
from carepoints.models import AuditActorType, User, UserRole
from carepoints.security import Actor, hash_password
from carepoints.services.catalog import seed_default_categories


def ensure_admin_user(db, username: str, password: str) -> tuple[User, bool]:  # type: ignore[no-untyped-def]
    existing = db.scalar(select(User).where(User.username == username))
    if existing is not None:
        return existing, False

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name="System Administrator",
        role=UserRole.ADMIN,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def run() -> dict:
    username = (os.environ.get("SEED_ADMIN_USERNAME") or "admin").strip()
    password = os.environ.get("SEED_ADMIN_PASSWORD") or ""
    if len(password) < 8:
        raise RuntimeError("SEED_ADMIN_PASSWORD must be set to at least 8 characters.")

    with SessionLocal() as db:
        admin, admin_created = ensure_admin_user(db, username, password)
        actor = Actor(user_id=admin.id, username=admin.username, role=admin.role, full_name=admin.full_name)
        created = seed_default_categories(db, actor=actor)
        if admin_created:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id="seed",
                action="USER_CREATED",
                success=True,
                entity_type="user",
                entity_id=str(admin.id),
                details={"username": admin.username, "role": admin.role.value},
            )
        if created:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id="seed",
                action="VIOLATION_CATEGORY_SEEDED",
                success=True,
                entity_type="violation_category",
                entity_id="*",
                details={"created": created},
            )

    return {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "admin_username": username,
        "admin_created": admin_created,
        "categories_created": created,
    }


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
