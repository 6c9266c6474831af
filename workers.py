# workers.py — MallSurvey Collect
# Field worker / admin registry used to join submissions to a name and mall

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from db import get_conn
from errors import StoreError


log = logging.getLogger(__name__)

ROLES = ("admin", "worker")


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def create_worker(
    name: str,
    email: str,
    mall_name: str = "",
    role: str = "worker",
    worker_id: Optional[str] = None,
) -> Dict[str, Any]:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name or not email:
        raise ValueError("Name and email are required.")
    role = (role or "worker").strip().lower()
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    wid = (worker_id or "").strip() or uuid.uuid4().hex
    row = {
        "id": wid,
        "email": email,
        "name": name,
        "role": role,
        "mall_name": (mall_name or "").strip(),
        "created_at": _now(),
    }
    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, name, role, mall_name, created_at)
                VALUES (:id, :email, :name, :role, :mall_name, :created_at)
                """,
                row,
            )
            conn.commit()
    except sqlite3.IntegrityError as e:
        raise ValueError("A user with this email or id already exists.") from e
    except sqlite3.Error as e:
        log.exception("Failed to create user")
        raise StoreError("Failed to create user") from e
    log.info("Created %s %s", role, wid)
    return row


def get_worker(worker_id: str) -> Optional[Dict[str, Any]]:
    if not worker_id:
        return None
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, email, name, role, mall_name, created_at
            FROM users
            WHERE id=?
            LIMIT 1
            """,
            (str(worker_id),),
        )
        row = cur.fetchone()
    return dict(row) if row else None


def list_workers(role: Optional[str] = "worker", limit: int = 500) -> List[Dict[str, Any]]:
    where = ""
    params: List[Any] = []
    if role:
        where = "WHERE role=?"
        params.append(role)
    params.append(int(limit))
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT id, email, name, role, mall_name, created_at
            FROM users
            {where}
            ORDER BY created_at DESC, name ASC
            LIMIT ?
            """,
            tuple(params),
        )
        return [dict(r) for r in cur.fetchall()]
