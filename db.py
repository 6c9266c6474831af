# db.py — MallSurvey Collect
# SQLite connection + idempotent schema init (users, surveys, questions, submissions)

import os
import sqlite3
from typing import List

import config


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=? LIMIT 1",
        (table,),
    )
    return cur.fetchone() is not None


def _cols(conn: sqlite3.Connection, table: str) -> List[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return [r["name"] for r in cur.fetchall()]


def _add_column_if_missing(conn: sqlite3.Connection, table: str, col_def_sql: str) -> None:
    """
    col_def_sql example: "schema_version INTEGER NOT NULL DEFAULT 1"
    """
    col_name = col_def_sql.strip().split()[0]
    existing = _cols(conn, table)
    if col_name in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def_sql}")


def init_db() -> None:
    """
    Safe init:
    - Creates tables if missing
    - Adds new columns if missing
    - Adds indexes
    """
    db_dir = os.path.dirname(config.DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    with get_conn() as conn:
        cur = conn.cursor()

        if not _table_exists(conn, "users"):
            cur.execute(
                """
                CREATE TABLE users (
                  id TEXT PRIMARY KEY,
                  email TEXT NOT NULL UNIQUE,
                  name TEXT NOT NULL,
                  role TEXT NOT NULL DEFAULT 'worker',
                  mall_name TEXT,
                  created_at TEXT
                )
                """
            )

        if not _table_exists(conn, "surveys"):
            cur.execute(
                """
                CREATE TABLE surveys (
                  id TEXT PRIMARY KEY,
                  title TEXT NOT NULL,
                  is_active INTEGER NOT NULL DEFAULT 0,
                  schema_version INTEGER NOT NULL DEFAULT 1,
                  created_at TEXT,
                  updated_at TEXT
                )
                """
            )
        else:
            _add_column_if_missing(conn, "surveys", "schema_version INTEGER NOT NULL DEFAULT 1")
            _add_column_if_missing(conn, "surveys", "updated_at TEXT")

        if not _table_exists(conn, "survey_questions"):
            cur.execute(
                """
                CREATE TABLE survey_questions (
                  id TEXT PRIMARY KEY,
                  survey_id TEXT NOT NULL,
                  question TEXT NOT NULL,
                  type TEXT NOT NULL DEFAULT 'text',
                  options TEXT,
                  required INTEGER NOT NULL DEFAULT 0,
                  order_index INTEGER NOT NULL,
                  created_at TEXT,
                  FOREIGN KEY(survey_id) REFERENCES surveys(id) ON DELETE CASCADE,
                  UNIQUE(survey_id, order_index)
                )
                """
            )

        # answers holds a JSON object {question_id: "text" | ["a", "b"]}.
        # No FK from answer keys to survey_questions: ids there are replaced on edit.
        if not _table_exists(conn, "submissions"):
            cur.execute(
                """
                CREATE TABLE submissions (
                  id TEXT PRIMARY KEY,
                  survey_id TEXT NOT NULL,
                  worker_id TEXT NOT NULL,
                  customer_name TEXT NOT NULL,
                  customer_phone TEXT NOT NULL,
                  cnic TEXT,
                  invoice_number TEXT NOT NULL UNIQUE,
                  invoice_image_url TEXT NOT NULL,
                  customer_image_url TEXT,
                  answers TEXT NOT NULL DEFAULT '{}',
                  schema_version INTEGER NOT NULL DEFAULT 1,
                  created_at TEXT,
                  FOREIGN KEY(survey_id) REFERENCES surveys(id),
                  FOREIGN KEY(worker_id) REFERENCES users(id)
                )
                """
            )
        else:
            _add_column_if_missing(conn, "submissions", "cnic TEXT")
            _add_column_if_missing(conn, "submissions", "schema_version INTEGER NOT NULL DEFAULT 1")

        cur.execute("CREATE INDEX IF NOT EXISTS idx_questions_survey ON survey_questions(survey_id, order_index)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_submissions_survey ON submissions(survey_id, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_submissions_worker ON submissions(worker_id, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_submissions_created ON submissions(created_at)")

        conn.commit()
