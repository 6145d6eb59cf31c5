"""Postgres schema management for LearnNow.

Schema creation is idempotent (CREATE IF NOT EXISTS) so every entrypoint can
call it on startup.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS students (
      id BIGSERIAL PRIMARY KEY,
      name TEXT NOT NULL,
      email TEXT NOT NULL,
      phone TEXT,
      classes JSONB,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS tutors (
      id BIGSERIAL PRIMARY KEY,
      name TEXT NOT NULL,
      email TEXT NOT NULL,
      phone TEXT,
      classes JSONB,
      rating DOUBLE PRECISION,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS schools (
      id BIGSERIAL PRIMARY KEY,
      name TEXT NOT NULL,
      address TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    # Classes accept either the catalog term or the manual semester + year pair.
    """
    CREATE TABLE IF NOT EXISTS classes (
      id BIGSERIAL PRIMARY KEY,
      name TEXT NOT NULL,
      description TEXT,
      number TEXT NOT NULL,
      section TEXT NOT NULL,
      term TEXT,
      semester TEXT,
      year INTEGER,
      instructor TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      CONSTRAINT classes_term_present CHECK (term IS NOT NULL OR (semester IS NOT NULL AND year IS NOT NULL))
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_students_email ON students (email);",
    "CREATE INDEX IF NOT EXISTS idx_tutors_email ON tutors (email);",
    # Not unique: catalog re-runs append duplicate sections.
    "CREATE INDEX IF NOT EXISTS idx_classes_number_section ON classes (number, section);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
