"""Category helpers and service operations.

This module centralizes small, server-side validated operations for the
``categories`` reference table: name validation, idempotent creation, and
the fallback ("default") category that imports and rule clears use when no
rule assigns a category.

Exports
-------
- ``create_category(...)``: idempotent creation with case-insensitive
  conflict detection. Returns the created/existing row and a ``created`` flag.
- ``ensure_default_category(...)``: fetch-or-create the fallback category.
- ``normalize_name(...)`` and ``validate_name(...)``: helpers shared by the
  CLI to give early feedback before hitting the database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.budget import Category

from .config import DEFAULT_CATEGORY_NAME
from .logging_setup import get_logger

logger = get_logger("budget_pipeline.categories")

SECTIONS = ("EXPENSES", "RECURRING", "SAVINGS", "DEBT")

# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &'\-/]+$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validate a category name.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters, numbers, spaces, and ``& ' - /``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & ' - / are allowed")
    return NameValidation(True, None)


# ---------------------------
# Service operations
# ---------------------------


@dataclass(frozen=True, slots=True)
class CreateCategoryResult:
    category: Category
    created: bool


def find_category_by_name(session: Session, name: str) -> Category | None:
    """Case-insensitive lookup among categories that are not archived."""

    return (
        session.execute(
            select(Category)
            .where(
                func.lower(Category.name) == normalize_name(name).lower(),
                Category.archived_at.is_(None),
            )
            .order_by(Category.created_at, Category.id)
        )
        .scalars()
        .first()
    )


def create_category(
    session: Session,
    *,
    name: str,
    section: str = "EXPENSES",
    emoji: str | None = None,
    sort_order: int | None = None,
) -> CreateCategoryResult:
    """Create a category unless one with the same name exists.

    Parameters
    ----------
    session:
        SQLAlchemy session to use (callers own the transaction scope).
    name:
        Display name; validated with :func:`validate_name`.
    section:
        One of ``EXPENSES``, ``RECURRING``, ``SAVINGS``, ``DEBT``.
    sort_order:
        Optional sort hint; defaults to after every existing category in the
        section.

    Idempotency
    -----------
    Case-insensitive duplicates of ``name`` return the existing row with
    ``created=False``.
    """

    name_n = normalize_name(name)
    v = validate_name(name_n)
    if not v.ok:
        raise ValueError(f"Invalid category name: {v.reason or 'invalid_name'}")
    section_n = section.strip().upper()
    if section_n not in SECTIONS:
        raise ValueError(f"Invalid category section: {section!r}")

    existing = find_category_by_name(session, name_n)
    if existing is not None:
        return CreateCategoryResult(existing, False)

    if sort_order is None:
        current_max = session.execute(
            select(func.max(Category.sort_order)).where(Category.section == section_n)
        ).scalar_one_or_none()
        sort_order = (current_max or 0) + 1

    row = Category(name=name_n, section=section_n, emoji=emoji, sort_order=sort_order)
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:  # pragma: no cover - depends on DB uniqueness under races
        existing = find_category_by_name(session, name_n)
        if existing is None:
            raise
        return CreateCategoryResult(existing, False)

    logger.info("Created category %r (%s)", name_n, section_n)
    return CreateCategoryResult(row, True)


def ensure_default_category(session: Session, name: str = DEFAULT_CATEGORY_NAME) -> Category:
    """Return the fallback category, creating it under ``EXPENSES`` if needed."""

    return create_category(session, name=name, section="EXPENSES").category


def list_categories(session: Session, *, include_archived: bool = False) -> list[Category]:
    """Categories ordered by section, sort order, then name."""

    stmt = select(Category)
    if not include_archived:
        stmt = stmt.where(Category.archived_at.is_(None))
    stmt = stmt.order_by(Category.section, Category.sort_order, Category.name)
    return list(session.execute(stmt).scalars())


__all__ = [
    "CreateCategoryResult",
    "NameValidation",
    "SECTIONS",
    "create_category",
    "ensure_default_category",
    "find_category_by_name",
    "list_categories",
    "normalize_name",
    "validate_name",
]
