from __future__ import annotations

from datetime import date

import pytest
from db.models.budget import Merchant, MerchantAlias, Transaction
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from budget_pipeline.merchant_resolver import (
    reassign_unresolved_transactions,
    resolve_merchant,
    resolve_pending_merchant,
)
from tests.helpers.db import add_transaction, open_session


def _count(session: Session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_new_spelling_creates_merchant_and_alias(session: Session) -> None:
    res = resolve_merchant(session, "Newest Merchant LLC")
    session.commit()

    assert res is not None
    assert res.canonical_name == "Newest Merchant"
    assert res.normalized_key == "newestmerchant"
    alias = session.execute(select(MerchantAlias)).scalar_one()
    assert alias.merchant_id == res.merchant_id
    assert alias.raw_name == "Newest Merchant LLC"


def test_spellings_with_the_same_key_converge(session: Session) -> None:
    a = resolve_merchant(session, "STARBUCKS STORE 00012 SEATTLE WA")
    b = resolve_merchant(session, "Starbucks #98765")
    session.commit()

    assert a is not None and b is not None
    assert a.merchant_id == b.merchant_id
    assert _count(session, Merchant) == 1
    assert _count(session, MerchantAlias) == 1
    # Latest observed spelling is kept on the alias.
    assert session.execute(select(MerchantAlias.raw_name)).scalar_one() == "Starbucks #98765"


def test_canonical_name_override_and_yelp_id(session: Session) -> None:
    res = resolve_merchant(
        session, "BLUE BOTTLE 0042 OAKLAND CA", canonical_name="Blue Bottle Coffee", yelp_id="bb-1"
    )
    session.commit()

    assert res is not None and res.canonical_name == "Blue Bottle Coffee"
    merchant = session.get(Merchant, res.merchant_id)
    assert merchant is not None and merchant.yelp_id == "bb-1"


def test_unknown_key_without_create_returns_none(session: Session) -> None:
    assert resolve_merchant(session, "Brand New Place", create_if_missing=False) is None
    assert _count(session, Merchant) == 0


@pytest.mark.parametrize("raw", [None, "", "   ", "***"])
def test_blank_or_keyless_input_returns_none(session: Session, raw: str | None) -> None:
    assert resolve_merchant(session, raw) is None


def test_two_sessions_resolving_together_share_one_merchant(db_url: str) -> None:
    first = open_session(db_url)
    second = open_session(db_url)
    try:
        a = resolve_merchant(first, "Corner Bakery Cafe")
        first.commit()
        b = resolve_merchant(second, "CORNER BAKERY CAFE #12")
        second.commit()
    finally:
        first.close()
        second.close()

    assert a is not None and b is not None
    assert a.merchant_id == b.merchant_id


def test_reassign_unresolved_transactions(session: Session) -> None:
    unresolved = add_transaction(
        session,
        occurred_on=date(2024, 3, 1),
        amount="9.99",
        description="Some row",
        merchant="Newest Merchant",
        origin="IMPORT",
    )
    other = add_transaction(
        session,
        occurred_on=date(2024, 3, 2),
        amount="5.00",
        description="Other row",
        merchant="Somewhere Else",
        origin="IMPORT",
    )
    res = resolve_merchant(session, "Newest Merchant LLC")
    assert res is not None

    updated = reassign_unresolved_transactions(session, res)
    session.commit()

    assert updated == 1
    session.refresh(unresolved)
    session.refresh(other)
    assert unresolved.merchant_id == res.merchant_id
    assert unresolved.merchant == "Newest Merchant"
    assert other.merchant_id is None


def test_resolve_pending_merchant_attaches_transactions(session: Session) -> None:
    tx = add_transaction(
        session,
        occurred_on=date(2024, 3, 3),
        amount="12.00",
        description="SQ *TINY TACO SHOP",
        merchant="SQ *TINY TACO SHOP",
        origin="IMPORT",
    )
    session.commit()

    res = resolve_pending_merchant(
        session,
        normalized_key="sqtinytacoshop",
        canonical_name="Tiny Taco Shop",
        raw_name="SQ *TINY TACO SHOP",
    )
    session.commit()

    session.refresh(tx)
    assert tx.merchant_id == res.merchant_id
    assert tx.merchant == "Tiny Taco Shop"
    keys = set(session.execute(select(MerchantAlias.normalized_key)).scalars())
    assert "sqtinytacoshop" in keys
    # Later imports of the same spelling resolve straight to the merchant.
    again = resolve_merchant(session, "SQ *TINY TACO SHOP", create_if_missing=False)
    assert again is not None and again.merchant_id == res.merchant_id


def test_resolve_pending_merchant_requires_name(session: Session) -> None:
    with pytest.raises(ValueError):
        resolve_pending_merchant(session, normalized_key="x", canonical_name="   ")
    assert _count(session, Transaction) == 0
