from decimal import Decimal

import pytest

from sweetshop import crud, models, schemas
from sweetshop.errors import Conflict, InvalidQuantity, NotFound, OutOfStock, Unauthenticated, ValidationError
from sweetshop.models import MAX_STOCK, Role


def make_sweet(db, **fields):
    data = {"name": "Ladoo", "price": Decimal("20"), "stock": 5}
    data.update(fields)
    return crud.create_sweet(db, schemas.SweetCreate(**data))


# -------------------- Credential store --------------------

def test_create_account_defaults_to_customer(db_session, hasher):
    account = crud.create_account(db_session, "Bob@Example.com ", hasher.hash("pw"))
    assert account.id
    assert account.email == "bob@example.com"
    assert account.role is Role.CUSTOMER
    assert crud.get_account(db_session, account.id).email == "bob@example.com"
    assert crud.get_account_by_email(db_session, "BOB@example.COM").id == account.id


def test_duplicate_email_conflicts(db_session, hasher):
    crud.create_account(db_session, "dup@example.com", hasher.hash("pw"))
    with pytest.raises(Conflict):
        crud.create_account(db_session, "DUP@example.com", hasher.hash("other"))
    # the first registration is untouched
    account = crud.get_account_by_email(db_session, "dup@example.com")
    assert crud.authenticate(db_session, hasher, "dup@example.com", "pw").id == account.id


def test_register_account_hashes_password(db_session, hasher):
    payload = schemas.RegisterRequest(email="alice@example.com", password="secret1", role="admin")
    account = crud.register_account(db_session, hasher, payload)
    assert account.role is Role.ADMIN
    assert account.password_hash != "secret1"
    assert hasher.verify("secret1", account.password_hash)


def test_register_maps_user_role_alias():
    payload = schemas.RegisterRequest(email="new@user.com", password="password123", role="user")
    assert payload.role is Role.CUSTOMER


def test_lookup_missing_account(db_session):
    assert crud.get_account(db_session, "nope") is None
    assert crud.get_account_by_email(db_session, "nobody@example.com") is None


def test_authenticate_failures_are_indistinguishable(db_session, hasher):
    crud.create_account(db_session, "carol@example.com", hasher.hash("right"))
    with pytest.raises(Unauthenticated) as unknown:
        crud.authenticate(db_session, hasher, "nobody@example.com", "right")
    with pytest.raises(Unauthenticated) as wrong:
        crud.authenticate(db_session, hasher, "carol@example.com", "wrong")
    assert unknown.value.detail == wrong.value.detail == crud.INVALID_CREDENTIALS


# -------------------- Inventory store --------------------

def test_create_sweet_defaults_stock_to_zero(db_session):
    sweet = crud.create_sweet(db_session, schemas.SweetCreate(name="Barfi", price=Decimal("15.5")))
    assert sweet.stock == 0
    assert sweet.price == Decimal("15.50")


def test_create_sweet_validation():
    with pytest.raises(ValueError):
        schemas.SweetCreate(name="   ", price=Decimal("1"))
    with pytest.raises(ValueError):
        schemas.SweetCreate(name="Jalebi", price=Decimal("-1"))
    with pytest.raises(ValueError):
        schemas.SweetCreate(name="Jalebi", price=Decimal("1"), stock=-3)
    with pytest.raises(ValueError):
        schemas.SweetCreate(name="Jalebi")


def test_purchase_within_stock(db_session):
    sweet = make_sweet(db_session, stock=5)
    updated = crud.purchase_sweet(db_session, sweet.id, 2)
    assert updated.stock == 3
    assert crud.purchase_sweet(db_session, sweet.id).stock == 2


def test_purchase_entire_stock(db_session):
    sweet = make_sweet(db_session, stock=4)
    assert crud.purchase_sweet(db_session, sweet.id, 4).stock == 0


def test_purchase_over_stock_leaves_stock_unchanged(db_session):
    sweet = make_sweet(db_session, stock=3)
    for _ in range(3):
        with pytest.raises(OutOfStock):
            crud.purchase_sweet(db_session, sweet.id, 4)
    assert crud.get_sweet(db_session, sweet.id).stock == 3


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
def test_purchase_rejects_invalid_quantity(db_session, quantity):
    sweet = make_sweet(db_session, stock=3)
    with pytest.raises(InvalidQuantity):
        crud.purchase_sweet(db_session, sweet.id, quantity)
    assert crud.get_sweet(db_session, sweet.id).stock == 3


def test_purchase_missing_sweet(db_session):
    with pytest.raises(NotFound):
        crud.purchase_sweet(db_session, "missing", 1)


def test_restock_adds_units(db_session):
    sweet = make_sweet(db_session, stock=1)
    assert crud.restock_sweet(db_session, sweet.id, 9).stock == 10
    with pytest.raises(InvalidQuantity):
        crud.restock_sweet(db_session, sweet.id, 0)
    with pytest.raises(NotFound):
        crud.restock_sweet(db_session, "missing", 1)


def test_partial_update_only_touches_supplied_fields(db_session):
    sweet = make_sweet(db_session, category="Bengali", description="Round")
    updated = crud.update_sweet(db_session, sweet.id, schemas.SweetUpdate(price=Decimal("25.555")))
    assert updated.price == Decimal("25.56")
    assert updated.name == "Ladoo"
    assert updated.category == "Bengali"
    assert updated.description == "Round"
    assert updated.stock == 5


def test_update_rejects_clearing_required_fields():
    with pytest.raises(ValueError):
        schemas.SweetUpdate(name=None)
    with pytest.raises(ValueError):
        schemas.SweetUpdate(price=Decimal("-0.01"))
    assert schemas.SweetUpdate(category=None).changes() == {"category": None}


def test_update_missing_sweet(db_session):
    with pytest.raises(NotFound):
        crud.update_sweet(db_session, "missing", schemas.SweetUpdate(name="X"))


def test_delete_sweet(db_session):
    sweet = make_sweet(db_session)
    crud.delete_sweet(db_session, sweet.id)
    with pytest.raises(NotFound):
        crud.get_sweet(db_session, sweet.id)
    with pytest.raises(NotFound):
        crud.delete_sweet(db_session, sweet.id)


def test_search_filters(db_session):
    make_sweet(db_session, name="Gulab Jamun", category="Bengali", price=Decimal("50"))
    make_sweet(db_session, name="Rasgulla", category="Bengali", price=Decimal("40"))
    make_sweet(db_session, name="Kaju Katli", category="Dry Fruit", price=Decimal("120"))

    assert [s.name for s in crud.search_sweets(db_session, name="gulab")] == ["Gulab Jamun"]
    assert {s.name for s in crud.search_sweets(db_session, category="BENG")} == {"Gulab Jamun", "Rasgulla"}
    assert {s.name for s in crud.search_sweets(db_session, min_price=Decimal("40"), max_price=Decimal("50"))} == {
        "Gulab Jamun",
        "Rasgulla",
    }
    assert [s.name for s in crud.search_sweets(db_session, name="ul", max_price=Decimal("45"))] == ["Rasgulla"]
    assert len(crud.search_sweets(db_session)) == 3


def test_search_treats_wildcards_literally(db_session):
    make_sweet(db_session, name="Peda")
    assert crud.search_sweets(db_session, name="%") == []
    assert crud.search_sweets(db_session, name="_") == []


def test_search_rejects_inverted_price_range(db_session):
    with pytest.raises(ValidationError):
        crud.search_sweets(db_session, min_price=Decimal("10"), max_price=Decimal("5"))


def test_purchase_beyond_storable_stock_is_out_of_stock(db_session):
    sweet = make_sweet(db_session, stock=3)
    with pytest.raises(OutOfStock):
        crud.purchase_sweet(db_session, sweet.id, MAX_STOCK + 1)
    with pytest.raises(NotFound):
        crud.purchase_sweet(db_session, "missing", MAX_STOCK + 1)
    assert crud.get_sweet(db_session, sweet.id).stock == 3


def test_restock_cannot_overflow_stock(db_session):
    sweet = make_sweet(db_session, stock=MAX_STOCK - 2)
    with pytest.raises(ValidationError):
        crud.restock_sweet(db_session, sweet.id, 3)
    with pytest.raises(ValidationError):
        crud.restock_sweet(db_session, sweet.id, MAX_STOCK + 1)
    assert crud.get_sweet(db_session, sweet.id).stock == MAX_STOCK - 2
    assert crud.restock_sweet(db_session, sweet.id, 2).stock == MAX_STOCK
    with pytest.raises(NotFound):
        crud.restock_sweet(db_session, "missing", 1)


def test_stock_fields_are_bounded():
    with pytest.raises(ValueError):
        schemas.SweetCreate(name="Peda", price=Decimal("1"), stock=MAX_STOCK + 1)
    with pytest.raises(ValueError):
        schemas.SweetUpdate(stock=MAX_STOCK + 1)
    with pytest.raises(ValueError):
        schemas.RestockRequest(quantity=MAX_STOCK + 1)


def test_store_rejects_negative_stock(db_session):
    from sqlalchemy.exc import IntegrityError

    db_session.add(models.Sweet(name="Bad", price=Decimal("1"), stock=-1))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
