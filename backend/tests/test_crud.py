import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Generator


from flowify import crud, schemas
from flowify.database import AssetStatus, Database


@pytest.fixture
def db() -> Generator[Session, None, None]:
    database = Database("sqlite://")
    database.create_tables()
    for session in database.session():
        yield session
    database.dispose()


def create_test_asset(db: Session, key: str = "abc.png"):
    owner = crud.ensure_user(db, "owner@example.com")
    return crud.create_asset(db, schemas.AssetCreateInternal(
        user_id=owner.id, original_filename="a.png", uploaded_path=key
    ))


def test_ensure_user_is_idempotent(db: Session):
    first = crud.ensure_user(db, "placeholder@flowify.local")
    second = crud.ensure_user(db, "placeholder@flowify.local")
    assert first.id == second.id
    assert first.password == ""

def test_create_user_duplicate_email(db: Session):
    crud.create_user(db, schemas.UserCreateInternal(email="x@example.com", password="p"))
    with pytest.raises(IntegrityError):
        crud.create_user(db, schemas.UserCreateInternal(email="x@example.com", password="q"))
    db.rollback()

def test_create_asset_defaults(db: Session):
    asset = create_test_asset(db)
    assert asset.id is not None
    assert asset.status == AssetStatus.UPLOADED.value
    assert asset.modified_path is None
    assert asset.prompt is None
    assert asset.owner.email == "owner@example.com"

def test_create_asset_duplicate_uploaded_path(db: Session):
    create_test_asset(db, key="same.png")
    with pytest.raises(IntegrityError):
        create_test_asset(db, key="same.png")
    db.rollback()

def test_status_transitions(db: Session):
    asset = create_test_asset(db)

    crud.mark_asset_processing(db, asset, "add a hat")
    assert asset.status == AssetStatus.PROCESSING.value
    assert asset.prompt == "add a hat"

    crud.mark_asset_completed(db, asset, "modified_1.png")
    assert asset.status == AssetStatus.COMPLETED.value
    assert asset.modified_path == "modified_1.png"

    crud.mark_asset_processing(db, asset, "now a scarf")
    crud.mark_asset_failed(db, asset)
    assert asset.status == AssetStatus.FAILED.value
    assert asset.prompt == "now a scarf"

def test_get_assets_pagination(db: Session):
    for i in range(5):
        create_test_asset(db, key=f"k{i}.png")
    assert len(crud.get_assets(db, limit=3)) == 3
    assert len(crud.get_assets(db, skip=3, limit=3)) == 2
    assert crud.get_asset(db, 999) is None
