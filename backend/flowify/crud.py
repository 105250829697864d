from sqlalchemy.orm import Session
from typing import Optional, List


from . import database as db_module
from . import schemas

# --- Users ---

def get_user(db: Session, user_id: int) -> Optional[db_module.User]:
    return db.query(db_module.User).filter(db_module.User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[db_module.User]:
    """
    Retrieves a user by email. The comparison is case-sensitive.
    """
    return db.query(db_module.User).filter(db_module.User.email == email).first()

def create_user(db: Session, user: schemas.UserCreateInternal) -> db_module.User:
    """
    Creates a new user. Raises sqlalchemy IntegrityError if the email is taken.
    """
    db_user = db_module.User(email=user.email, password=user.password)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def ensure_user(db: Session, email: str) -> db_module.User:
    """
    Returns the user with the given email, creating it with an empty password if absent.
    """
    db_user = get_user_by_email(db, email)
    if db_user is None:
        db_user = create_user(db, schemas.UserCreateInternal(email=email, password=""))
    return db_user

# --- Creative assets ---

def get_asset(db: Session, asset_id: int) -> Optional[db_module.CreativeAsset]:
    return db.query(db_module.CreativeAsset).filter(db_module.CreativeAsset.id == asset_id).first()

def get_assets(db: Session, skip: int = 0, limit: int = 100) -> List[db_module.CreativeAsset]:
    """
    Retrieves a list of assets, with pagination.
    Orders newest first.
    """
    return (
        db.query(db_module.CreativeAsset)
        .order_by(db_module.CreativeAsset.created_at.desc(), db_module.CreativeAsset.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def create_asset(db: Session, asset: schemas.AssetCreateInternal) -> db_module.CreativeAsset:
    """
    Inserts the metadata row for a freshly stored upload.
    Raises sqlalchemy IntegrityError if uploaded_path already exists.
    """
    db_asset = db_module.CreativeAsset(
        user_id=asset.user_id,
        original_filename=asset.original_filename,
        uploaded_path=asset.uploaded_path,
        status=db_module.AssetStatus.UPLOADED.value
    )
    db.add(db_asset)
    db.commit()
    db.refresh(db_asset)
    return db_asset

def mark_asset_processing(db: Session, db_asset: db_module.CreativeAsset, prompt: str) -> db_module.CreativeAsset:
    db_asset.status = db_module.AssetStatus.PROCESSING.value
    db_asset.prompt = prompt
    db.commit()
    db.refresh(db_asset)
    return db_asset

def mark_asset_completed(db: Session, db_asset: db_module.CreativeAsset, modified_path: str) -> db_module.CreativeAsset:
    db_asset.status = db_module.AssetStatus.COMPLETED.value
    db_asset.modified_path = modified_path
    db.commit()
    db.refresh(db_asset)
    return db_asset

def mark_asset_failed(db: Session, db_asset: db_module.CreativeAsset) -> db_module.CreativeAsset:
    db_asset.status = db_module.AssetStatus.FAILED.value
    db.commit()
    db.refresh(db_asset)
    return db_asset
