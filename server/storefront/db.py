"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront.errors import NotFound, UpstreamError, ValidationError
from storefront.types import (
    DEFAULT_THEME_SETTINGS,
    DRAFT_FIELDS,
    THEME_FIELDS,
    Role,
)

logger = logging.getLogger(__name__)


class DbClient(Protocol):
    """Interface for database access."""

    def get_theme(self, store_id: str) -> Optional["ThemeRecord"]:
        ...

    def get_or_create_theme(self, store_id: str) -> "ThemeRecord":
        ...

    def apply_draft_patch(self, store_id: str, patch: dict) -> "ThemeRecord":
        ...

    def publish_theme(self, store_id: str) -> "ThemeRecord":
        ...

    def create_profile(
        self, email: str, role: Role, profile_id: str | None = None
    ) -> "ProfileRecord":
        ...

    def get_profile(self, profile_id: str) -> Optional["ProfileRecord"]:
        ...

    def create_store(self, name: str, owner_id: str) -> "StoreRecord":
        ...

    def get_store(self, store_id: str) -> Optional["StoreRecord"]:
        ...

    def list_stores(self, owner_id: str) -> list["StoreRecord"]:
        ...

    def delete_store(self, store_id: str) -> bool:
        ...

    def list_categories(self, store_id: str) -> list["CategoryRecord"]:
        ...

    def create_category(self, store_id: str, name: str) -> "CategoryRecord":
        ...

    def update_category(
        self, store_id: str, category_id: str, name: str
    ) -> "CategoryRecord":
        ...

    def delete_category(self, store_id: str, category_id: str) -> None:
        ...

    def list_products(
        self,
        store_id: str,
        *,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list["ProductRecord"]:
        ...

    def create_product(self, store_id: str, fields: dict) -> "ProductRecord":
        ...

    def update_product(
        self, store_id: str, product_id: str, changes: dict
    ) -> "ProductRecord":
        ...

    def delete_product(self, store_id: str, product_id: str) -> None:
        ...


@dataclass
class ThemeRecord:
    store_id: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    published_settings: dict = field(
        default_factory=lambda: dict(DEFAULT_THEME_SETTINGS)
    )
    published_logo_url: Optional[str] = None
    published_header_bg_color: Optional[str] = None
    published_footer_bg_color: Optional[str] = None
    published_background: Optional[dict] = None
    draft_settings: dict = field(default_factory=lambda: dict(DEFAULT_THEME_SETTINGS))
    draft_logo_url: Optional[str] = None
    draft_header_bg_color: Optional[str] = None
    draft_footer_bg_color: Optional[str] = None
    draft_background: Optional[dict] = None
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "updated_at": self.updated_at,
            **{f"published_{name}": getattr(self, f"published_{name}") for name in THEME_FIELDS},
            **{f"draft_{name}": getattr(self, f"draft_{name}") for name in THEME_FIELDS},
        }


@dataclass
class ProfileRecord:
    id: str
    email: str
    role: Role
    store_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPERADMIN)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "store_id": self.store_id,
        }


@dataclass
class StoreRecord:
    id: str
    name: str
    owner_id: str
    custom_domain: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "custom_domain": self.custom_domain,
            "created_at": self.created_at,
        }


@dataclass
class CategoryRecord:
    id: str
    store_id: str
    name: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "created_at": self.created_at,
        }


@dataclass
class ProductRecord:
    id: str
    store_id: str
    name: str
    price: float
    description: str = ""
    stock: int = 0
    category_id: Optional[str] = None
    image_urls: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "image_urls": list(self.image_urls),
            "created_at": self.created_at,
        }


PRODUCT_FIELDS = ("name", "description", "price", "stock", "category_id", "image_urls")


def _check_draft_patch(patch: dict) -> None:
    unknown = sorted(set(patch) - set(DRAFT_FIELDS))
    if unknown:
        raise ValidationError(f"Not draft theme fields: {', '.join(unknown)}")
    if "draft_settings" in patch and not isinstance(patch["draft_settings"], dict):
        raise ValidationError("draft_settings must be an object")


def _check_product_fields(fields: dict) -> None:
    unknown = sorted(set(fields) - set(PRODUCT_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(unknown)}")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.themes: Dict[str, ThemeRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self.stores: Dict[str, StoreRecord] = {}
        self.categories: Dict[str, CategoryRecord] = {}
        self.products: Dict[str, ProductRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.themes.clear()
        self.profiles.clear()
        self.stores.clear()
        self.categories.clear()
        self.products.clear()

    # Records are copied on the way out so callers never share state with
    # the stored row.
    def get_theme(self, store_id: str) -> Optional[ThemeRecord]:
        theme = self.themes.get(store_id)
        return copy.deepcopy(theme) if theme else None

    def get_or_create_theme(self, store_id: str) -> ThemeRecord:
        theme = self.themes.get(store_id)
        if theme is None:
            if store_id not in self.stores:
                raise NotFound(f"Store {store_id} not found")
            theme = ThemeRecord(store_id=store_id)
            self.themes[store_id] = theme
        return copy.deepcopy(theme)

    def apply_draft_patch(self, store_id: str, patch: dict) -> ThemeRecord:
        _check_draft_patch(patch)
        theme = self.themes.get(store_id)
        if theme is None:
            raise NotFound(f"No theme settings for store {store_id}")
        for key, value in copy.deepcopy(patch).items():
            if key == "draft_settings":
                theme.draft_settings = {**theme.draft_settings, **value}
            else:
                setattr(theme, key, value)
        theme.updated_at = time.time()
        return copy.deepcopy(theme)

    def publish_theme(self, store_id: str) -> ThemeRecord:
        theme = self.themes.get(store_id)
        if theme is None:
            raise NotFound(f"No theme settings for store {store_id}")
        for name in THEME_FIELDS:
            setattr(
                theme,
                f"published_{name}",
                copy.deepcopy(getattr(theme, f"draft_{name}")),
            )
        theme.updated_at = time.time()
        return copy.deepcopy(theme)

    def create_profile(
        self, email: str, role: Role, profile_id: str | None = None
    ) -> ProfileRecord:
        record = ProfileRecord(
            id=profile_id or uuid.uuid4().hex, email=email, role=Role(role)
        )
        self.profiles[record.id] = record
        return record

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(profile_id)

    def create_store(self, name: str, owner_id: str) -> StoreRecord:
        record = StoreRecord(id=uuid.uuid4().hex, name=name, owner_id=owner_id)
        self.stores[record.id] = record
        return record

    def get_store(self, store_id: str) -> Optional[StoreRecord]:
        return self.stores.get(store_id)

    def list_stores(self, owner_id: str) -> list[StoreRecord]:
        return [store for store in self.stores.values() if store.owner_id == owner_id]

    def delete_store(self, store_id: str) -> bool:
        if self.stores.pop(store_id, None) is None:
            return False
        self.themes.pop(store_id, None)
        for key in [k for k, p in self.products.items() if p.store_id == store_id]:
            del self.products[key]
        for key in [k for k, c in self.categories.items() if c.store_id == store_id]:
            del self.categories[key]
        return True

    def _category(self, store_id: str, category_id: str) -> CategoryRecord:
        category = self.categories.get(category_id)
        if category is None or category.store_id != store_id:
            raise NotFound(f"Category {category_id} not found")
        return category

    def list_categories(self, store_id: str) -> list[CategoryRecord]:
        return copy.deepcopy(
            [c for c in self.categories.values() if c.store_id == store_id]
        )

    def create_category(self, store_id: str, name: str) -> CategoryRecord:
        record = CategoryRecord(id=uuid.uuid4().hex, store_id=store_id, name=name)
        self.categories[record.id] = record
        return copy.deepcopy(record)

    def update_category(
        self, store_id: str, category_id: str, name: str
    ) -> CategoryRecord:
        category = self._category(store_id, category_id)
        category.name = name
        return copy.deepcopy(category)

    def delete_category(self, store_id: str, category_id: str) -> None:
        self._category(store_id, category_id)
        if any(p.category_id == category_id for p in self.products.values()):
            raise ValidationError(
                "Cannot delete category as it is currently in use by one or more products."
            )
        del self.categories[category_id]

    def _product(self, store_id: str, product_id: str) -> ProductRecord:
        product = self.products.get(product_id)
        if product is None or product.store_id != store_id:
            raise NotFound(f"Product {product_id} not found")
        return product

    def list_products(
        self,
        store_id: str,
        *,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[ProductRecord]:
        items = [p for p in self.products.values() if p.store_id == store_id]
        if category_id:
            items = [p for p in items if p.category_id == category_id]
        if search:
            needle = search.lower()
            items = [p for p in items if needle in p.name.lower()]
        return copy.deepcopy(items)

    def create_product(self, store_id: str, fields: dict) -> ProductRecord:
        _check_product_fields(fields)
        if fields.get("category_id"):
            self._category(store_id, fields["category_id"])
        record = ProductRecord(
            id=uuid.uuid4().hex, store_id=store_id, **copy.deepcopy(fields)
        )
        self.products[record.id] = record
        return copy.deepcopy(record)

    def update_product(
        self, store_id: str, product_id: str, changes: dict
    ) -> ProductRecord:
        _check_product_fields(changes)
        product = self._product(store_id, product_id)
        if changes.get("category_id"):
            self._category(store_id, changes["category_id"])
        for key, value in copy.deepcopy(changes).items():
            setattr(product, key, value)
        return copy.deepcopy(product)

    def delete_product(self, store_id: str, product_id: str) -> None:
        self._product(store_id, product_id)
        del self.products[product_id]


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Database operation failed")
            raise UpstreamError("Database operation failed") from exc

    @staticmethod
    def _to_theme_record(row: "ThemeSettingsRow") -> ThemeRecord:
        return ThemeRecord(
            id=row.id,
            store_id=row.store_id,
            updated_at=row.updated_at,
            **{f"published_{name}": getattr(row, f"published_{name}") for name in THEME_FIELDS},
            **{f"draft_{name}": getattr(row, f"draft_{name}") for name in THEME_FIELDS},
        )

    @staticmethod
    def _to_store_record(row: "StoreRow") -> StoreRecord:
        return StoreRecord(
            id=row.id,
            name=row.name,
            owner_id=row.owner_id,
            custom_domain=row.custom_domain,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_category_record(row: "CategoryRow") -> CategoryRecord:
        return CategoryRecord(
            id=row.id, store_id=row.store_id, name=row.name, created_at=row.created_at
        )

    @staticmethod
    def _to_product_record(row: "ProductRow") -> ProductRecord:
        return ProductRecord(
            id=row.id,
            store_id=row.store_id,
            category_id=row.category_id,
            name=row.name,
            description=row.description or "",
            price=row.price,
            stock=row.stock,
            image_urls=list(row.image_urls or []),
            created_at=row.created_at,
        )

    def _theme_row(self, session: Session, store_id: str) -> Optional["ThemeSettingsRow"]:
        stmt = select(ThemeSettingsRow).where(ThemeSettingsRow.store_id == store_id)
        return session.execute(stmt).scalar_one_or_none()

    def get_theme(self, store_id: str) -> Optional[ThemeRecord]:
        with self._session() as session:
            row = self._theme_row(session, store_id)
            return self._to_theme_record(row) if row else None

    def get_or_create_theme(self, store_id: str) -> ThemeRecord:
        with self._session() as session:
            row = self._theme_row(session, store_id)
            if row:
                return self._to_theme_record(row)
            if session.get(StoreRow, store_id) is None:
                raise NotFound(f"Store {store_id} not found")
            row = ThemeSettingsRow(
                id=uuid.uuid4().hex,
                store_id=store_id,
                published_settings=dict(DEFAULT_THEME_SETTINGS),
                draft_settings=dict(DEFAULT_THEME_SETTINGS),
                updated_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Another request created the row first.
                session.rollback()
                row = self._theme_row(session, store_id)
                if row is None:
                    raise
            return self._to_theme_record(row)

    def apply_draft_patch(self, store_id: str, patch: dict) -> ThemeRecord:
        _check_draft_patch(patch)
        with self._session() as session:
            stmt = (
                select(ThemeSettingsRow)
                .where(ThemeSettingsRow.store_id == store_id)
                .with_for_update()
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NotFound(f"No theme settings for store {store_id}")
            for key, value in patch.items():
                if key == "draft_settings":
                    row.draft_settings = {**(row.draft_settings or {}), **value}
                else:
                    setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_theme_record(row)

    def publish_theme(self, store_id: str) -> ThemeRecord:
        values = {
            getattr(ThemeSettingsRow, f"published_{name}"): getattr(
                ThemeSettingsRow, f"draft_{name}"
            )
            for name in THEME_FIELDS
        }
        values[ThemeSettingsRow.updated_at] = time.time()
        with self._session() as session:
            result = session.execute(
                update(ThemeSettingsRow)
                .where(ThemeSettingsRow.store_id == store_id)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if not result.rowcount:
                raise NotFound(f"No theme settings for store {store_id}")
            return self._to_theme_record(self._theme_row(session, store_id))

    def create_profile(
        self, email: str, role: Role, profile_id: str | None = None
    ) -> ProfileRecord:
        record = ProfileRecord(
            id=profile_id or uuid.uuid4().hex, email=email, role=Role(role)
        )
        with self._session() as session:
            session.add(ProfileRow(id=record.id, email=email, role=record.role.value))
            session.commit()
        return record

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        with self._session() as session:
            row = session.get(ProfileRow, profile_id)
            if not row:
                return None
            return ProfileRecord(
                id=row.id, email=row.email, role=Role(row.role), store_id=row.store_id
            )

    def create_store(self, name: str, owner_id: str) -> StoreRecord:
        with self._session() as session:
            row = StoreRow(
                id=uuid.uuid4().hex, name=name, owner_id=owner_id, created_at=time.time()
            )
            session.add(row)
            session.commit()
            return self._to_store_record(row)

    def get_store(self, store_id: str) -> Optional[StoreRecord]:
        with self._session() as session:
            row = session.get(StoreRow, store_id)
            return self._to_store_record(row) if row else None

    def list_stores(self, owner_id: str) -> list[StoreRecord]:
        with self._session() as session:
            rows = session.execute(
                select(StoreRow)
                .where(StoreRow.owner_id == owner_id)
                .order_by(StoreRow.created_at.asc())
            ).scalars()
            return [self._to_store_record(row) for row in rows]

    def delete_store(self, store_id: str) -> bool:
        with self._session() as session:
            row = session.get(StoreRow, store_id)
            if row is None:
                return False
            for model in (ThemeSettingsRow, ProductRow, CategoryRow):
                session.query(model).filter(model.store_id == store_id).delete(
                    synchronize_session=False
                )
            session.delete(row)
            session.commit()
            return True

    def _category_row(
        self, session: Session, store_id: str, category_id: str
    ) -> "CategoryRow":
        row = session.get(CategoryRow, category_id)
        if row is None or row.store_id != store_id:
            raise NotFound(f"Category {category_id} not found")
        return row

    def list_categories(self, store_id: str) -> list[CategoryRecord]:
        with self._session() as session:
            rows = session.execute(
                select(CategoryRow)
                .where(CategoryRow.store_id == store_id)
                .order_by(CategoryRow.created_at.asc())
            ).scalars()
            return [self._to_category_record(row) for row in rows]

    def create_category(self, store_id: str, name: str) -> CategoryRecord:
        with self._session() as session:
            row = CategoryRow(
                id=uuid.uuid4().hex, store_id=store_id, name=name, created_at=time.time()
            )
            session.add(row)
            session.commit()
            return self._to_category_record(row)

    def update_category(
        self, store_id: str, category_id: str, name: str
    ) -> CategoryRecord:
        with self._session() as session:
            row = self._category_row(session, store_id, category_id)
            row.name = name
            session.commit()
            return self._to_category_record(row)

    def delete_category(self, store_id: str, category_id: str) -> None:
        with self._session() as session:
            row = self._category_row(session, store_id, category_id)
            in_use = session.execute(
                select(ProductRow.id).where(ProductRow.category_id == category_id).limit(1)
            ).first()
            if in_use:
                raise ValidationError(
                    "Cannot delete category as it is currently in use by one or more products."
                )
            session.delete(row)
            session.commit()

    def _product_row(
        self, session: Session, store_id: str, product_id: str
    ) -> "ProductRow":
        row = session.get(ProductRow, product_id)
        if row is None or row.store_id != store_id:
            raise NotFound(f"Product {product_id} not found")
        return row

    def list_products(
        self,
        store_id: str,
        *,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[ProductRecord]:
        stmt = select(ProductRow).where(ProductRow.store_id == store_id)
        if category_id:
            stmt = stmt.where(ProductRow.category_id == category_id)
        if search:
            stmt = stmt.where(ProductRow.name.ilike(f"%{search}%"))
        with self._session() as session:
            rows = session.execute(stmt.order_by(ProductRow.created_at.asc())).scalars()
            return [self._to_product_record(row) for row in rows]

    def create_product(self, store_id: str, fields: dict) -> ProductRecord:
        _check_product_fields(fields)
        with self._session() as session:
            if fields.get("category_id"):
                self._category_row(session, store_id, fields["category_id"])
            row = ProductRow(
                id=uuid.uuid4().hex,
                store_id=store_id,
                name=fields["name"],
                description=fields.get("description", ""),
                price=fields["price"],
                stock=fields.get("stock", 0),
                category_id=fields.get("category_id"),
                image_urls=list(fields.get("image_urls") or []),
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_product_record(row)

    def update_product(
        self, store_id: str, product_id: str, changes: dict
    ) -> ProductRecord:
        _check_product_fields(changes)
        with self._session() as session:
            row = self._product_row(session, store_id, product_id)
            if changes.get("category_id"):
                self._category_row(session, store_id, changes["category_id"])
            for key, value in changes.items():
                setattr(row, key, value)
            session.commit()
            return self._to_product_record(row)

    def delete_product(self, store_id: str, product_id: str) -> None:
        with self._session() as session:
            row = self._product_row(session, store_id, product_id)
            session.delete(row)
            session.commit()


Base = declarative_base()


class ProfileRow(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.USER.value)
    store_id = Column(String, nullable=True)


class StoreRow(Base):
    __tablename__ = "stores"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    custom_domain = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class ThemeSettingsRow(Base):
    __tablename__ = "theme_settings"

    id = Column(String, primary_key=True)
    store_id = Column(
        String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    updated_at = Column(Float, nullable=False)
    published_settings = Column(JSON, nullable=False)
    published_logo_url = Column(String, nullable=True)
    published_header_bg_color = Column(String, nullable=True)
    published_footer_bg_color = Column(String, nullable=True)
    published_background = Column(JSON, nullable=True)
    draft_settings = Column(JSON, nullable=False)
    draft_logo_url = Column(String, nullable=True)
    draft_header_bg_color = Column(String, nullable=True)
    draft_footer_bg_color = Column(String, nullable=True)
    draft_background = Column(JSON, nullable=True)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    store_id = Column(
        String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    store_id = Column(
        String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id = Column(String, ForeignKey("categories.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    price = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    image_urls = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False)
