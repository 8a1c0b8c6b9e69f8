"""Table definitions for allocators, applications and related records."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from fplusdb.types import AddressWrapper, parse_checksummed_address


class Base(DeclarativeBase):
    """Declarative base for every table of the database."""


class AddressType(TypeDecorator):
    """Stores an :class:`AddressWrapper` as its checksummed string."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            value = parse_checksummed_address(value)
        if not isinstance(value, AddressWrapper):
            raise TypeError(f"expected an address, got {type(value).__name__}")
        return value.to_checksum()

    def process_result_value(self, value: Any, dialect: Any) -> Optional[AddressWrapper]:
        if value is None:
            return None
        return parse_checksummed_address(value)


@dataclass(frozen=True)
class ApplicationComparableData:
    """Free-text parts of an application used to compare applications."""

    project_desc: str
    stored_data_desc: str
    data_owner_name: str
    data_set_sample: str

    def to_dict(self) -> dict[str, str]:
        """Return the JSON-ready mapping of this record."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "ApplicationComparableData":
        """Build a record from a mapping, requiring every field as a string."""
        if not isinstance(data, dict):
            raise ValueError("comparable data must be a JSON object")
        values = {}
        for field in fields(cls):
            if field.name not in data:
                raise ValueError(f"missing field `{field.name}`")
            if not isinstance(data[field.name], str):
                raise ValueError(f"field `{field.name}` must be a string")
            values[field.name] = data[field.name]
        return cls(**values)


class ComparableDataType(TypeDecorator):
    """Stores :class:`ApplicationComparableData` as JSON (JSONB on PostgreSQL)."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[dict[str, str]]:
        if value is None:
            return None
        if isinstance(value, ApplicationComparableData):
            return value.to_dict()
        return ApplicationComparableData.from_dict(value).to_dict()

    def process_result_value(self, value: Any, dialect: Any) -> Optional[ApplicationComparableData]:
        if value is None:
            return None
        if isinstance(value, (str, bytes)):
            value = json.loads(value)
        return ApplicationComparableData.from_dict(value)


_STRING_LIST = JSON().with_variant(postgresql.ARRAY(String), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Allocator(Base):
    """An allocator, identified by the GitHub repository that holds its data."""

    __tablename__ = "allocators"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String)
    repo: Mapped[str] = mapped_column(String)
    installation_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    multisig_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    verifiers_gh_handles: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    multisig_threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allocation_amount_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tooling: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    data_types: Mapped[Optional[List[str]]] = mapped_column(_STRING_LIST, nullable=True)
    required_sps: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    required_replicas: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    registry_file_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    client_contract_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    allocation_amounts: Mapped[List["AllocationAmount"]] = relationship(
        back_populates="allocator"
    )


class AllocationAmount(Base):
    """One allocation quantity option offered by an allocator."""

    __tablename__ = "allocation_amounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    allocator_id: Mapped[int] = mapped_column(Integer, ForeignKey("allocators.id"))
    quantity_option: Mapped[str] = mapped_column(String)

    allocator: Mapped["Allocator"] = relationship(back_populates="allocation_amounts")


class Application(Base):
    """An application file; ``pr_number`` 0 marks the merged version."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String, primary_key=True, autoincrement=False)
    owner: Mapped[str] = mapped_column(String, primary_key=True, autoincrement=False)
    repo: Mapped[str] = mapped_column(String, primary_key=True, autoincrement=False)
    pr_number: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    issue_number: Mapped[int] = mapped_column(BigInteger, nullable=True)
    application: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True, default=_utc_now, onupdate=_utc_now
    )
    sha: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    client_contract_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    issue_reporter_handle: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Autoallocation(Base):
    """Time of the last automatic allocation to a client wallet."""

    __tablename__ = "autoallocations"

    evm_wallet_address: Mapped[AddressWrapper] = mapped_column(
        AddressType(), primary_key=True, autoincrement=False
    )
    last_allocation: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ComparableApplication(Base):
    """Comparable text of the application filed by a client address."""

    __tablename__ = "comparable_applications"

    client_address: Mapped[str] = mapped_column(String, primary_key=True, autoincrement=False)
    application: Mapped[ApplicationComparableData] = mapped_column(ComparableDataType())