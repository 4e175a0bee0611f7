"""SQLModel table models for the database TTL backend."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import Field, SQLModel


class ChallengeRow(SQLModel, table=True):
    __tablename__ = "challenges"

    token: str = Field(primary_key=True, max_length=128)
    payload: dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    # epoch milliseconds
    expires: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))


class TokenRow(SQLModel, table=True):
    __tablename__ = "tokens"

    key: str = Field(primary_key=True, max_length=128)
    expires: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))
