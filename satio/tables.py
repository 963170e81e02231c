from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(191), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AdSession(Base):
    __tablename__ = "ad_sessions"

    session_id = Column(String(64), primary_key=True)
    device_id = Column(String(191), nullable=False, index=True)
    created_at_ms = Column(BigInteger, nullable=False)
    used = Column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_ad_sessions_used_created", "used", "created_at_ms"),)


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sats = Column(Integer, nullable=False)
    day = Column(String(10), nullable=False)
    # idempotency key: one reward per ad session
    session_id = Column(String(64), unique=True, nullable=False)
    source = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_rewards_user_day", "user_id", "day"),)
