"""ORM models for links, tags, followers and server config."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class Link(Base):
    """書籤連結"""
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(2048), nullable=False)
    posted = Column(DateTime(timezone=True), nullable=False)  # UTC
    source = Column(String(255), default="")
    site = Column(String(255), default="")
    title = Column(String(1024), nullable=False)
    summary = Column(Text, default="")  # 原始純文字摘要

    tags = relationship(
        "LinkTag",
        back_populates="link",
        order_by="LinkTag.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

class LinkTag(Base):
    """連結標籤"""
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    link_id = Column(Integer, ForeignKey("links.id"), index=True, nullable=False)
    tag = Column(String(255), index=True, nullable=False)

    link = relationship("Link", back_populates="tags")

class Follower(Base):
    """遠端追蹤者（僅存 Actor IRI）"""
    __tablename__ = "followers"

    id = Column(Integer, primary_key=True)
    url = Column(String(2048), unique=True, nullable=False)

class ConfigEntry(Base):
    """伺服器設定（dbversion 等）"""
    __tablename__ = "config"

    key = Column(String(255), primary_key=True)
    value = Column(Text)
