from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func

from zurl.database import Base


class Folder(Base):
    __tablename__ = "folders"

    id = Column(String(32), primary_key=True)
    name = Column(String(200), nullable=False)
    owner_id = Column(String(128), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ShortLink(Base):
    __tablename__ = "short_links"

    id = Column(String(32), primary_key=True)
    original_url = Column(String(2048), nullable=False)
    name = Column(String(200), nullable=True)
    owner_id = Column(String(128), index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_protected = Column(Boolean, nullable=False, default=False)
    unlock_secret = Column(String(128), nullable=True)
    # No counter on Folder; membership is always queried through this column
    folder_id = Column(String(32), ForeignKey("folders.id"), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    modified_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    click_count = Column(Integer, nullable=False, default=0)


class Click(Base):
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(String(32), ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False)
    clicked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    referrer = Column(String(2048), nullable=True)
    country = Column(String(64), nullable=False, default="Unknown")
    city = Column(String(128), nullable=False, default="Unknown")
    browser = Column(String(64), nullable=False, default="Unknown")
    os = Column(String(64), nullable=False, default="Unknown")
    device = Column(String(16), nullable=False, default="Unknown")
