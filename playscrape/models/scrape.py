"""Scrape model: audit log per scrape run."""

from sqlalchemy import Column, String, Integer, DateTime, Text, Index, func
from sqlalchemy.orm import relationship

from playscrape.models.base import Base, utcnow


class Scrape(Base):
    __tablename__ = "scrapes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String, nullable=False)

    status = Column(String(20), nullable=False, default="running")  # running, completed, failed
    total_records = Column(Integer, nullable=False, default=0)  # excludes failed records
    created_records = Column(Integer, nullable=False, default=0)
    no_changes_records = Column(Integer, nullable=False, default=0)
    updated_records = Column(Integer, nullable=False, default=0)
    failed_records = Column(Integer, nullable=False, default=0)
    status_text = Column("status_text", Text)

    started_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    ended_at = Column(DateTime(timezone=True))

    # Relationships
    scrape_records = relationship("ScrapeRecord", back_populates="scrape")

    __table_args__ = (
        Index("scrapes_source_index", "source"),
    )
