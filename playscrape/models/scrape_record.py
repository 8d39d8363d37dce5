"""Scrape record model: outcome of one record within a scrape run."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, func
from sqlalchemy.orm import relationship

from playscrape.models.base import Base, utcnow


class ScrapeRecord(Base):
    __tablename__ = "scrape_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scrape_id = Column("scrapeId", Integer, ForeignKey("scrapes.id"), nullable=False)
    record_id = Column("recordId", String, ForeignKey("records.id"))

    status = Column(String(20), nullable=False, default="running")  # running, created, noChanges, updated, failed
    status_text = Column("status_text", Text)  # diff or error message

    started_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    ended_at = Column(DateTime(timezone=True))

    # Relationships
    scrape = relationship("Scrape", back_populates="scrape_records")
    record = relationship("Record")

    __table_args__ = (
        Index("scrape_records_scrape_id_index", "scrapeId"),
    )
