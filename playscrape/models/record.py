"""Record model: one extracted item and the page snapshot it came from."""

from sqlalchemy import Column, String, Text, DateTime, JSON, Index, func
from sqlalchemy.orm import relationship

from playscrape.models.base import Base, utcnow


class Record(Base):
    __tablename__ = "records"

    # Content hash of the item url, or the id supplied by the extractor
    id = Column(String, primary_key=True)

    source = Column(String, nullable=False)
    url = Column(Text, nullable=False)
    action = Column(String, nullable=False)  # action that produced the record

    # Snapshot at capture time, kept so records can be re-extracted later
    content = Column(Text, nullable=False)
    cookies = Column(Text)

    extracted = Column(JSON, nullable=False)

    # updated_at only moves when the extracted payload changes
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    scraped_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    downloads = relationship("Download", back_populates="record")

    __table_args__ = (
        Index("records_source_index", "source"),
        Index("records_updated_index", "updated_at"),
    )
