"""Download model: one stored image, keyed by the hash of its source url."""

from sqlalchemy import Column, String, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from playscrape.models.base import Base, TimestampMixin


class Download(TimestampMixin, Base):
    __tablename__ = "downloads"

    id = Column(String, primary_key=True)
    record_id = Column("recordId", String, ForeignKey("records.id"), nullable=False)

    # Size after orientation correction
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    file_size = Column(Integer)
    file_name = Column(Text, nullable=False)

    orig_format = Column(String)
    orig_url = Column(Text, nullable=False)
    orig_cookies = Column(Text)

    # Relationships
    record = relationship("Record", back_populates="downloads")

    __table_args__ = (
        Index("downloads_record_id_index", "recordId"),
    )
