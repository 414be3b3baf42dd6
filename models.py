"""
SQLAlchemy ORM Models for the local Champion Cart store

Tables:
- cart_lines: Current cart contents (one row per line, per local cart key)
- comparison_history: Past cheapest-cart results, for "last time" hints
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CartLineRecord(Base):
    """One persisted cart line"""
    __tablename__ = 'cart_lines'
    __table_args__ = (
        UniqueConstraint('cart_key', 'identity', name='unique_cart_identity'),
        Index('idx_cart_key_position', 'cart_key', 'position'),
    )

    id = Column(Integer, primary_key=True)
    cart_key = Column(String(100), nullable=False, default='default')
    identity = Column(String(255), nullable=False)  # Barcode or normalized name
    display_name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)  # Insertion order
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CartLineRecord {self.identity} x{self.quantity}>"


class ComparisonRecord(Base):
    """Summary of one resolved cheapest-cart comparison"""
    __tablename__ = 'comparison_history'
    __table_args__ = (
        Index('idx_comparison_city', 'city'),
        Index('idx_recorded_at', 'recorded_at'),
    )

    id = Column(Integer, primary_key=True)
    city = Column(String(100), nullable=False)
    best_chain = Column(String(100), nullable=False)
    best_store_id = Column(String(100))
    best_total = Column(Float, nullable=False)
    worst_total = Column(Float, nullable=False)
    savings_percent = Column(Float, nullable=False)
    store_count = Column(Integer, nullable=False)
    item_count = Column(Integer, nullable=False)
    recorded_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ComparisonRecord {self.city}: {self.best_chain} {self.best_total}>"
