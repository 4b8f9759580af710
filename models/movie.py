from sqlalchemy import Column, String, Integer, CheckConstraint, Index

from models.base_model import BaseModel, Base


class Movie(BaseModel, Base):
    __tablename__ = "movies"

    name = Column(String(200), nullable=False)
    realisator = Column(String(100), nullable=True)
    rating = Column(Integer, nullable=False)  # validated 1..10 (in schema)
    duration_minutes = Column(Integer, nullable=True)  # at most 10 hours

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 10", name="ck_movies_rating_range"),
        CheckConstraint(
            "(duration_minutes IS NULL) OR (duration_minutes >= 1 AND duration_minutes <= 600)",
            name="ck_movies_duration_range",
        ),
        Index("ix_movies_name", "name"),
    )
