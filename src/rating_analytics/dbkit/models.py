import uuid
from sqlalchemy import Column, String, Integer, Float, Text, DateTime, Boolean, Index, UniqueConstraint
from .base import Base

# Rating entries
# - one row per submitted rating, append-only
# - `seq` keeps arrival order for entries that share a timestamp
# - `change` is the delta to the previous entry of the same (player, attribute)
class RatingEntry(Base):
    __tablename__ = "rating_entries"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), comment="primary key UUID")
    player_id = Column(String, nullable=False, comment="player identifier")
    attribute = Column(String, nullable=False, comment="attribute name")
    seq = Column(Integer, nullable=False, comment="position within the series, from 1")
    recorded_at = Column(DateTime(timezone=True), nullable=False, comment="rating timestamp")
    value = Column(Integer, nullable=False, comment="rating 1-99")
    change = Column(Integer, comment="delta to previous entry, NULL for the first")
    note = Column(Text, comment="coach note")
    __table_args__ = (UniqueConstraint("player_id", "attribute", "seq", name="uq_rating_entries_seq"),)

Index("idx_rating_entries_series", RatingEntry.player_id, RatingEntry.attribute, RatingEntry.seq)

# Series analysis
# - latest derived trend and statistics per (player, attribute)
# - recomputed on every build, kept for the dashboard's list views
class SeriesAnalysis(Base):
    __tablename__ = "series_analysis"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), comment="primary key UUID")
    player_id = Column(String, nullable=False, comment="player identifier")
    attribute = Column(String, nullable=False, comment="attribute name")
    trend = Column(String, nullable=False, comment="trend category")
    direction = Column(String, nullable=False, comment="up/down/stable")
    rate = Column(Float, nullable=False, comment="change per entry over the trend window")
    count = Column(Integer, nullable=False, comment="number of entries")
    average = Column(Float, comment="mean rating")
    min = Column(Integer, comment="lowest rating")
    max = Column(Integer, comment="highest rating")
    total_improvement = Column(Integer, comment="last minus first")
    plateau_count = Column(Integer, nullable=False, comment="number of plateaus")
    milestones = Column(Text, nullable=False, comment="milestones JSON")
    __table_args__ = (UniqueConstraint("player_id", "attribute", name="uq_series_analysis_series"),)

# Comparison preferences
# - players listed with opted_out=1 are excluded from percentile comparisons
class ComparisonPreference(Base):
    __tablename__ = "comparison_preferences"
    player_id = Column(String, primary_key=True, comment="player identifier")
    opted_out = Column(Boolean, nullable=False, default=False, comment="comparison opt-out flag")
