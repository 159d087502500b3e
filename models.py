from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text
from database import Base


class Record(Base):
    """One stored record; ``payload`` is the JSON of its storage-named fields."""

    __tablename__ = "records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    kind: Mapped[str] = mapped_column(String(32), index=True)
    payload: Mapped[str] = mapped_column(Text)
    created_at: Mapped[str] = mapped_column(String(40))
    updated_at: Mapped[str] = mapped_column(String(40))
