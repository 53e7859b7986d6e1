"""``sequence_counters``: one row per named counter, see SequenceService."""

from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base
from billing_kernel.db.types import Sequence, ShortCode


class SequenceCounter(Base):
    """Last value handed out for ``name``; locked FOR UPDATE while incremented."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(ShortCode, unique=True)
    current_value: Mapped[int] = mapped_column(Sequence, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
