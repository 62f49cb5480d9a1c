"""InvoiceSequence — last invoice number handed out for each calendar year.

One row per year.  The numbering generator increments `last_value` with a
single UPDATE so concurrent emissions are serialized by the row lock.
"""

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base


class InvoiceSequence(Base):
    __tablename__ = "invoice_sequences"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
