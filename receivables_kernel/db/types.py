"""
Module: receivables_kernel.db.types
Responsibility: Column types shared by every model, so that money and rates
    are stored with identical precision everywhere.
Architecture position: Kernel > DB.  MUST NOT import from models/ or services/.
"""

from sqlalchemy import Numeric

# Ledger amounts: 2 decimal places, same as receivables_kernel.domain.values.Money.
# Base.type_annotation_map applies this to every Mapped[Decimal] column.
AMOUNT_TYPE = Numeric(18, 2)

# Annual interest rates and percentages (e.g. 18.0000)
RATE_TYPE = Numeric(9, 4)

MONEY_DECIMAL_PLACES = 2
