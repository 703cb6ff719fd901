"""
Pivot export of the customer x product matrix.

The matrix is rendered as a pandas DataFrame with one row per customer,
one column per product and a trailing ``Total`` row and column, then
written to an ``.xlsx`` workbook with openpyxl.
"""

import io

import pandas as pd

from order_portal.core.logging import get_logger
from order_portal.schemas.reports import CustomerProductMatrix

logger = get_logger(__name__)

TOTAL_LABEL = "Total"
CUSTOMER_LABEL = "Customer"
SHEET_NAME = "Customer x Product"


def matrix_to_dataframe(matrix: CustomerProductMatrix) -> pd.DataFrame:
    """
    Pivot table of quantities with row and column totals.

    Rows and columns are labelled by display name; identical names are
    suffixed with the record id so no two rows or columns merge.
    """
    row_labels = _unique_labels([(c.id, c.name) for c in matrix.customers])
    column_labels = _unique_labels([(p.id, p.name) for p in matrix.products])

    data = [
        [matrix.cell(customer.id, product.id) for product in matrix.products]
        for customer in matrix.customers
    ]
    frame = pd.DataFrame(
        data,
        index=pd.Index(row_labels, name=CUSTOMER_LABEL),
        columns=column_labels,
        dtype="int64",
    )
    frame[TOTAL_LABEL] = frame.sum(axis=1)
    frame.loc[TOTAL_LABEL] = frame.sum(axis=0)
    return frame.astype("int64")


def matrix_to_xlsx(matrix: CustomerProductMatrix) -> bytes:
    """Workbook bytes with the pivot table on a single sheet."""
    frame = matrix_to_dataframe(matrix)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=SHEET_NAME)

    logger.info(
        "Matrix exported",
        customers=len(matrix.customers),
        products=len(matrix.products),
        grand_total=matrix.grand_total,
    )
    return buffer.getvalue()


def _unique_labels(entries: list[tuple[str, str]]) -> list[str]:
    names = [name for _, name in entries]
    return [
        f"{name} ({entry_id})" if names.count(name) > 1 else name
        for entry_id, name in entries
    ]
