from io import BytesIO
from typing import List, Optional
from datetime import date

from openpyxl import Workbook

from workorders.services.reports import SummaryRow

SUMMARY_HEADERS = [
    "Product", "Work orders", "Total WO", "% of total", "Target qty", "Achieved qty",
    "Achievement %", "Pending", "In progress", "Completed",
]


def summary_to_xlsx(rows: List[SummaryRow], start: Optional[date] = None,
                    end: Optional[date] = None) -> bytes:
    """Сводка по продуктам -> xlsx (байты)."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"

    ws.append(["Work order summary"])
    ws.append(["Period", f"{start or '-'} .. {end or '-'}"])
    ws.append([])
    ws.append(SUMMARY_HEADERS)

    for r in rows:
        ws.append([
            r.product_name,
            r.work_order_number,
            r.total_wo,
            r.percentage,
            r.target_qty,
            r.achieved_qty,
            r.achievement,
            r.pending,
            r.in_progress,
            r.completed,
        ])

    # ширина колонок
    ws.column_dimensions["A"].width = 28  # Продукт
    ws.column_dimensions["B"].width = 40  # Номера нарядов

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()
