"""
数据导出服务
库存清单与销售订单导出为 Excel / CSV
"""
import csv
import io
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from inventory_pro.services.catalog_service import CatalogService
from inventory_pro.services.sales_service import SalesService

STOCK_COLUMNS = [
    {'field': 'sku', 'header': 'SKU', 'width': 16},
    {'field': 'name', 'header': '商品名称', 'width': 28},
    {'field': 'location', 'header': '地点', 'width': 20},
    {'field': 'quantity', 'header': '在库数量', 'width': 12},
    {'field': 'reserved_quantity', 'header': '预留数量', 'width': 12},
    {'field': 'available', 'header': '可用数量', 'width': 12},
    {'field': 'min_stock_level', 'header': '最低库存', 'width': 12},
    {'field': 'cost_price', 'header': '成本价', 'width': 12},
    {'field': 'selling_price', 'header': '售价', 'width': 12},
]

SALES_COLUMNS = [
    {'field': 'order_number', 'header': '单号', 'width': 22},
    {'field': 'date', 'header': '日期', 'width': 20},
    {'field': 'source', 'header': '来源', 'width': 12},
    {'field': 'customer', 'header': '客户', 'width': 24},
    {'field': 'location', 'header': '地点', 'width': 18},
    {'field': 'status', 'header': '状态', 'width': 14},
    {'field': 'payment_status', 'header': '付款状态', 'width': 12},
    {'field': 'subtotal', 'header': '小计', 'width': 12},
    {'field': 'tax_amount', 'header': '税额', 'width': 12},
    {'field': 'total', 'header': '合计', 'width': 12},
]


def _cell_value(value):
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, Decimal):
        return float(value)
    if value is None:
        return ''
    return value


class ExportService:
    """数据导出服务"""

    @staticmethod
    def export_to_excel(
        data: List[Dict[str, Any]],
        columns: List[Dict[str, str]],
        sheet_name: str = "Sheet1",
        title: str = "数据导出"
    ) -> BytesIO:
        """
        导出数据到 Excel

        Args:
            data: 数据列表 [{"field1": value1, "field2": value2}, ...]
            columns: 列定义 [{"field": "field1", "header": "字段1", "width": 15}, ...]

        Returns:
            BytesIO: Excel 文件流
        """
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = sheet_name

        title_font = Font(size=16, bold=True, color='FFFFFF')
        title_fill = PatternFill(start_color='1F6FEB', end_color='1F6FEB', fill_type='solid')
        header_font = Font(size=11, bold=True, color='FFFFFF')
        header_fill = PatternFill(start_color='0D9488', end_color='0D9488', fill_type='solid')
        thin = Side(style='thin', color='E5E7EB')
        border = Border(left=thin, right=thin, top=thin, bottom=thin)

        # 标题（合并单元格）
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
        title_cell = ws.cell(row=1, column=1, value=title)
        title_cell.font = title_font
        title_cell.fill = title_fill
        title_cell.alignment = Alignment(horizontal='center', vertical='center')

        ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(columns))
        ws.cell(row=2, column=1, value=f"导出时间: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}") \
            .alignment = Alignment(horizontal='center')

        for col_idx, col_def in enumerate(columns, start=1):
            cell = ws.cell(row=3, column=col_idx, value=col_def['header'])
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = border
            ws.column_dimensions[get_column_letter(col_idx)].width = col_def.get('width', 15)

        for row_idx, row_data in enumerate(data, start=4):
            for col_idx, col_def in enumerate(columns, start=1):
                value = _cell_value(row_data.get(col_def['field']))
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.border = border
                # 数字右对齐
                horizontal = 'right' if isinstance(value, (int, float)) else 'left'
                cell.alignment = Alignment(horizontal=horizontal, vertical='center')

        # 冻结标题 + 时间 + 表头
        ws.freeze_panes = 'A4'

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output

    @staticmethod
    def export_to_csv(data: List[Dict[str, Any]], columns: List[Dict[str, str]]) -> BytesIO:
        """导出数据到 CSV (UTF-8 with BOM，便于 Excel 直接打开)"""
        text_output = io.StringIO()
        writer = csv.DictWriter(text_output, fieldnames=[col['field'] for col in columns],
                                extrasaction='ignore')
        writer.writerow({col['field']: col['header'] for col in columns})
        for row in data:
            writer.writerow({col['field']: _cell_value(row.get(col['field'])) for col in columns})

        output = BytesIO()
        output.write('\ufeff'.encode('utf-8'))
        output.write(text_output.getvalue().encode('utf-8'))
        output.seek(0)
        return output

    # --- 业务数据 ---

    @staticmethod
    def stock_rows(ctx, location_id=None):
        """库存清单：每个 (商品, 地点) 一行"""
        rows = []
        for entry in CatalogService.inventory_items(ctx, location_id):
            item = entry['item']
            for inv in entry['rows']:
                rows.append({
                    'sku': item.sku,
                    'name': item.name,
                    'location': inv.location.name,
                    'quantity': inv.quantity,
                    'reserved_quantity': inv.reserved_quantity,
                    'available': inv.available,
                    'min_stock_level': item.min_stock_level,
                    'cost_price': item.cost_price,
                    'selling_price': item.selling_price,
                })
        return rows

    @staticmethod
    def sales_order_rows(ctx, source=None):
        return [{
            'order_number': o.order_number,
            'date': o.date,
            'source': o.source,
            'customer': o.customer.name if o.customer else '',
            'location': o.location.name if o.location else '',
            'status': o.status,
            'payment_status': o.payment_status,
            'subtotal': o.subtotal,
            'tax_amount': o.tax_amount,
            'total': o.total,
        } for o in SalesService.list_sales_orders(ctx, source=source)]

    @staticmethod
    def export_stock(ctx, fmt='xlsx', location_id=None):
        rows = ExportService.stock_rows(ctx, location_id)
        if fmt == 'csv':
            return ExportService.export_to_csv(rows, STOCK_COLUMNS)
        return ExportService.export_to_excel(rows, STOCK_COLUMNS, sheet_name='Stock', title='库存清单')

    @staticmethod
    def export_sales_orders(ctx, fmt='xlsx', source=None):
        rows = ExportService.sales_order_rows(ctx, source)
        if fmt == 'csv':
            return ExportService.export_to_csv(rows, SALES_COLUMNS)
        return ExportService.export_to_excel(rows, SALES_COLUMNS, sheet_name='Sales', title='销售订单')
