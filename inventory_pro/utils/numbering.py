"""
单据编号生成
PO-00001             采购单，组织内顺序号
GR/TR/ADJ/SO/POS-YYYYMMDD-NNNN   其他单据，按日期与当天序号
"""
from datetime import datetime
from inventory_pro.extensions import db


def next_sequence_number(model, column, org_id, prefix, width=5):
    """组织内顺序号: PO-00001, PO-00002 ..."""
    count = db.session.query(db.func.count(model.id)) \
        .filter(model.org_id == org_id, column.like(f"{prefix}-%")).scalar() or 0
    return f"{prefix}-{count + 1:0{width}d}"


def next_dated_number(model, column, org_id, prefix, when=None):
    """当天顺序号: TR-20240131-0001"""
    date_str = (when or datetime.utcnow()).strftime('%Y%m%d')
    stem = f"{prefix}-{date_str}"
    count = db.session.query(db.func.count(model.id)) \
        .filter(model.org_id == org_id, column.like(f"{stem}-%")).scalar() or 0
    return f"{stem}-{count + 1:04d}"
