# workorders/models/__init__.py
from .user import *                       # User
from .work_order import *                 # WorkOrder, WorkOrderProgress, WorkOrderSequence
from .work_order_status_history import *  # WorkOrderStatusHistory
from .audit_log import *                  # AuditLog
