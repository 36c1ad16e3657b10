# workorders/seed.py
"""Демо-данные: менеджер, операторы и наряды, прогнанные через сервисы.

    python -m workorders.seed           # досеять, что отсутствует
    python -m workorders.seed --reset   # снести таблицы и засеять заново
"""
import argparse
import random
from datetime import timedelta

from workorders.db import Base, SessionLocal, engine, init_db
from workorders.models.user import User
from workorders.services.users import UserService
from workorders.services.work_orders import WorkOrderService
from workorders.utils.dates import utcnow
from workorders.utils.enums import UserRole, WorkOrderStatus

DEFAULT_PASSWORD = "123456"
WORK_ORDER_COUNT = 40

USERS = [
    ("manager", UserRole.PRODUCTION_MANAGER),
    ("operator1", UserRole.OPERATOR),
    ("operator2", UserRole.OPERATOR),
    ("operator3", UserRole.OPERATOR),
]

PRODUCT_NAMES = [
    "Smartphone X1", "Laptop Pro", "Wireless Earbuds", "Smart Watch", "Tablet Ultra",
    "Desktop PC", "Gaming Console", "Bluetooth Speaker", "Wireless Mouse", "Mechanical Keyboard",
    "LED Monitor", "External SSD", "Power Bank", "Wireless Charger", "USB-C Hub",
]

PROGRESS_NOTES = [
    "Подготовка сырья",
    "Сборка компонентов",
    "Первичная проверка",
    "Выполнено 50% партии",
    "Контроль качества",
    "Упаковка",
]


def _ensure_users(db) -> dict:
    users = {}
    service = UserService(db)
    for username, role in USERS:
        user = db.query(User).filter(User.username == username).first()
        if user is None:
            user = service.register(username, DEFAULT_PASSWORD, role)
            print(f"✅ User created (username='{username}', password='{DEFAULT_PASSWORD}', role='{role.value}')")
        else:
            print(f"ℹ️ User '{username}' already exists")
        users[username] = user
    return users


def _seed_work_orders(db, users: dict, rnd: random.Random, count: int):
    service = WorkOrderService(db)
    manager = users["manager"]
    operators = [u for u in users.values() if u.is_operator]
    now = utcnow()

    for _ in range(count):
        operator = rnd.choice(operators)
        wo = service.create(
            product_name=rnd.choice(PRODUCT_NAMES),
            quantity=rnd.randint(1, 100),
            production_deadline=now + timedelta(days=rnd.randint(-30, 30)),
            operator_id=operator.id,
            acting_manager_id=manager.id,
            acting_role=manager.role,
        )

        # часть нарядов двигаем по жизненному циклу от имени оператора
        target = rnd.choice(list(WorkOrderStatus))
        if target == WorkOrderStatus.PENDING:
            continue
        service.update_status(wo.id, WorkOrderStatus.IN_PROGRESS, None, operator.id, operator.role)
        for _ in range(rnd.randint(0, 3)):
            service.add_progress(wo.id, rnd.choice(PROGRESS_NOTES), rnd.randint(1, 10),
                                 operator.id, operator.role)
        if target == WorkOrderStatus.COMPLETED:
            produced = rnd.randint(0, wo.target_quantity)
            service.update_status(wo.id, WorkOrderStatus.COMPLETED, produced,
                                  operator.id, operator.role)

    print(f"✅ Work orders created: {count}")


def run_seed(reset: bool = False, count: int = WORK_ORDER_COUNT, seed: int = 42):
    if reset:
        Base.metadata.drop_all(bind=engine)
        print("🗑 Все таблицы удалены")
    init_db()

    rnd = random.Random(seed)
    db = SessionLocal()
    try:
        users = _ensure_users(db)
        _seed_work_orders(db, users, rnd, count)
    finally:
        db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--reset", action="store_true", help="drop all tables first")
    parser.add_argument("--count", type=int, default=WORK_ORDER_COUNT, help="work orders to create")
    args = parser.parse_args(argv)
    run_seed(reset=args.reset, count=args.count)


if __name__ == "__main__":
    main()
