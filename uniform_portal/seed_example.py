from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from uniform_portal.db import SessionLocal, engine
from uniform_portal.dependencies import get_field_cipher
from uniform_portal.models import Base, Employee, Order, OrderStatus
from uniform_portal.services.employee_directory import create_employee


def seed() -> None:
    Base.metadata.create_all(engine)
    cipher = get_field_cipher()
    now = datetime.now(tz=timezone.utc)

    with SessionLocal() as db:
        existing = db.execute(select(Employee).where(Employee.employee_id == 'EMP-0001')).scalar_one_or_none()
        if not existing:
            create_employee(
                db,
                employee_id='EMP-0001',
                first_name='Asha',
                last_name='Rao',
                email='asha.rao@example.com',
                cipher=cipher,
                branch_id='BR-DEL-01',
                cycle_duration={'shirt': 6, 'pant': 6, 'shoe': 12, 'jacket': 12},
            )

        legacy = db.execute(select(Employee).where(Employee.employee_id == 'EMP-0002')).scalar_one_or_none()
        if not legacy:
            # Written the way records looked before field encryption: plaintext, no token, no cycles.
            db.add(
                Employee(
                    employee_id='EMP-0002',
                    first_name='Vikram',
                    last_name='Sen',
                    email_scheme=None,
                    email_value='Vikram.Sen@example.com',
                    email_lookup_token=None,
                    branch_id='BR-BOM-02',
                    cycle_duration=None,
                    active=True,
                )
            )

        has_orders = db.execute(select(Order.id).limit(1)).scalar_one_or_none()
        if not has_orders:
            db.add_all(
                [
                    Order(
                        order_id='ORD-1001',
                        employee_id='EMP-0001',
                        category='shirt',
                        status=OrderStatus.DELIVERED,
                        order_date=now - timedelta(days=200),
                    ),
                    Order(
                        order_id='ORD-1002',
                        employee_id='EMP-0001',
                        category='jacket',
                        status=OrderStatus.DELIVERED,
                        order_date=now - timedelta(days=90),
                    ),
                    Order(
                        order_id='ORD-1003',
                        employee_id='EMP-0002',
                        category='shoe',
                        status=OrderStatus.DISPATCHED,
                        order_date=now - timedelta(days=10),
                    ),
                ]
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed complete')
