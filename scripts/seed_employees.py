from leave_ledger.database import SessionLocal, init_db
from leave_ledger.models.employee import Employee
from leave_ledger.core.config import settings

init_db()
db = SessionLocal()

def create_employee(employee_id, full_name, email, department=None, tenant_id=settings.default_tenant_id):
    # Check if employee already exists to avoid unique constraint errors
    existing = db.get(Employee, (tenant_id, employee_id))
    if existing:
        print(f"Employee {employee_id} already exists. Skipping.")
        return

    employee = Employee(
        id=employee_id,
        tenant_id=tenant_id,
        full_name=full_name,
        email=email,
        department=department,
        is_active=True
    )
    db.add(employee)
    db.commit()
    print(f"Created {employee_id} -> {email} ({tenant_id})")

create_employee("EMP001", "Alice Example", "alice@example.com", "Engineering")
create_employee("EMP002", "Bob Example", "bob@example.com", "Engineering")
create_employee("MGR001", "Morgan Manager", "manager@example.com", "Engineering")

db.close()
