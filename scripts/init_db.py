from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attendance_ledger.db import Base, SessionLocal, engine
from attendance_ledger.models import SchoolClass, Student, Subject


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(SchoolClass).first():
        school_class = SchoolClass(name='JSS 1A')
        db.add(school_class)
        db.add_all([Subject(name='Mathematics', code='MTH'), Subject(name='English Language', code='ENG')])
        db.commit()
        db.refresh(school_class)

        db.add_all(
            [
                Student(full_name='Adaeze Okafor', admission_number='ADM-001', class_id=school_class.id),
                Student(full_name='Bola Adeyemi', admission_number='ADM-002', class_id=school_class.id),
                Student(full_name='Chinedu Eze', admission_number='ADM-003', class_id=school_class.id),
            ]
        )
        db.commit()
finally:
    db.close()

print('DB initialized with sample data.')
