# seed_db.py

from sqlalchemy.orm import Session
from safemove.db import SessionLocal, engine, Base
from safemove.models import Student
from safemove.timer import utcnow


def seed_students():
    Base.metadata.create_all(bind=engine) # Ensure tables exist
    db: Session = SessionLocal()

    # Sample residents for trying the admin and student pages
    test_students = [
        {"name": "Aarav Sharma", "phone": "+918077868866"},
        {"name": "Diya Patel", "phone": "+917505405151"},
        {"name": "Kabir Singh", "phone": "+919773945332"},
    ]

    # Check if students already exist to prevent duplicates
    if db.query(Student).count() == 0:
        for student_data in test_students:
            db.add(Student(status="inside", created_at=utcnow(), **student_data))

        db.commit()
        print(f"Successfully created {len(test_students)} test students.")
    else:
        print("Database already contains students. Skipping seed process.")

    db.close()

if __name__ == "__main__":
    seed_students()
