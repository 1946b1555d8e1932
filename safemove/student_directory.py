import logging

from sqlalchemy.orm import Session

from safemove.errors import NotFoundError, ValidationError
from safemove.models import Student, STUDENT_STATUSES, STATUS_INSIDE
from safemove.timer import utcnow

logger = logging.getLogger(__name__)


def add(db: Session, name: str, phone: str, image=None, status=STATUS_INSIDE):
    if not name or not name.strip() or not phone or not phone.strip():
        raise ValidationError("Name and phone are required")
    if status not in STUDENT_STATUSES:
        raise ValidationError(f"Unknown student status '{status}'")

    student = Student(
        name=name.strip(),
        phone=phone.strip(),
        image=image,
        status=status,
        created_at=utcnow(),
    )
    db.add(student)
    db.commit()
    db.refresh(student)

    logger.info("Added student %s (%s)", student.id, student.name)
    return student


def find(db: Session, name="", status_not=None):
    """Students whose name contains ``name``, optionally excluding one status."""
    query = db.query(Student).filter(Student.name.like(f"%{name or ''}%"))
    if status_not:
        query = query.filter(Student.status != status_not)
    return query.order_by(Student.name.asc(), Student.id.asc()).all()


def get(db: Session, student_id: int):
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError(f"Student {student_id} not found")
    return student


def set_status(db: Session, student_id: int, status: str):
    # Callers own the transaction; this only stages the change
    if status not in STUDENT_STATUSES:
        raise ValidationError(f"Unknown student status '{status}'")
    student = get(db, student_id)
    student.status = status
    return student
