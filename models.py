# Records are kept as plain dictionaries so they can be stored as JSON,
# loaded into pandas frames and returned from Flask views without conversion.
#
# Batch:   {'id', 'name', 'start_year', 'active', 'semesters'}
# Subject: {'name', 'max_marks'}
# Student: {'id', 'name', 'roll_number', 'batch', 'semester', 'section', 'marks'}
#
# The subject catalog is keyed by batch id, then by semester number:
#     {'2024': {1: [subject, ...], 2: [...]}}

import time
from typing import Dict, List, Optional

DEFAULT_MAX_MARKS = 100
DEFAULT_SEMESTERS = 6
MIN_SEMESTERS = 1
MAX_SEMESTERS = 12

DEFAULT_SUBJECT_NAMES = ['Mathematics', 'Physics', 'Chemistry', 'Programming', 'English']
SEED_BATCH_IDS = ['2021', '2022', '2023']


def make_batch(batch_id: str, semesters: int = DEFAULT_SEMESTERS) -> Dict:
    return {
        'id': batch_id,
        'name': f"{batch_id} Batch",
        'start_year': int(batch_id),
        'active': True,
        'semesters': semesters
    }


def make_subject(name: str, max_marks: int = DEFAULT_MAX_MARKS) -> Dict:
    return {'name': name, 'max_marks': max_marks}


def make_student(name: str, roll_number: str, batch: str, semester: int, section: str,
                 marks: Optional[Dict[str, int]] = None, student_id: Optional[int] = None) -> Dict:
    """Create a student record. Ids are derived from the current time in milliseconds."""
    if student_id is None:
        student_id = new_student_id()
    return {
        'id': student_id,
        'name': name,
        'roll_number': roll_number,
        'batch': batch,
        'semester': int(semester),
        'section': section,
        'marks': dict(marks or {})
    }


def new_student_id(offset: int = 0) -> int:
    return int(time.time() * 1000) + offset


def default_subjects() -> List[Dict]:
    return [make_subject(name) for name in DEFAULT_SUBJECT_NAMES]


def default_catalog(semesters: int = DEFAULT_SEMESTERS) -> Dict[int, List[Dict]]:
    return {semester: default_subjects() for semester in range(1, semesters + 1)}


def default_sections(semester: int) -> List[str]:
    return [f"{semester}{letter}" for letter in 'ABC']


def seed_batches() -> List[Dict]:
    return [make_batch(batch_id) for batch_id in SEED_BATCH_IDS]


def seed_subjects() -> Dict[str, Dict[int, List[Dict]]]:
    return {batch_id: default_catalog() for batch_id in SEED_BATCH_IDS}


def get_mark(student: Dict, subject_name: str) -> int:
    """Marks are sparse: a subject without an entry counts as 0."""
    return (student.get('marks') or {}).get(subject_name) or 0


def subject_max_marks(subject: Dict) -> int:
    return subject.get('max_marks') or DEFAULT_MAX_MARKS


def get_scope_subjects(subjects: Dict, batch_id: str, semester: int) -> List[Dict]:
    """Ordered subject list for a (batch, semester) scope, empty when unknown."""
    if not batch_id:
        return []
    return (subjects.get(batch_id) or {}).get(semester) or []


def find_batch(batches: List[Dict], batch_id: str) -> Optional[Dict]:
    return next((b for b in batches if b['id'] == batch_id), None)


def in_scope(student: Dict, batch_id: str, semester: int, section: str) -> bool:
    return (student.get('batch') == batch_id
            and student.get('semester') == semester
            and student.get('section') == section)
