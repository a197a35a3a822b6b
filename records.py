import copy
import math
import logging
from typing import Dict, List, Tuple, Optional

from models import (
    MAX_SEMESTERS, MIN_SEMESTERS, DEFAULT_MAX_MARKS, DEFAULT_SEMESTERS,
    make_batch, make_subject, make_student, new_student_id, default_subjects, default_catalog,
    find_batch, get_scope_subjects, subject_max_marks, in_scope
)

logger = logging.getLogger(__name__)


class RecordsError(ValueError):
    """An action that would leave the records in an invalid configuration."""


# Every action returns new collections and leaves its arguments untouched.

def add_batch(batches: List[Dict], subjects: Dict, batch_id: str,
              semesters: int = DEFAULT_SEMESTERS) -> Tuple[List[Dict], Dict]:
    batch_id = (batch_id or '').strip()
    if not batch_id or not batch_id.isdigit():
        raise RecordsError('Please enter a valid batch year (e.g., 2024)')

    if find_batch(batches, batch_id):
        raise RecordsError('Batch already exists')

    if semesters < MIN_SEMESTERS or semesters > MAX_SEMESTERS:
        raise RecordsError(f'Please enter a valid number of semesters ({MIN_SEMESTERS}-{MAX_SEMESTERS})')

    new_subjects = copy.deepcopy(subjects)
    new_subjects[batch_id] = default_catalog(semesters)
    logger.info(f"Added batch {batch_id} with {semesters} semesters")
    return batches + [make_batch(batch_id, semesters)], new_subjects


def remove_batch(batches: List[Dict], students: List[Dict], subjects: Dict,
                 batch_id: str) -> Tuple[List[Dict], List[Dict], Dict]:
    if len(batches) <= 1:
        raise RecordsError('Cannot remove the only batch')

    if not find_batch(batches, batch_id):
        raise RecordsError('Batch not found')

    new_subjects = copy.deepcopy(subjects)
    new_subjects.pop(batch_id, None)
    remaining_students = [s for s in students if s.get('batch') != batch_id]
    logger.info(f"Removed batch {batch_id} and {len(students) - len(remaining_students)} student records")
    return [b for b in batches if b['id'] != batch_id], remaining_students, new_subjects


def add_semester(batches: List[Dict], subjects: Dict, batch_id: str) -> Tuple[List[Dict], Dict]:
    batch = find_batch(batches, batch_id)
    if not batch:
        raise RecordsError('Batch not found')

    if batch['semesters'] >= MAX_SEMESTERS:
        raise RecordsError(f'Maximum {MAX_SEMESTERS} semesters allowed')

    new_semester = batch['semesters'] + 1
    new_subjects = copy.deepcopy(subjects)
    new_subjects.setdefault(batch_id, {})[new_semester] = default_subjects()

    new_batches = [dict(b, semesters=new_semester) if b['id'] == batch_id else b for b in batches]
    return new_batches, new_subjects


def remove_semester(batches: List[Dict], students: List[Dict], subjects: Dict,
                    batch_id: str) -> Tuple[List[Dict], List[Dict], Dict]:
    """Drop the last semester of a batch together with its students and subjects."""
    batch = find_batch(batches, batch_id)
    if not batch or batch['semesters'] <= MIN_SEMESTERS:
        raise RecordsError('Cannot remove the only semester')

    last = batch['semesters']
    remaining_students = [
        s for s in students if not (s.get('batch') == batch_id and s.get('semester') == last)
    ]

    new_subjects = copy.deepcopy(subjects)
    if batch_id in new_subjects:
        new_subjects[batch_id].pop(last, None)

    new_batches = [dict(b, semesters=last - 1) if b['id'] == batch_id else b for b in batches]
    return new_batches, remaining_students, new_subjects


def add_subject(subjects: Dict, students: List[Dict], batch_id: str, semester: int, section: str,
                name: str, max_marks: int = DEFAULT_MAX_MARKS) -> Tuple[Dict, List[Dict]]:
    name = (name or '').strip()
    if not name:
        raise RecordsError('Please enter a subject name')

    if not batch_id:
        raise RecordsError('Please select a batch first')

    current = get_scope_subjects(subjects, batch_id, semester)
    if name in [s['name'] for s in current]:
        raise RecordsError('Subject already exists for this semester')

    if max_marks is None or max_marks <= 0:
        raise RecordsError('Maximum marks must be a positive number')

    new_subjects = copy.deepcopy(subjects)
    new_subjects.setdefault(batch_id, {})[semester] = list(current) + [make_subject(name, max_marks)]

    # students already in this section start at 0 for the new subject
    new_students = []
    for student in students:
        if in_scope(student, batch_id, semester, section):
            student = dict(student, marks={**(student.get('marks') or {}), name: 0})
        new_students.append(student)

    return new_subjects, new_students


def remove_subject(subjects: Dict, students: List[Dict], batch_id: str, semester: int,
                   name: str) -> Tuple[Dict, List[Dict]]:
    if not batch_id:
        raise RecordsError('Please select a batch first')

    current = get_scope_subjects(subjects, batch_id, semester)
    if name not in [s['name'] for s in current]:
        raise RecordsError('Subject not found')

    if len(current) <= 1:
        raise RecordsError('Cannot remove the only subject')

    new_subjects = copy.deepcopy(subjects)
    new_subjects[batch_id][semester] = [s for s in current if s['name'] != name]

    new_students = []
    for student in students:
        if student.get('batch') == batch_id and student.get('semester') == semester:
            marks = dict(student.get('marks') or {})
            marks.pop(name, None)
            student = dict(student, marks=marks)
        new_students.append(student)

    return new_subjects, new_students


def update_max_marks(subjects: Dict, batch_id: str, semester: int, name: str, value) -> Dict:
    if not batch_id:
        raise RecordsError('Please select a batch first')

    max_marks = parse_int(value) or DEFAULT_MAX_MARKS
    if max_marks < 0:
        max_marks = DEFAULT_MAX_MARKS

    new_subjects = copy.deepcopy(subjects)
    current = get_scope_subjects(new_subjects, batch_id, semester)
    if name not in [s['name'] for s in current]:
        raise RecordsError('Subject not found')

    new_subjects[batch_id][semester] = [
        dict(s, max_marks=max_marks) if s['name'] == name else s for s in current
    ]
    return new_subjects


def add_student(students: List[Dict], subjects: Dict, batch_id: str, semester: int, section: str,
                name: str, roll_number: str, marks: Optional[Dict] = None) -> List[Dict]:
    name = (name or '').strip()
    roll_number = (roll_number or '').strip()
    if not name or not roll_number:
        raise RecordsError('Please enter student name and roll number')

    if not batch_id:
        raise RecordsError('Please select a batch first')

    duplicate = next((s for s in students
                      if s.get('roll_number') == roll_number
                      and s.get('batch') == batch_id
                      and s.get('semester') == semester), None)
    if duplicate:
        raise RecordsError('Student with this roll number already exists in this semester')

    # marks for subjects outside the semester are dropped
    scope_subjects = get_scope_subjects(subjects, batch_id, semester)
    marks = {
        subject['name']: clamp_mark(marks[subject['name']], subject)
        for subject in scope_subjects if subject['name'] in (marks or {})
    }

    return students + [make_student(name, roll_number, batch_id, semester, section, marks,
                                    student_id=next_student_id(students))]


def delete_student(students: List[Dict], student_id) -> List[Dict]:
    remaining = [s for s in students if str(s.get('id')) != str(student_id)]
    if len(remaining) == len(students):
        raise RecordsError('Student not found')
    return remaining


def update_mark(students: List[Dict], subjects: Dict, student_id, subject_name: str,
                value) -> List[Dict]:
    """Set one mark, clamped between 0 and the subject's maximum marks."""
    student = next((s for s in students if str(s.get('id')) == str(student_id)), None)
    if student is None:
        raise RecordsError('Student not found')

    scope_subjects = get_scope_subjects(subjects, student.get('batch'), student.get('semester'))
    subject = next((s for s in scope_subjects if s['name'] == subject_name), None)
    if subject is None:
        raise RecordsError('Subject not found')
    mark = clamp_mark(value, subject)

    return [
        dict(s, marks={**(s.get('marks') or {}), subject_name: mark}) if s is student else s
        for s in students
    ]


def merge_import(subjects: Dict, students: List[Dict], batch_id: str, semester: int,
                 imported: Dict) -> Tuple[Dict, List[Dict]]:
    """Append an import result: newly detected subjects first, then the student rows."""
    new_subjects = copy.deepcopy(subjects)
    if imported.get('new_subjects'):
        current = get_scope_subjects(new_subjects, batch_id, semester)
        new_subjects.setdefault(batch_id, {})[semester] = list(current) + list(imported['new_subjects'])

    imported_students = list(imported.get('students') or [])
    taken = {s.get('id') for s in students}
    if any(s.get('id') in taken for s in imported_students):
        first_id = next_student_id(students)
        imported_students = [dict(s, id=first_id + idx) for idx, s in enumerate(imported_students)]

    return new_subjects, students + imported_students


def next_student_id(students: List[Dict]) -> int:
    """A time-derived id that is larger than every id already in use."""
    used = [s['id'] for s in students if isinstance(s.get('id'), int)]
    return max([new_student_id()] + [i + 1 for i in used])


def clamp_mark(value, subject: Dict) -> int:
    return min(max(parse_int(value), 0), subject_max_marks(subject))


def parse_int(value) -> int:
    """Integer prefix of a value, 0 when it has none."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0

    text = str(value if value is not None else '').strip()
    digits = ''
    for i, char in enumerate(text):
        if char in '0123456789' or (i == 0 and char in '+-'):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0
