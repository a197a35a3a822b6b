import math
import logging
from typing import List, Dict, Optional

from models import get_mark, subject_max_marks, get_scope_subjects, find_batch, in_scope

PASS_FRACTION = 0.4
WEAK_PERCENTAGE = 50
WEAK_AVERAGE_FRACTION = 0.7
HIGH_RISK_BELOW = 40
MEDIUM_RISK_BELOW = 50

SORT_KEYS = {
    'name': 'name',
    'roll_number': 'roll_number',
    'rollNo': 'roll_number'
}


def classify_risk(percentage: float) -> str:
    if percentage < HIGH_RISK_BELOW:
        return 'high'
    if percentage < MEDIUM_RISK_BELOW:
        return 'medium'
    return 'low'


class MarksAnalyzer:
    """
    Derived views over the student records.

    Every method reads the collections it is given and returns new lists;
    nothing here mutates its input or keeps state between calls.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def scope_students(self, students: List[Dict], batch_id: str,
                       semester: int, section: str) -> List[Dict]:
        if not batch_id:
            return []
        return [s for s in students if in_scope(s, batch_id, semester, section)]

    def filter_students(self, students: List[Dict], batch_id: str, semester: int, section: str,
                        search_term: str = '', sort_key: Optional[str] = None,
                        direction: str = 'asc') -> List[Dict]:
        """
        Students of one (batch, semester, section) scope, optionally narrowed
        by a search term and sorted by name or roll number.
        """
        filtered = self.scope_students(students, batch_id, semester, section)

        term = (search_term or '').strip().lower()
        if term:
            filtered = [
                s for s in filtered
                if term in str(s.get('name', '')).lower()
                or term in str(s.get('roll_number', '')).lower()
            ]

        field = SORT_KEYS.get(sort_key) if sort_key else None
        if field:
            # sorted() is stable in both directions, ties keep collection order
            filtered = sorted(filtered,
                              key=lambda s: str(s.get(field, '')).lower(),
                              reverse=(direction == 'desc'))

        return filtered

    def subject_statistics(self, scope_students: List[Dict],
                           scope_subjects: List[Dict]) -> List[Dict]:
        """
        Per-subject class average and pass/fail counts.

        A mark passes when it reaches 40% of the subject's maximum; a missing
        mark counts as 0 and therefore fails.
        """
        if not scope_students:
            return []

        stats = []
        for subject in scope_subjects:
            max_marks = subject_max_marks(subject)
            marks = [get_mark(s, subject['name']) for s in scope_students]
            average = sum(marks) / len(marks)
            passed = sum(1 for m in marks if m >= PASS_FRACTION * max_marks)

            stats.append({
                'subject': subject['name'],
                'max_marks': max_marks,
                'average': average,
                'average_display': f"{average:.2f}",
                'pass_count': passed,
                'fail_count': len(marks) - passed,
                'total_count': len(marks)
            })
        return stats

    def positive_averages(self, scope_students: List[Dict],
                          scope_subjects: List[Dict]) -> Dict[str, float]:
        """Class average per subject over positive marks only, 0 when there are none."""
        averages = {}
        for subject in scope_subjects:
            marks = [m for m in (get_mark(s, subject['name']) for s in scope_students) if m > 0]
            averages[subject['name']] = sum(marks) / len(marks) if marks else 0
        return averages

    def analyze_weak_students(self, students: List[Dict], batch_id: str, semester: int,
                              section: str, subjects: Dict) -> List[Dict]:
        """
        Students with at least one weak subject, most weak subjects first.

        A subject is weak for a student when the mark is below 50% of the
        maximum, or below 70% of the class average of positive marks.
        """
        if not batch_id:
            return []

        scope_subjects = get_scope_subjects(subjects, batch_id, semester)
        scope_students = self.scope_students(students, batch_id, semester, section)
        if not scope_students:
            return []

        averages = self.positive_averages(scope_students, scope_subjects)
        total_max_marks = sum(subject_max_marks(sub) for sub in scope_subjects)

        weak = []
        for student in scope_students:
            weak_subjects = []
            for subject in scope_subjects:
                name = subject['name']
                mark = get_mark(student, name)
                percentage = mark / subject_max_marks(subject) * 100
                if percentage < WEAK_PERCENTAGE or mark < averages[name] * WEAK_AVERAGE_FRACTION:
                    weak_subjects.append(name)

            if not weak_subjects:
                continue

            total_marks = sum(get_mark(student, sub['name']) for sub in scope_subjects)
            overall = total_marks / total_max_marks * 100 if total_max_marks > 0 else 0

            entry = dict(student)
            entry.update({
                'weak_subjects': weak_subjects,
                'average_percentage': overall,
                'avg_marks': f"{overall:.2f}",
                'risk_level': classify_risk(overall)
            })
            weak.append(entry)

        weak.sort(key=lambda s: len(s['weak_subjects']), reverse=True)
        self.logger.debug(f"{len(weak)} of {len(scope_students)} students flagged in "
                          f"{batch_id} semester {semester} section {section}")
        return weak

    def student_trend(self, batch_id: str, student_id, students: List[Dict],
                      batches: List[Dict], subjects: Dict) -> List[Dict]:
        """
        Overall percentage of one student in every semester of a batch.

        The same person is enrolled once per semester; records are joined on
        roll number within the batch. Semesters without a record (or without
        subjects) are reported as zeros.
        """
        if not batch_id or student_id in (None, ''):
            return []

        student = next((s for s in students if str(s.get('id')) == str(student_id)), None)
        if student is None:
            return []

        batch = find_batch(batches, batch_id)
        if batch is None:
            return []

        roll_number = student.get('roll_number')
        trend = []
        for semester in range(1, batch['semesters'] + 1):
            entry = {
                'semester': semester,
                'semester_label': f"Sem {semester}",
                'average': 0,
                'total_marks': 0,
                'total_max_marks': 0
            }

            # first enrollment wins if the roll number repeats within a semester
            record = next((s for s in students
                           if s.get('batch') == batch_id
                           and s.get('semester') == semester
                           and s.get('roll_number') == roll_number), None)
            scope_subjects = get_scope_subjects(subjects, batch_id, semester)

            if record is not None and scope_subjects:
                total_marks = sum(get_mark(record, sub['name']) for sub in scope_subjects)
                total_max_marks = sum(subject_max_marks(sub) for sub in scope_subjects)
                average = total_marks / total_max_marks * 100 if total_max_marks > 0 else 0
                entry.update({
                    'average': round(average, 2),
                    'total_marks': total_marks,
                    'total_max_marks': total_max_marks
                })

            trend.append(entry)

        return trend

    def students_for_batch(self, students: List[Dict], batch_id: str) -> List[Dict]:
        """One record per roll number within a batch, first occurrence wins."""
        if not batch_id:
            return []

        unique = []
        seen = set()
        for student in students:
            if student.get('batch') == batch_id and student.get('roll_number') not in seen:
                seen.add(student.get('roll_number'))
                unique.append(student)
        return unique

    def student_options(self, students: List[Dict], batch_id: str) -> List[Dict]:
        return [
            {'value': str(s['id']), 'label': f"{s.get('name')} ({s.get('roll_number')})"}
            for s in self.students_for_batch(students, batch_id)
        ]

    def marks_chart_page(self, scope_students: List[Dict], page: int = 0,
                         per_page: int = 10) -> Dict:
        """Rows of {name, <subject>: mark} for the per-student chart, paged from 0."""
        total_pages = math.ceil(len(scope_students) / per_page) if per_page > 0 else 0
        page = max(0, min(page, total_pages - 1)) if total_pages else 0
        start = page * per_page

        rows = []
        for student in scope_students[start:start + per_page]:
            row = {'name': student.get('name')}
            row.update(student.get('marks') or {})
            rows.append(row)

        return {'rows': rows, 'page': page, 'total_pages': total_pages}

    def student_percentage(self, student: Dict, scope_subjects: List[Dict]) -> float:
        total_max_marks = sum(subject_max_marks(sub) for sub in scope_subjects)
        if total_max_marks <= 0:
            return 0
        total_marks = sum(get_mark(student, sub['name']) for sub in scope_subjects)
        return total_marks / total_max_marks * 100

    def batch_summary(self, batches: List[Dict], students: List[Dict]) -> List[Dict]:
        summary = []
        for batch in batches:
            count = sum(1 for s in students if s.get('batch') == batch['id'])
            summary.append({
                'id': batch['id'],
                'name': batch.get('name'),
                'semesters': batch.get('semesters'),
                'student_count': count
            })
        return summary


def paginate(items: List, page: int = 1, page_size: int = 50) -> Dict:
    """Slice a list into 1-based pages; out-of-range pages are clamped."""
    total = len(items)
    page_size = max(1, page_size)
    total_pages = math.ceil(total / page_size)
    page = max(1, min(page, total_pages)) if total_pages else 1
    start = (page - 1) * page_size

    return {
        'items': items[start:start + page_size],
        'page': page,
        'page_size': page_size,
        'total': total,
        'total_pages': total_pages
    }
