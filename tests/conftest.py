"""
Shared test fixtures for the student marks dashboard.

Records are plain dictionaries; the helpers below keep test data short.
"""

import pytest
from flask import Flask

from models import make_student, make_subject


def student(name, roll_number, marks=None, batch='2024', semester=1, section='1A', student_id=None):
    """Helper to create a student record with minimal boilerplate."""
    return make_student(name, roll_number, batch, semester, section, marks or {}, student_id=student_id)


@pytest.fixture
def catalog():
    return {
        '2024': {
            1: [make_subject('Math', 100), make_subject('Physics', 100)],
            2: [make_subject('Math', 50), make_subject('Chemistry', 100)],
            3: []
        }
    }


@pytest.fixture
def batches():
    return [
        {'id': '2024', 'name': '2024 Batch', 'start_year': 2024, 'active': True, 'semesters': 3},
        {'id': '2023', 'name': '2023 Batch', 'start_year': 2023, 'active': True, 'semesters': 6},
    ]


@pytest.fixture
def section_students():
    return [
        student('Charlie Brown', 'R3', {'Math': 90, 'Physics': 85}, student_id=3),
        student('alice Smith', 'R1', {'Math': 40, 'Physics': 70}, student_id=1),
        student('Bob Jones', 'R2', {'Physics': 20}, student_id=2),
        student('Other Section', 'R9', {'Math': 10}, section='1B', student_id=9),
        student('Other Batch', 'R1', {'Math': 10}, batch='2023', student_id=10),
        student('Next Semester', 'R1', {'Math': 45, 'Chemistry': 80}, semester=2, section='2A', student_id=11),
    ]


@pytest.fixture
def store_app(tmp_path):
    """A bare Flask app pointing the store at a temporary SQLite file."""
    app = Flask(__name__)
    app.config['DATABASE'] = str(tmp_path / 'store.db')
    return app


@pytest.fixture
def client(tmp_path):
    from app import app

    app.config.update(
        TESTING=True,
        DATABASE=str(tmp_path / 'marks.db'),
        UPLOAD_FOLDER=str(tmp_path / 'uploads'),
        EXPORT_FOLDER=str(tmp_path / 'exports'),
    )
    for key in ('BATCHES', 'STUDENTS', 'SUBJECTS'):
        app.config.pop(key, None)

    with app.test_client() as test_client:
        yield test_client

    for key in ('BATCHES', 'STUDENTS', 'SUBJECTS'):
        app.config.pop(key, None)
