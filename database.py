import json
import sqlite3
import logging
from flask import g, current_app

from models import seed_batches, seed_subjects

logger = logging.getLogger(__name__)

# Key names mirror the browser local storage keys of the dashboard
BATCHES_KEY = 'studentMarks_batches'
STUDENTS_KEY = 'studentMarks_students'
SUBJECTS_KEY = 'studentMarks_subjects'


def get_db():
    """Get a database connection"""
    if 'db' not in g:
        g.db = sqlite3.connect(current_app.config['DATABASE'])
        g.db.row_factory = sqlite3.Row
    return g.db

def close_db(e=None):
    """Close the database connection"""
    db = g.pop('db', None)
    if db is not None:
        db.close()

def init_db():
    """Initialize the key-value table"""
    db = get_db()
    db.execute("""
        CREATE TABLE IF NOT EXISTS storage (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)
    db.commit()

def get_item(key):
    """Raw stored value for a key, or None"""
    row = get_db().execute("SELECT value FROM storage WHERE key = ?", [key]).fetchone()
    return row['value'] if row else None

def set_item(key, value):
    db = get_db()
    db.execute(
        "INSERT INTO storage (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value)
    )
    db.commit()

def _load(key, default_factory, label):
    try:
        raw = get_item(key)
        if raw is None:
            return default_factory()
        return json.loads(raw)
    except (sqlite3.Error, ValueError) as e:
        logger.error(f"Error loading {label}: {str(e)}")
        return default_factory()

def _save(key, data, label):
    try:
        set_item(key, json.dumps(data))
    except (sqlite3.Error, TypeError, ValueError) as e:
        logger.error(f"Error saving {label}: {str(e)}")

# Batches
def load_batches():
    return _load(BATCHES_KEY, seed_batches, 'batches')

def save_batches(batches):
    _save(BATCHES_KEY, batches, 'batches')

# Students
def load_students():
    return _load(STUDENTS_KEY, list, 'students')

def save_students(students):
    _save(STUDENTS_KEY, students, 'students')

# Subjects with max marks
def load_subjects():
    """Subject catalog; JSON object keys come back as strings so semesters are restored to int"""
    catalog = _load(SUBJECTS_KEY, seed_subjects, 'subjects')
    try:
        return {
            batch_id: {int(semester): subjects for semester, subjects in semesters.items()}
            for batch_id, semesters in catalog.items()
        }
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Error reading subject catalog: {str(e)}")
        return seed_subjects()

def save_subjects(subjects):
    _save(SUBJECTS_KEY, subjects, 'subjects')

def clear_storage():
    try:
        db = get_db()
        db.execute("DELETE FROM storage")
        db.commit()
    except sqlite3.Error as e:
        logger.error(f"Error clearing storage: {str(e)}")
