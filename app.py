import os
import logging
from flask import Flask, request, jsonify, send_file
from werkzeug.utils import secure_filename

import records
from analytics import MarksAnalyzer, paginate
from excel_handler import ExcelHandler
from models import get_scope_subjects, default_sections, seed_batches, seed_subjects
from sample_data import create_sample_students
from database import (
    init_db, close_db, load_batches, load_students, load_subjects,
    save_batches, save_students, save_subjects, clear_storage
)

# Set up logging
logging.basicConfig(level=logging.DEBUG)

app = Flask(__name__)
app.secret_key = os.environ.get("SESSION_SECRET", "dev-secret-key-change-in-production")

# Configuration
UPLOAD_FOLDER = 'uploads'
EXPORT_FOLDER = 'exports'
ALLOWED_EXTENSIONS = {'xlsx', 'xls', 'csv'}
STUDENTS_PAGE_SIZE = 50
CHART_PAGE_SIZE = 10

app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['EXPORT_FOLDER'] = EXPORT_FOLDER
app.config['DATABASE'] = os.environ.get("STUDENT_MARKS_DB", "student_marks.db")
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max file size

analyzer = MarksAnalyzer()

def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS

@app.teardown_appcontext
def teardown_db(exception):
    close_db()

@app.errorhandler(ValueError)
def handle_value_error(e):
    # RecordsError and bad numeric parameters both land here
    return jsonify({'success': False, 'error': str(e)}), 400

def get_state():
    """Batches, students and subjects, loaded from storage on first use"""
    if 'BATCHES' not in app.config:
        init_db()
        app.config['BATCHES'] = load_batches()
        app.config['STUDENTS'] = load_students()
        app.config['SUBJECTS'] = load_subjects()
    return app.config['BATCHES'], app.config['STUDENTS'], app.config['SUBJECTS']

def commit(batches=None, students=None, subjects=None):
    """Replace the in-memory collections and mirror them to storage"""
    if batches is not None:
        app.config['BATCHES'] = batches
        save_batches(batches)
    if students is not None:
        app.config['STUDENTS'] = students
        save_students(students)
    if subjects is not None:
        app.config['SUBJECTS'] = subjects
        save_subjects(subjects)

def payload():
    return request.get_json(silent=True) or request.form

def scope_from(values):
    """(batch, semester, section) from request values; section defaults to the semester's first"""
    batch_id = str(values.get('batch') or '').strip()
    semester = int(values.get('semester') or 1)
    section = str(values.get('section') or '').strip() or default_sections(semester)[0]
    return batch_id, semester, section

@app.route('/')
def index():
    batches, students, subjects = get_state()
    return jsonify({
        'batch_count': len(batches),
        'student_count': len(students),
        'batches': analyzer.batch_summary(batches, students)
    })

# Batches and semesters

@app.route('/get_batches')
def get_batches():
    batches, students, _ = get_state()
    return jsonify(analyzer.batch_summary(batches, students))

@app.route('/add_batch', methods=['POST'])
def add_batch():
    data = payload()
    batches, _, subjects = get_state()
    semesters = int(data.get('semesters') or 6)

    batches, subjects = records.add_batch(batches, subjects, str(data.get('batch_id', '')), semesters)
    commit(batches=batches, subjects=subjects)
    return jsonify({'success': True, 'message': 'Batch added successfully'})

@app.route('/delete_batch', methods=['POST'])
def delete_batch():
    batch_id = str(payload().get('batch_id', '')).strip()
    batches, students, subjects = get_state()

    batches, students, subjects = records.remove_batch(batches, students, subjects, batch_id)
    commit(batches=batches, students=students, subjects=subjects)
    return jsonify({'success': True, 'message': f'Batch {batch_id} removed'})

@app.route('/add_semester', methods=['POST'])
def add_semester():
    batch_id = str(payload().get('batch_id', '')).strip()
    batches, _, subjects = get_state()

    batches, subjects = records.add_semester(batches, subjects, batch_id)
    commit(batches=batches, subjects=subjects)
    return jsonify({'success': True, 'message': 'Semester added'})

@app.route('/remove_semester', methods=['POST'])
def remove_semester():
    batch_id = str(payload().get('batch_id', '')).strip()
    batches, students, subjects = get_state()

    removed = len(students)
    batches, students, subjects = records.remove_semester(batches, students, subjects, batch_id)
    removed -= len(students)
    commit(batches=batches, students=students, subjects=subjects)
    return jsonify({'success': True, 'message': f'Semester removed ({removed} students deleted)'})

@app.route('/get_sections')
def get_sections():
    semester = int(request.args.get('semester') or 1)
    return jsonify(default_sections(semester))

# Subjects

@app.route('/get_subjects')
def get_subjects():
    _, _, subjects = get_state()
    batch_id, semester, _ = scope_from(request.args)
    return jsonify(get_scope_subjects(subjects, batch_id, semester))

@app.route('/add_subject', methods=['POST'])
def add_subject():
    data = payload()
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(data)
    max_marks = int(data.get('max_marks') or 100)

    subjects, students = records.add_subject(subjects, students, batch_id, semester, section,
                                             data.get('name', ''), max_marks)
    commit(students=students, subjects=subjects)
    return jsonify({'success': True, 'message': 'Subject added successfully'})

@app.route('/remove_subject', methods=['POST'])
def remove_subject():
    data = payload()
    _, students, subjects = get_state()
    batch_id, semester, _ = scope_from(data)

    subjects, students = records.remove_subject(subjects, students, batch_id, semester,
                                                data.get('name', ''))
    commit(students=students, subjects=subjects)
    return jsonify({'success': True, 'message': 'Subject removed'})

@app.route('/update_max_marks', methods=['POST'])
def update_max_marks():
    data = payload()
    _, _, subjects = get_state()
    batch_id, semester, _ = scope_from(data)

    subjects = records.update_max_marks(subjects, batch_id, semester, data.get('name', ''),
                                        data.get('max_marks'))
    commit(subjects=subjects)
    return jsonify({'success': True, 'message': 'Maximum marks updated'})

# Students

@app.route('/get_students')
def get_students():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.args)

    filtered = analyzer.filter_students(
        students, batch_id, semester, section,
        search_term=request.args.get('search', ''),
        sort_key=request.args.get('sort'),
        direction=request.args.get('direction', 'asc')
    )
    result = paginate(filtered,
                      page=int(request.args.get('page') or 1),
                      page_size=int(request.args.get('page_size') or STUDENTS_PAGE_SIZE))

    scope_subjects = get_scope_subjects(subjects, batch_id, semester)
    result['items'] = [
        dict(s, percentage=f"{analyzer.student_percentage(s, scope_subjects):.1f}")
        for s in result['items']
    ]
    return jsonify(result)

@app.route('/add_student', methods=['POST'])
def add_student():
    data = payload()
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(data)
    marks = data.get('marks') if isinstance(data.get('marks'), dict) else {}

    students = records.add_student(students, subjects, batch_id, semester, section,
                                   data.get('name', ''), data.get('roll_number', ''), marks)
    commit(students=students)
    return jsonify({'success': True, 'message': 'Student added successfully', 'student': students[-1]})

@app.route('/delete_student', methods=['POST'])
def delete_student():
    _, students, _ = get_state()
    students = records.delete_student(students, payload().get('id'))
    commit(students=students)
    return jsonify({'success': True, 'message': 'Student deleted successfully'})

@app.route('/update_marks', methods=['POST'])
def update_marks():
    data = payload()
    _, students, subjects = get_state()

    students = records.update_mark(students, subjects, data.get('id'), data.get('subject', ''),
                                   data.get('value'))
    commit(students=students)
    return jsonify({'success': True})

# Spreadsheet import / export

@app.route('/upload_marks', methods=['POST'])
def upload_marks():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.form)

    if not batch_id:
        return jsonify({'success': False, 'error': 'Please select a batch first'}), 400

    if 'file' not in request.files or request.files['file'].filename == '':
        return jsonify({'success': False, 'error': 'No file selected'}), 400

    file = request.files['file']
    if not (file and file.filename and allowed_file(file.filename)):
        return jsonify({'success': False, 'error': 'Invalid file type. Please upload .xlsx, .xls or .csv'}), 400

    try:
        os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
        filepath = os.path.join(app.config['UPLOAD_FOLDER'], secure_filename(file.filename))
        file.save(filepath)

        excel_handler = ExcelHandler(app.config['EXPORT_FOLDER'])
        imported = excel_handler.read_marks_data(
            filepath, batch_id, semester, section, get_scope_subjects(subjects, batch_id, semester)
        )
        if imported is None:
            return jsonify({'success': False,
                            'error': 'Error reading file. Please ensure it has the correct format.'}), 400

        subjects, students = records.merge_import(subjects, students, batch_id, semester, imported)
        commit(students=students, subjects=subjects)
        return jsonify({
            'success': True,
            'message': f"Successfully imported {len(imported['students'])} students!",
            'new_subjects': [s['name'] for s in imported['new_subjects']]
        })

    except Exception as e:
        logging.error(f"Error uploading file: {str(e)}")
        return jsonify({'success': False, 'error': f'Error uploading file: {str(e)}'}), 500

@app.route('/export_marks')
def export_marks():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.args)

    excel_handler = ExcelHandler(app.config['EXPORT_FOLDER'])
    filepath = excel_handler.export_marks(students, batch_id, semester, section,
                                          get_scope_subjects(subjects, batch_id, semester))
    if not filepath:
        return jsonify({'success': False, 'error': 'No students found to export'}), 404

    return send_file(os.path.abspath(filepath), as_attachment=True,
                     download_name=os.path.basename(filepath))

# Analytics

@app.route('/analytics/subjects')
def subject_statistics():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.args)

    scope_students = analyzer.scope_students(students, batch_id, semester, section)
    return jsonify(analyzer.subject_statistics(scope_students,
                                               get_scope_subjects(subjects, batch_id, semester)))

@app.route('/analytics/weak_students')
def weak_students():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.args)
    return jsonify(analyzer.analyze_weak_students(students, batch_id, semester, section, subjects))

@app.route('/analytics/export_weak_students')
def export_weak_students():
    _, students, subjects = get_state()
    batch_id, semester, section = scope_from(request.args)

    weak = analyzer.analyze_weak_students(students, batch_id, semester, section, subjects)
    excel_handler = ExcelHandler(app.config['EXPORT_FOLDER'])
    filepath = excel_handler.export_weak_students(weak, batch_id, semester, section)
    if not filepath:
        return jsonify({'success': False, 'error': 'Error exporting weak student report'}), 500

    return send_file(os.path.abspath(filepath), as_attachment=True,
                     download_name=os.path.basename(filepath))

@app.route('/analytics/trend')
def student_trend():
    batches, students, subjects = get_state()
    return jsonify(analyzer.student_trend(request.args.get('batch', ''), request.args.get('student_id'),
                                          students, batches, subjects))

@app.route('/analytics/students')
def analytics_students():
    _, students, _ = get_state()
    return jsonify(analyzer.student_options(students, request.args.get('batch', '')))

@app.route('/analytics/marks_chart')
def marks_chart():
    _, students, _ = get_state()
    batch_id, semester, section = scope_from(request.args)

    scope_students = analyzer.scope_students(students, batch_id, semester, section)
    return jsonify(analyzer.marks_chart_page(scope_students,
                                             page=int(request.args.get('page') or 0),
                                             per_page=CHART_PAGE_SIZE))

# Data management

@app.route('/load_sample_data', methods=['POST'])
def load_sample_data():
    batches, students, subjects = get_state()
    batch_id = '2023'

    if not any(b['id'] == batch_id for b in batches):
        batches, subjects = records.add_batch(batches, subjects, batch_id)

    sample = create_sample_students(batch_id, semesters=(1, 2),
                                    subject_names=[s['name'] for s in get_scope_subjects(subjects, batch_id, 1)])
    _, students = records.merge_import(subjects, students, batch_id, 1, {'students': sample})
    commit(batches=batches, students=students, subjects=subjects)
    return jsonify({'success': True, 'message': f'Sample data loaded: {len(sample)} student records'})

@app.route('/clear_data', methods=['POST'])
def clear_data():
    get_state()
    data_type = payload().get('data_type')

    if data_type == 'students':
        commit(students=[])
        message = 'Student data cleared'
    elif data_type == 'all':
        clear_storage()
        commit(batches=seed_batches(), students=[], subjects=seed_subjects())
        message = 'All data cleared'
    else:
        return jsonify({'success': False, 'error': 'Unknown data type'}), 400

    return jsonify({'success': True, 'message': message})

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=True)
