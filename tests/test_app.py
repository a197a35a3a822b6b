"""Tests for the Flask endpoints of the dashboard."""

import io

import openpyxl
import pandas as pd


def add_students(client, *rows, batch='2023', semester=1, section='1A'):
    for name, roll, marks in rows:
        response = client.post('/add_student', json={
            'batch': batch, 'semester': semester, 'section': section,
            'name': name, 'roll_number': roll, 'marks': marks
        })
        assert response.status_code == 200


def workbook_bytes(rows, columns):
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buffer, index=False, engine='openpyxl')
    buffer.seek(0)
    return buffer


class TestState:
    def test_index_starts_from_seed_data(self, client):
        data = client.get('/').get_json()
        assert data['batch_count'] == 3
        assert data['student_count'] == 0
        assert [b['id'] for b in data['batches']] == ['2021', '2022', '2023']

    def test_changes_survive_reload(self, client):
        from app import app

        client.post('/add_batch', json={'batch_id': '2025', 'semesters': 4})
        add_students(client, ('Asha', 'R1', {'Mathematics': 70}))

        for key in ('BATCHES', 'STUDENTS', 'SUBJECTS'):
            app.config.pop(key)

        batches = client.get('/get_batches').get_json()
        assert [b['id'] for b in batches][-1] == '2025'
        subjects = client.get('/get_subjects?batch=2025&semester=4').get_json()
        assert len(subjects) == 5
        assert client.get('/').get_json()['student_count'] == 1

    def test_clear_data(self, client):
        add_students(client, ('Asha', 'R1', {}))
        client.post('/add_batch', json={'batch_id': '2025'})

        assert client.post('/clear_data', json={'data_type': 'students'}).status_code == 200
        assert client.get('/').get_json()['student_count'] == 0

        client.post('/clear_data', json={'data_type': 'all'})
        assert client.get('/').get_json()['batch_count'] == 3

    def test_clear_data_unknown_type(self, client):
        assert client.post('/clear_data', json={'data_type': 'rooms'}).status_code == 400

    def test_load_sample_data(self, client):
        data = client.post('/load_sample_data').get_json()
        assert data['success']

        students = client.get('/get_students?batch=2023&semester=2&section=2B').get_json()
        assert students['total'] == 12


class TestBatchEndpoints:
    def test_add_and_remove_batch(self, client):
        response = client.post('/add_batch', data={'batch_id': '2025', 'semesters': '2'})
        assert response.get_json()['success']

        assert client.post('/add_semester', json={'batch_id': '2025'}).status_code == 200
        assert client.get('/get_batches').get_json()[-1]['semesters'] == 3

        assert client.post('/remove_semester', json={'batch_id': '2025'}).status_code == 200
        assert client.post('/delete_batch', json={'batch_id': '2025'}).status_code == 200
        assert len(client.get('/get_batches').get_json()) == 3

    def test_duplicate_batch(self, client):
        response = client.post('/add_batch', json={'batch_id': '2021'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Batch already exists'

    def test_bad_semester_count(self, client):
        assert client.post('/add_batch', json={'batch_id': '2030', 'semesters': 'many'}).status_code == 400

    def test_cannot_delete_last_batch(self, client):
        client.post('/delete_batch', json={'batch_id': '2021'})
        client.post('/delete_batch', json={'batch_id': '2022'})
        response = client.post('/delete_batch', json={'batch_id': '2023'})
        assert response.status_code == 400
        assert 'only batch' in response.get_json()['error']

    def test_sections(self, client):
        assert client.get('/get_sections?semester=4').get_json() == ['4A', '4B', '4C']


class TestSubjectEndpoints:
    def test_add_subject_backfills_marks(self, client):
        add_students(client, ('Asha', 'R1', {}))
        response = client.post('/add_subject', json={
            'batch': '2023', 'semester': 1, 'section': '1A', 'name': 'Biology', 'max_marks': 50})
        assert response.status_code == 200

        subjects = client.get('/get_subjects?batch=2023&semester=1').get_json()
        assert subjects[-1] == {'name': 'Biology', 'max_marks': 50}
        student = client.get('/get_students?batch=2023&semester=1&section=1A').get_json()['items'][0]
        assert student['marks']['Biology'] == 0

    def test_update_and_remove_subject(self, client):
        client.post('/update_max_marks', json={'batch': '2023', 'semester': 1,
                                               'name': 'Physics', 'max_marks': '80'})
        subjects = client.get('/get_subjects?batch=2023&semester=1').get_json()
        assert subjects[1] == {'name': 'Physics', 'max_marks': 80}

        client.post('/remove_subject', json={'batch': '2023', 'semester': 1, 'name': 'Physics'})
        names = [s['name'] for s in client.get('/get_subjects?batch=2023&semester=1').get_json()]
        assert 'Physics' not in names

    def test_duplicate_subject(self, client):
        response = client.post('/add_subject', json={'batch': '2023', 'semester': 1, 'name': 'English'})
        assert response.status_code == 400


class TestStudentEndpoints:
    def test_filter_sort_and_paginate(self, client):
        add_students(client, ('charlie', 'R3', {}), ('Alice', 'R1', {}), ('bob', 'R2', {}))

        data = client.get('/get_students?batch=2023&semester=1&section=1A'
                          '&sort=name&direction=desc&page_size=2').get_json()
        assert [s['name'] for s in data['items']] == ['charlie', 'bob']
        assert data['total_pages'] == 2

        data = client.get('/get_students?batch=2023&semester=1&section=1A&search=R1').get_json()
        assert [s['name'] for s in data['items']] == ['Alice']

    def test_row_percentage(self, client):
        add_students(client, ('Asha', 'R1', {'Mathematics': 100, 'Physics': 50}))
        item = client.get('/get_students?batch=2023&semester=1&section=1A').get_json()['items'][0]
        assert item['percentage'] == '30.0'

    def test_update_marks_clamps(self, client):
        add_students(client, ('Asha', 'R1', {}))
        student_id = client.get('/get_students?batch=2023').get_json()['items'][0]['id']

        client.post('/update_marks', json={'id': student_id, 'subject': 'Physics', 'value': '250'})
        item = client.get('/get_students?batch=2023').get_json()['items'][0]
        assert item['marks']['Physics'] == 100

    def test_add_student_normalises_marks(self, client):
        add_students(client, ('Asha', 'R1', {'Mathematics': 500, 'Physics': '90', 'Dance': 10}))

        item = client.get('/get_students?batch=2023').get_json()['items'][0]
        assert item['marks'] == {'Mathematics': 100, 'Physics': 90}

        response = client.get('/analytics/subjects?batch=2023&semester=1&section=1A')
        assert response.status_code == 200
        assert response.get_json()[0]['average'] == 100

    def test_update_marks_unknown_subject(self, client):
        add_students(client, ('Asha', 'R1', {}))
        student_id = client.get('/get_students?batch=2023').get_json()['items'][0]['id']

        response = client.post('/update_marks', json={'id': student_id, 'subject': 'Dance', 'value': 5})
        assert response.status_code == 400

    def test_delete_student(self, client):
        add_students(client, ('Asha', 'R1', {}))
        student_id = client.get('/get_students?batch=2023').get_json()['items'][0]['id']

        assert client.post('/delete_student', json={'id': student_id}).status_code == 200
        assert client.post('/delete_student', json={'id': student_id}).status_code == 400

    def test_duplicate_roll_number(self, client):
        add_students(client, ('Asha', 'R1', {}))
        response = client.post('/add_student', json={'batch': '2023', 'semester': 1, 'section': '1B',
                                                      'name': 'Other', 'roll_number': 'R1'})
        assert response.status_code == 400


class TestImportExport:
    def test_upload_marks(self, client):
        upload = workbook_bytes([['Alice', 'R1', '2023', '1', '1A', '88', '70']],
                                ['Name', 'Roll No', 'Batch', 'Semester', 'Section', 'Mathematics', 'Robotics'])
        response = client.post('/upload_marks', data={
            'file': (upload, 'marks.xlsx'), 'batch': '2023', 'semester': '1', 'section': '1A'
        }, content_type='multipart/form-data')

        data = response.get_json()
        assert response.status_code == 200
        assert data['new_subjects'] == ['Robotics']

        item = client.get('/get_students?batch=2023').get_json()['items'][0]
        assert item['marks']['Mathematics'] == 88
        assert item['marks']['Robotics'] == 70
        assert item['marks']['English'] == 0

    def test_upload_rejects_bad_requests(self, client):
        no_batch = client.post('/upload_marks', data={'file': (io.BytesIO(b'x'), 'marks.xlsx')},
                               content_type='multipart/form-data')
        assert no_batch.status_code == 400

        no_file = client.post('/upload_marks', data={'batch': '2023'}, content_type='multipart/form-data')
        assert no_file.status_code == 400

        wrong_type = client.post('/upload_marks', data={'file': (io.BytesIO(b'x'), 'marks.pdf'),
                                                        'batch': '2023'},
                                 content_type='multipart/form-data')
        assert wrong_type.status_code == 400

        broken = client.post('/upload_marks', data={'file': (io.BytesIO(b'x'), 'marks.xlsx'),
                                                    'batch': '2023'},
                             content_type='multipart/form-data')
        assert broken.status_code == 400
        assert client.get('/').get_json()['student_count'] == 0

    def test_export_marks(self, client):
        add_students(client, ('Asha', 'R1', {'Mathematics': 64}))

        response = client.get('/export_marks?batch=2023&semester=1&section=1A')
        assert response.status_code == 200
        df = pd.read_excel(io.BytesIO(response.data))
        assert list(df['Mathematics']) == [64]

    def test_export_empty_scope(self, client):
        assert client.get('/export_marks?batch=2023&semester=1&section=1C').status_code == 404


class TestAnalyticsEndpoints:
    def test_subject_statistics(self, client):
        add_students(client, ('A', 'R1', {'Mathematics': 90}), ('B', 'R2', {'Mathematics': 30}))

        stats = client.get('/analytics/subjects?batch=2023&semester=1&section=1A').get_json()
        assert stats[0]['subject'] == 'Mathematics'
        assert stats[0]['average'] == 60
        assert (stats[0]['pass_count'], stats[0]['fail_count']) == (1, 1)
        assert len(stats) == 5

    def test_weak_students_and_report(self, client):
        add_students(client, ('A', 'R1', {'Mathematics': 90}), ('B', 'R2', {}))

        weak = client.get('/analytics/weak_students?batch=2023&semester=1&section=1A').get_json()
        assert [s['roll_number'] for s in weak] == ['R2', 'R1']
        assert weak[0]['risk_level'] == 'high'

        report = client.get('/analytics/export_weak_students?batch=2023&semester=1&section=1A')
        assert report.status_code == 200
        ws = openpyxl.load_workbook(io.BytesIO(report.data)).active
        assert ws['B4'].value == 'R2'

    def test_trend_and_student_options(self, client):
        add_students(client, ('Asha', 'R1', {'Mathematics': 100}))
        add_students(client, ('Asha', 'R1', {'Physics': 50}), semester=2, section='2A')

        options = client.get('/analytics/students?batch=2023').get_json()
        assert len(options) == 1
        assert options[0]['label'] == 'Asha (R1)'

        trend = client.get(f"/analytics/trend?batch=2023&student_id={options[0]['value']}").get_json()
        assert len(trend) == 6
        assert [t['average'] for t in trend[:3]] == [20.0, 10.0, 0]

    def test_marks_chart(self, client):
        add_students(client, ('A', 'R1', {'Mathematics': 90}))
        chart = client.get('/analytics/marks_chart?batch=2023&semester=1&section=1A').get_json()
        assert chart['rows'] == [{'name': 'A', 'Mathematics': 90}]
