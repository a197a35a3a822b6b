import pandas as pd
import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
import os
import logging
from typing import Optional, Dict, List

from models import (
    DEFAULT_MAX_MARKS, make_student, make_subject, new_student_id, get_mark, in_scope, subject_max_marks
)

STANDARD_HEADERS = ['Name', 'Roll No', 'Batch', 'Semester', 'Section']

# Normalized header -> field, matched after lowercasing and replacing spaces with underscores
COLUMN_MAPPINGS = {
    'name': ['name', 'student_name', 'full_name'],
    'roll_number': ['roll_no', 'rollno', 'roll_number', 'roll', 'student_id'],
    'batch': ['batch', 'batch_id', 'year'],
    'semester': ['semester', 'sem'],
    'section': ['section', 'sec', 'division']
}

RISK_FILLS = {
    'high': 'FFE6E6',
    'medium': 'FFF2CC',
    'low': 'E6F3FF'
}


class ExcelHandler:
    def __init__(self, export_folder: str = 'exports'):
        self.logger = logging.getLogger(__name__)
        self.export_folder = export_folder

    def read_marks_data(self, filepath: str, batch_id: str, semester: int, section: str,
                        current_subjects: List[Dict]) -> Optional[Dict]:
        """
        Read student marks from a spreadsheet.

        Standard columns (name, roll number, batch, semester, section) are
        recognised by alias; every other column is taken as a subject.
        Returns {'new_subjects': [...], 'students': [...]} or None when the
        file cannot be used.
        """
        try:
            df = self._read_frame(filepath)
            if df is None:
                return None

            if df.empty:
                self.logger.error(f"No data found in {filepath}")
                return None

            # Map columns
            mapped_columns = {}
            subject_columns = {}
            for column in df.columns:
                normalized = str(column).strip().lower().replace(' ', '_')
                field = next((f for f, names in COLUMN_MAPPINGS.items() if normalized in names), None)
                if field and field not in mapped_columns:
                    mapped_columns[field] = column
                elif not field:
                    subject_columns[str(column).strip()] = column

            # Subject columns may differ from the catalog only in case
            current_names = [s['name'].lower() for s in current_subjects]
            new_subjects = [
                make_subject(name, DEFAULT_MAX_MARKS)
                for name in subject_columns if name.lower() not in current_names
            ]
            all_subjects = list(current_subjects) + new_subjects
            lowered = {name.lower(): column for name, column in subject_columns.items()}

            first_id = new_student_id()
            students = []
            for idx, (_, row) in enumerate(df.iterrows()):
                marks = {}
                for subject in all_subjects:
                    column = subject_columns.get(subject['name']) or lowered.get(subject['name'].lower())
                    mark = self._to_int(row[column]) if column is not None else 0
                    marks[subject['name']] = min(max(mark, 0), subject_max_marks(subject))

                row_semester = self._to_int(self._cell(row, mapped_columns, 'semester'))
                students.append(make_student(
                    name=self._cell(row, mapped_columns, 'name') or f"Student {idx + 1}",
                    roll_number=self._cell(row, mapped_columns, 'roll_number') or f"R{idx + 1}",
                    batch=self._cell(row, mapped_columns, 'batch') or batch_id,
                    semester=row_semester or semester,
                    section=self._cell(row, mapped_columns, 'section') or section,
                    marks=marks,
                    student_id=first_id + idx
                ))

            self.logger.info(f"Read {len(students)} students and {len(new_subjects)} new subjects from {filepath}")
            return {'new_subjects': new_subjects, 'students': students}

        except Exception as e:
            self.logger.error(f"Error reading marks file: {str(e)}")
            return None

    def _read_frame(self, filepath: str) -> Optional[pd.DataFrame]:
        extension = os.path.splitext(filepath)[1].lower()
        if extension == '.csv':
            return pd.read_csv(filepath, dtype=str)
        if extension in ('.xlsx', '.xls'):
            return pd.read_excel(filepath, dtype=str)

        self.logger.error(f"Unsupported file type: {extension}")
        return None

    def _cell(self, row: pd.Series, mapped_columns: Dict, field: str) -> str:
        """Text of a standard column, empty when the column or the value is missing."""
        column = mapped_columns.get(field)
        if column is None or pd.isna(row[column]):
            return ''
        text = str(row[column]).strip()
        # spreadsheet numbers such as 2024.0 are read back as whole numbers
        if text.endswith('.0') and text[:-2].isdigit():
            text = text[:-2]
        return text

    def _to_int(self, value) -> int:
        number = pd.to_numeric(value, errors='coerce')
        if pd.isna(number):
            return 0
        return int(number)

    def export_marks(self, students: List[Dict], batch_id: str, semester: int, section: str,
                     subjects: List[Dict]) -> Optional[str]:
        """
        Export one section's marks: standard columns followed by one column per subject.
        """
        if not batch_id:
            self.logger.error("Please select a batch first")
            return None

        scope_students = [s for s in students if in_scope(s, batch_id, semester, section)]
        if not scope_students:
            self.logger.error(f"No students found to export for {batch_id} semester {semester} {section}")
            return None

        try:
            wb = openpyxl.Workbook()
            ws = wb.active
            if ws is not None:
                ws.title = "Students"

            headers = STANDARD_HEADERS + [s['name'] for s in subjects]
            self._write_header(ws, headers)

            for row_num, student in enumerate(scope_students, 2):
                row_data = [
                    student.get('name'),
                    student.get('roll_number'),
                    student.get('batch'),
                    student.get('semester'),
                    student.get('section')
                ] + [get_mark(student, s['name']) for s in subjects]

                for col, value in enumerate(row_data, 1):
                    ws.cell(row=row_num, column=col, value=value)

            self._fit_columns(ws, len(headers), len(scope_students) + 1)

            filename = f"Students_{batch_id}_Sem{semester}_{section}.xlsx"
            filepath = self._save(wb, filename)
            self.logger.info(f"Exported {len(scope_students)} students to {filepath}")
            return filepath

        except Exception as e:
            self.logger.error(f"Error exporting to Excel: {str(e)}")
            return None

    def export_weak_students(self, weak_students: List[Dict], batch_id: str, semester: int,
                             section: str) -> Optional[str]:
        """
        Export the at-risk report, one row per flagged student coloured by risk level.
        """
        try:
            wb = openpyxl.Workbook()
            ws = wb.active
            if ws is not None:
                ws.title = "Weak Students"

            ws['A1'] = f"Weak Student Report - {batch_id} Semester {semester} Section {section}"
            ws['A1'].font = Font(bold=True, size=14)
            ws.merge_cells('A1:E1')

            headers = ['Name', 'Roll No', 'Average %', 'Risk Level', 'Weak Subjects']
            self._write_header(ws, headers, row=3)

            row_num = 4
            for student in weak_students:
                weak_subjects = ', '.join(
                    f"{name}: {get_mark(student, name)}" for name in student.get('weak_subjects', [])
                )
                risk = student.get('risk_level', 'low')
                row_data = [
                    student.get('name'),
                    student.get('roll_number'),
                    student.get('avg_marks'),
                    risk.upper(),
                    weak_subjects
                ]
                fill = PatternFill(start_color=RISK_FILLS.get(risk, 'FFFFFF'),
                                   end_color=RISK_FILLS.get(risk, 'FFFFFF'), fill_type="solid")
                for col, value in enumerate(row_data, 1):
                    cell = ws.cell(row=row_num, column=col, value=value)
                    cell.fill = fill
                row_num += 1

            ws.cell(row=row_num + 1, column=1, value=f"Students flagged: {len(weak_students)}").font = Font(bold=True)

            self._fit_columns(ws, len(headers), row_num + 1, start_row=3)

            filename = f"Weak_Students_{batch_id}_Sem{semester}_{section}.xlsx"
            filepath = self._save(wb, filename)
            self.logger.info(f"Exported weak student report to {filepath}")
            return filepath

        except Exception as e:
            self.logger.error(f"Error exporting weak student report: {str(e)}")
            return None

    def _write_header(self, ws, headers: List[str], row: int = 1):
        header_font = Font(bold=True, size=12, color="FFFFFF")
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.border = border
            cell.alignment = Alignment(horizontal='center', vertical='center')

    def _fit_columns(self, ws, column_count: int, last_row: int, start_row: int = 1):
        for col_idx in range(1, column_count + 1):
            max_length = 0
            column_letter = get_column_letter(col_idx)
            for row_idx in range(start_row, last_row + 1):
                cell = ws.cell(row=row_idx, column=col_idx)
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)  # Cap at 50 characters

    def _save(self, wb, filename: str) -> str:
        os.makedirs(self.export_folder, exist_ok=True)
        filepath = os.path.join(self.export_folder, filename)
        wb.save(filepath)
        return filepath
