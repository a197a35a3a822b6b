#!/usr/bin/env python3
"""
Create sample marks data for the student marks dashboard.
"""
import os
import random
import pandas as pd
from faker import Faker

from models import DEFAULT_SUBJECT_NAMES, DEFAULT_MAX_MARKS, default_sections, make_student, new_student_id


def create_sample_students(batch_id='2023', semesters=(1, 2), students_per_section=12,
                           subject_names=None, seed=None):
    """
    Build student records for a batch. The same roll numbers are enrolled in
    every semester so cross-semester trends have something to show.
    """
    fake = Faker('en_IN')  # Indian locale for better names
    rng = random.Random(seed)
    if seed is not None:
        fake.seed_instance(seed)

    subject_names = subject_names or DEFAULT_SUBJECT_NAMES
    first_id = new_student_id()
    students = []

    for section_idx, section_letter in enumerate('ABC'):
        for i in range(students_per_section):
            name = fake.name()
            roll_number = f"{batch_id}{section_letter}{str(i + 1).zfill(3)}"
            # a per-student baseline keeps marks of one person consistent across semesters
            ability = rng.randint(25, 95)

            for semester in semesters:
                section = default_sections(semester)[section_idx]
                marks = {
                    subject: max(0, min(DEFAULT_MAX_MARKS, ability + rng.randint(-20, 15)))
                    for subject in subject_names
                }
                students.append(make_student(
                    name, roll_number, batch_id, semester, section, marks,
                    student_id=first_id + len(students)
                ))

    return students


def create_sample_marks_file(output_file='sample_marks.xlsx', batch_id='2023', semester=1, seed=None):
    """Write one semester of sample marks in the layout the importer expects."""
    students = create_sample_students(batch_id, semesters=(semester,), seed=seed)

    rows = []
    for s in students:
        row = {
            'Name': s['name'],
            'Roll No': s['roll_number'],
            'Batch': s['batch'],
            'Semester': s['semester'],
            'Section': s['section']
        }
        row.update(s['marks'])
        rows.append(row)

    df = pd.DataFrame(rows)
    df.to_excel(output_file, index=False, engine='openpyxl')
    return output_file, df


if __name__ == "__main__":
    output_file, df = create_sample_marks_file()
    print(f"Sample marks data created in '{output_file}'")
    print(f"Total students: {len(df)}")
    print(f"Sections: {df.groupby('Section').size().to_dict()}")
    print(f"Subject averages: {df[DEFAULT_SUBJECT_NAMES].mean().round(2).to_dict()}")
    print(f"Upload '{os.path.abspath(output_file)}' to try the import")
