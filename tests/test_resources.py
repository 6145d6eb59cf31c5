import unittest

from learnnow.storage.postgres_records import ValidationFailed, validate_batch
from learnnow.storage.resources import (
    CLASSES,
    SCHOOLS,
    STUDENTS,
    TUTORS,
    ValidationError,
    check_update_body,
    merge_changes,
    parse_record_id,
    validate_record,
)


class TestValidateRecord(unittest.TestCase):
    def test_student_requires_name_and_email(self):
        with self.assertRaisesRegex(ValidationError, "Name is required"):
            validate_record(STUDENTS, {"email": "a@example.com"})
        with self.assertRaisesRegex(ValidationError, "Email is required"):
            validate_record(STUDENTS, {"name": "Ada"})

    def test_unknown_keys_dropped(self):
        rec = validate_record(STUDENTS, {"name": "Ada", "email": "a@example.com", "_id": "x", "admin": True})
        self.assertEqual(set(rec), {"name", "email", "phone", "classes"})

    def test_class_accepts_term_or_semester_and_year(self):
        base = {"name": "Organic Chemistry I", "number": "AS.030.205", "section": "01"}
        self.assertEqual(validate_record(CLASSES, {**base, "term": "Fall 2024"})["term"], "Fall 2024")
        rec = validate_record(CLASSES, {**base, "semester": "Fall", "year": "2020"})
        self.assertEqual(rec["year"], 2020)
        with self.assertRaisesRegex(ValidationError, "Term"):
            validate_record(CLASSES, {**base, "semester": "Fall"})

    def test_numeric_fields(self):
        with self.assertRaises(ValidationError):
            validate_record(CLASSES, {"name": "x", "number": "1", "section": "1", "semester": "Fall", "year": "soon"})
        rec = validate_record(TUTORS, {"name": "T", "email": "t@example.com", "rating": "4.5"})
        self.assertEqual(rec["rating"], 4.5)
        with self.assertRaises(ValidationError):
            validate_record(TUTORS, {"name": "T", "email": "t@example.com", "rating": True})

    def test_classes_must_be_array(self):
        with self.assertRaisesRegex(ValidationError, "Classes must be an array"):
            validate_record(STUDENTS, {"name": "Ada", "email": "a@example.com", "classes": "EN.601.220"})

    def test_text_fields_reject_objects_and_arrays(self):
        with self.assertRaisesRegex(ValidationError, "Name must be a string"):
            validate_record(SCHOOLS, {"name": {"first": "JHU"}})
        with self.assertRaisesRegex(ValidationError, "Email must be a string"):
            validate_record(STUDENTS, {"name": "Ada", "email": ["a@example.com"]})
        with self.assertRaisesRegex(ValidationError, "Address must not contain NUL"):
            validate_record(SCHOOLS, {"name": "JHU", "address": "3400\x00N Charles"})

    def test_text_fields_cast_scalars(self):
        rec = validate_record(CLASSES, {"name": "Calc", "number": 110, "section": 1, "term": "Fall 2024"})
        self.assertEqual((rec["number"], rec["section"]), ("110", "1"))
        rec = validate_record(SCHOOLS, {"name": True})
        self.assertEqual(rec["name"], "true")

    def test_year_and_rating_bounds(self):
        base = {"name": "x", "number": "1", "section": "1", "semester": "Fall"}
        with self.assertRaisesRegex(ValidationError, "Year is out of range"):
            validate_record(CLASSES, {**base, "year": 2**31})
        self.assertEqual(validate_record(CLASSES, {**base, "year": 2**31 - 1})["year"], 2**31 - 1)
        with self.assertRaisesRegex(ValidationError, "Rating must be a finite number"):
            validate_record(TUTORS, {"name": "T", "email": "t@example.com", "rating": "inf"})
        with self.assertRaisesRegex(ValidationError, "Rating must be a number"):
            validate_record(TUTORS, {"name": "T", "email": "t@example.com", "rating": {"avg": 4}})

    def test_update_body_restates_required_fields(self):
        with self.assertRaisesRegex(ValidationError, "Name is required"):
            check_update_body(STUDENTS, {"phone": "1"})
        with self.assertRaisesRegex(ValidationError, "Email is required"):
            check_update_body(STUDENTS, {"name": "Ada", "email": None})
        check_update_body(STUDENTS, {"name": "Ada", "email": "a@example.com"})
        with self.assertRaisesRegex(ValidationError, "Term"):
            check_update_body(CLASSES, {"name": "x", "number": "1", "section": "1", "semester": "Fall"})
        check_update_body(CLASSES, {"name": "x", "number": "1", "section": "1", "term": "Fall 2024"})

    def test_validate_batch_reports_index(self):
        good = {"name": "A", "number": "1", "section": "01", "term": "Fall 2024"}
        bad = {"name": "B", "number": None, "section": "01", "term": "Fall 2024"}
        with self.assertRaises(ValidationFailed) as ctx:
            validate_batch(CLASSES, [good, good, bad])
        self.assertEqual(ctx.exception.detail, "Record 2: Number is required")

    def test_merge_changes_ignores_nulls(self):
        current = {"id": 3, "name": "Ada", "email": "a@example.com", "phone": "555", "classes": None}
        merged = merge_changes(STUDENTS, current, {"phone": None, "email": "ada@example.com", "bogus": 1})
        self.assertEqual(merged, {"name": "Ada", "email": "ada@example.com", "phone": "555", "classes": None})

    def test_parse_record_id(self):
        self.assertEqual(parse_record_id("42"), 42)
        self.assertEqual(parse_record_id(7), 7)
        for bad in ("0", "-1", "abc", "60e3dc636a3d3a0015c66f96", "", None, True):
            self.assertIsNone(parse_record_id(bad))


if __name__ == "__main__":
    unittest.main()
