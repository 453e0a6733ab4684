"""Service layer between the Flask routes and the normalization engine."""
