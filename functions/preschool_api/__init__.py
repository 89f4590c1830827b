"""
FastAPI service for the preschool administration backend.

Organizations, students, staff, classes, attendance, meals, messaging and
waitlist records live in a document store (Firestore, SQL or in-memory);
student documents live in object storage.
"""
