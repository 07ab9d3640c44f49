"""Candidate pool builders, selection and playlist windows."""
