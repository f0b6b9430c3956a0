"""Batch Attendance package.

Feature modules (attendance, batches, users, reports, media) each keep a thin
Flask controller on top of service and repository layers.
"""
