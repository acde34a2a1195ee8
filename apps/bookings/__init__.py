"""Bookings app package.

This app encapsulates the scheduling engine: the booking model, conflict
detection, priority-based preemption, the booking lifecycle and the
suggestions offered when a request cannot be granted. Admission is
serialised per resource by locking the resource row inside a database
transaction.
"""
