"""Notifications app package.

Delivers booking lifecycle and key custody notifications by e-mail. The
scheduling engine never calls this package directly: Celery tasks queued
by domain event subscribers do.
"""
