"""A small persistent contract store: one greeting plus an append-only event calendar.

Each contract instance is a single aggregate persisted as one binary blob in Redis.
"""
