# jsonstore/logging/tags.py
"""
Subsystem tags prefixed to log messages.

Keeps log output searchable by area. Changing a tag here updates it
project-wide.
"""

STORE = "[STORE]"
QUERY = "[QUERY]"
SCHEMA = "[SCHEMA]"
QUEUE = "[QUEUE]"
DRIVER = "[DRIVER]"
