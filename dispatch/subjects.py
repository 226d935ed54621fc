"""
Subject and queue group naming.

Every operation has its own stream named ``<prefix>.<entity>.<operation>``.
All workers of one entity share a single consumer group so that each
request is delivered to exactly one of them.
"""

TICKETS = "tickets"
COMMENTS = "comments"

CREATE = "create"
LOAD = "load"
UPDATE = "update"
DELETE = "delete"
FILTER = "filter"

OPERATIONS = {
    TICKETS: (CREATE, LOAD, UPDATE, DELETE, FILTER),
    COMMENTS: (CREATE, LOAD, UPDATE, DELETE),
}


def subject_for(prefix: str, entity: str, operation: str) -> str:
    if operation not in OPERATIONS.get(entity, ()):
        raise ValueError(f"Unknown operation {operation!r} for {entity!r}")
    return f"{prefix}.{entity}.{operation}"


def group_for(prefix: str, entity: str) -> str:
    return f"{prefix}.{entity}.workers"


def reply_key(prefix: str, token: str) -> str:
    return f"{prefix}.replies.{token}"
