"""Query Modules - plain query functions, lifted into QueryModules by the registry.

Invariants:
    - Every module is registered explicitly in QUERY_MODULES (no auto-discovery)
"""

from deferq.queries import health

QUERY_MODULES = {
    "health": (health.ping, health.server_time),
}
