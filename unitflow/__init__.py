"""unitflow — versioned data migrations and feature deployment for remote instances.

Collects change-units from a project directory, compares them against the
state recorded on the remote instance, and applies whatever is missing in
catalog order with lifecycle hooks and incremental state commits.
"""

__version__ = "0.4.0"
