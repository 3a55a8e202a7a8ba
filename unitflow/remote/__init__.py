"""Remote instance collaborators — HTTP client, jobs, code artifacts.

These are thin clients over the instance APIs the engine consumes:
- Data API: preferences, custom objects, job executions, code versions
- WebDAV: archive uploads, code artifact uploads, run logs
"""
