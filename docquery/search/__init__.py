"""
Query pipeline: sanitizer, rate limiter, classifier, structured builder,
SQL validator, read-only gateway, audit log and orchestrator.
"""
