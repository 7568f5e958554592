"""Declarative task-automation engine.

Why not Celery / Prefect / a workflow framework?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
A definition document names tools, their parameters, guards, and ordering.
Running it needs only a handful of pieces:

- Placeholder resolution against a run-scoped context that later steps read.
- Three-token guard conditions parsed once at load time.
- Stop-versus-continue failure policy per step and per task.
- A priority queue with bounded exponential-backoff retries for whole tasks.

All of it runs in one process, in memory, with tools as plain callables.
A broker or a flow engine would add operational weight without removing any
of the logic above.
"""
