"""Qt-facing application layer.

- JobQueue: ordered jobs, one active at a time, run on a worker QThread
- BackendFacade: single command entry backend.dispatch(cmd, payload)
- Notifications via backend.event / backend.taskEvent, bindable state via backend.queue
"""
