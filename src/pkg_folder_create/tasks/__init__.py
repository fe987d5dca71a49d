"""Folder create task queue: store, procedure contract and task client.

The queue is driven through two procedures with a numeric return-code
contract. ``request_folder_create_task`` hands one queued row to a named
processor; ``set_folder_create_task_complete`` releases it with a completion
code. Return code ``0`` is success, ``53000`` means the queue is empty, and
anything else is a procedure error carrying message text.

The SQLite store implements the same contract so that the manager can run
against a local queue database without a database server.
"""
