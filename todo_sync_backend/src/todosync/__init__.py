"""
Todo Sync Backend package.

The FastAPI application lives in `todosync.main:app`; the offline sync
reconciler in `todosync.sync` and the storage backends in
`todosync.repositories` / `todosync.db`.
"""
