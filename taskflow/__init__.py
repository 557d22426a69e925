# TaskFlow: project boards, tasks and comments on a hosted Supabase backend
#
# Components:
#   schema.py    - Data model (Task, Project, Comment, ProjectMember, status/priority/type tags)
#   remote.py    - Supabase REST + auth client (RemoteService, RemoteError)
#   session.py   - Process-wide session store (SessionStore, SessionState)
#   guard.py     - Route guard for protected and public-only routes
#   board.py     - Board synchronizer: load, partition by status, mutate + reload
#   comments.py  - Append-only comment thread per task
#   projects.py  - Project listing/creation and membership
#   config.py    - YAML/environment configuration and logging setup
