"""
Task manager package for TaskHub.

Projects owned by users and the tasks inside them, served over HTTP. Every
route reads the caller's Principal from the auth context and passes it to
the resource services, which consult the authorization guard.
"""
