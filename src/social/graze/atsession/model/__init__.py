"""
Data Models

Pydantic models shared by the resolver and the session manager.

Key Models:
- identity.py: DID documents, their declared services, and resolved subjects
- session.py: The Session credential record, the Credential handed to callers,
  and the lifecycle events a SessionManager emits

Sessions and events are frozen. A Session is only ever replaced whole.
"""
