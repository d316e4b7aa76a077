"""
AT Protocol Integration

This package provides the client side of AT Protocol authentication, handling
identifier syntax, session creation and renewal, and communication with Personal
Data Server (PDS) instances.

Key Components:
- identifiers.py: DID, handle and NSID grammar checks
- result.py: The HttpResult envelope every network operation returns
- errors.py: Error codes and the exception taxonomy behind ensure_success()
- xrpc.py: aiohttp transport that turns responses into HttpResults
- jwt.py: Reading iat/exp claims from session tokens
- store.py: The lock-guarded holder of the current session
- session.py: The SessionManager state machine and its renewal task

The session flow follows these steps:
1. Resolve the subject (handle or DID) to its PDS
2. Create a session with an identifier and (app) password
3. Hand out the access token, refreshing it before it expires
4. Expire the session if the refresh token is rejected
5. Revoke the session on logout
"""
