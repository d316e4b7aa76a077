"""
AT Session - AT Protocol identity resolution and session runtime

This package authenticates an actor against its home server (PDS) and keeps that
authentication valid for the life of a long-running process. Record operations
built on top of it only need two things from it: a currently-valid access token
paired with the endpoint to send it to, and a way to report that the server
rejected a token.

Key Components:
- atproto: Identifier syntax, the HttpResult envelope, the XRPC transport, JWT
  claim decoding, and the SessionManager state machine
- resolve: Handle and DID resolution down to the PDS endpoint
- model: Pydantic models for identity documents and sessions
- app: Settings and logging configuration

Architecture Overview:
1. Login:
   - Handle is resolved to a DID over HTTPS and DNS
   - DID is resolved to its identity document (did:plc or did:web)
   - The document's PDS endpoint receives com.atproto.server.createSession

2. Token Management:
   - Access tokens are renewed once a configurable fraction of their lifetime passes
   - Only one refresh is ever in flight; concurrent callers share its result
   - A rejected refresh token expires the session, transient failures do not

3. Error Handling:
   - Every network-backed operation returns an HttpResult
   - HttpResult.ensure_success() raises a typed error for fail-fast callers
"""
