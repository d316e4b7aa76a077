"""
Identity Resolution

This package provides utilities for resolving AT Protocol identifiers (DIDs, handles)
to their canonical forms, implementing both DNS-based and HTTP-based resolution methods.

Key Components:
- handle.py: IdentityResolver and subject parsing
- __main__.py: CLI interface for resolution

Resolution Types:
1. Handle Resolution
   - HTTP-based resolution via well-known endpoints (.well-known/atproto-did)
   - DNS-based resolution via TXT records (_atproto.{handle})

2. DID Resolution
   - did:plc method resolution via PLC directory
   - did:web method resolution via did.json documents

3. Service Resolution
   - The AtprotoPersonalDataServer entry of the identity document

Handle to DID mappings are never cached: a handle can be repointed at any time.
"""
