"""
Live feed relay.

Includes:
- identity_ledger: trial window and block list per identity.
- feed_adapter: typed, idempotent wrapper over one upstream feed.
- session_registry: atomic connection id -> session map.
- relay_controller: per-connection protocol and teardown.
- admin_view: identities and live sessions snapshot.
"""
